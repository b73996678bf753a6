"""
Application service: orchestration of one viewer session.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from geodrill.domain.effects import Effect, UpdateFilterLabel
from geodrill.domain.models import Indicator, Level, SearchCandidate
from geodrill.infrastructure.geo_api_client import GeoAPIClient
from geodrill.services.application.jump_resolver import JumpOutcome, JumpResolver
from geodrill.services.domain.aggregation import AggregationProvider
from geodrill.services.domain.filter_state import FilterState
from geodrill.services.domain.geography import GeographyRegistry
from geodrill.services.domain.navigation import (
    NavigationError,
    NavigationStateMachine,
    TransitionResult,
)
from geodrill.services.domain.scatter import ScatterNavigator, ScatterResult


logger = logging.getLogger(__name__)


class ViewerSession:
    """
    Application service wiring the viewer components together.

    Follows the application layer pattern - no navigation logic here,
    only coordination between the registry, the provider, the map state
    machine, the scatter view and the jump resolver.
    """

    def __init__(
        self,
        client: GeoAPIClient,
        provider: AggregationProvider,
        registry: Optional[GeographyRegistry] = None,
    ):
        """
        Initialize the session with dependencies.

        Args:
            client: Geography API client
            provider: Aggregation provider over the parcel dataset
            registry: Geography registry, built from the client when omitted
        """
        self.client = client
        self.provider = provider
        self.registry = registry or GeographyRegistry(client)
        self.filter_state: Optional[FilterState] = None
        self.navigator: Optional[NavigationStateMachine] = None
        self.scatter: Optional[ScatterNavigator] = None
        self.resolver: Optional[JumpResolver] = None

    @property
    def started(self) -> bool:
        return self.navigator is not None

    async def start(self) -> List[Effect]:
        """
        Load the static geography and the land-cover universe, then show regions.

        This method orchestrates:
        1. Fetching regions, departments and categories concurrently
        2. Initializing the filter with every category selected
        3. Displaying the region layer in both views

        Returns:
            Effects of the initial display
        """
        _, categories = await asyncio.gather(
            self.registry.load(),
            self.provider.list_land_cover_categories(),
        )
        if not categories:
            logger.warning("No land-cover category found, every area will have no data")

        self.filter_state = FilterState(categories)
        self.navigator = NavigationStateMachine(self.registry, self.provider, self.filter_state)
        self.scatter = ScatterNavigator(self.registry, self.provider, self.filter_state)
        self.resolver = JumpResolver(self.registry, self.navigator, self.client)

        map_result, scatter_result = await asyncio.gather(
            self.navigator.start(),
            self.scatter.start(),
        )
        logger.info(f"Session started with {len(categories)} land-cover categories")
        return [
            UpdateFilterLabel(label=self.filter_state.summary_label()),
            *map_result.effects,
            *scatter_result.effects,
        ]

    def _require_started(self) -> NavigationStateMachine:
        if self.navigator is None:
            raise NavigationError("Viewer session is not started")
        return self.navigator

    async def select(self, level: Level, code: str) -> TransitionResult:
        """Dispatch a map click to the handler of the clicked level."""
        navigator = self._require_started()
        level = Level(level)
        if level is Level.REGION:
            return await navigator.select_region(code)
        if level is Level.DEPARTMENT:
            return await navigator.select_department(code)
        if level is Level.COMMUNE:
            return await navigator.select_commune(code)
        raise NavigationError(f"The map has no {level.value} layer")

    async def back(self) -> TransitionResult:
        return await self._require_started().back()

    async def change_filter(self, labels: Iterable[str]) -> TransitionResult:
        """
        Replace the land-cover selection.

        The map re-aggregates its current level; the scatter view refreshes
        its current frame afterwards.
        """
        navigator = self._require_started()
        result = await navigator.change_filter(labels)
        scatter_result = await self.scatter.refresh()
        return TransitionResult(
            status=result.status,
            context=navigator.context,
            effects=result.effects + scatter_result.effects,
        )

    def change_indicator(self, indicator: Indicator) -> TransitionResult:
        return self._require_started().change_indicator(indicator)

    async def search(self, query: str) -> List[SearchCandidate]:
        self._require_started()
        return await self.resolver.search(query)

    async def jump(self, level: Level, code: str) -> JumpOutcome:
        self._require_started()
        return await self.resolver.jump(level, code)

    async def scatter_drill(self, code: str) -> ScatterResult:
        self._require_started()
        return await self.scatter.drill(code)

    def scatter_back(self) -> ScatterResult:
        self._require_started()
        return self.scatter.back()
