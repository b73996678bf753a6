"""
Application service: free-text search and programmatic jumps.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from geodrill.config import settings
from geodrill.domain.effects import Effect
from geodrill.domain.models import Level, SearchCandidate, normalize_code
from geodrill.infrastructure.geo_api_client import GeoAPIClient, GeoAPIError
from geodrill.services.domain.geography import GeographyRegistry, department_code_of_commune
from geodrill.services.domain.navigation import (
    FETCH_ERRORS,
    NavigationError,
    NavigationStateMachine,
    TransitionResult,
)


logger = logging.getLogger(__name__)


@dataclass
class JumpOutcome:
    """Where a jump ended and what it asked the renderer to do."""
    target: Level
    code: str
    reached: Optional[Level] = None
    completed: bool = False
    effects: List[Effect] = field(default_factory=list)


class JumpResolver:
    """
    Resolves search text to areas and replays the navigation to reach them.

    A jump runs the same transitions a user would click through, each one
    awaited until it has committed before the next one starts.
    """

    def __init__(
        self,
        registry: GeographyRegistry,
        navigator: NavigationStateMachine,
        client: GeoAPIClient,
    ):
        """
        Initialize the resolver.

        Args:
            registry: Geography registry, already loaded
            navigator: Map navigation state machine
            client: Geography API client for the commune lookup
        """
        self.registry = registry
        self.navigator = navigator
        self.client = client

    async def search(self, query: str) -> List[SearchCandidate]:
        """
        Find regions, departments and communes matching a query.

        Regions come first, then departments, then communes from the remote
        lookup. A failing remote lookup leaves only the local matches.

        Args:
            query: Free text

        Returns:
            Up to `search_max_results` candidates
        """
        query = query.strip()
        if len(query) < settings.search_min_query_length:
            return []

        regions, departments = self.registry.search_names(query)
        candidates = [
            SearchCandidate(type=Level.REGION, name=r.name, code=r.code)
            for r in regions
        ]
        candidates.extend(
            SearchCandidate(
                type=Level.DEPARTMENT,
                name=d.name,
                code=d.code,
                region_code=d.parent_code,
            )
            for d in departments
        )

        try:
            communes = await self.client.search_communes_by_name(
                query, limit=settings.commune_search_limit
            )
        except (GeoAPIError, httpx.HTTPError) as e:
            logger.warning(f"Commune lookup for '{query}' failed: {str(e)}")
            communes = []

        candidates.extend(
            SearchCandidate(
                type=Level.COMMUNE,
                name=c.name,
                code=normalize_code(c.code, Level.COMMUNE),
                department_code=c.department_code,
                region_code=c.region_code,
            )
            for c in communes
        )
        return candidates[: settings.search_max_results]

    async def jump(self, target: Level, code: str) -> JumpOutcome:
        """
        Navigate to a region, department or commune.

        Any failing step stops the jump; the view stays at the last level
        that was reached.

        Args:
            target: Level of the destination
            code: Code of the destination

        Returns:
            JumpOutcome describing how far the jump went
        """
        target = Level(target)
        outcome = JumpOutcome(target=target, code=str(code))
        logger.info(f"Jumping to {target.value} {code}")

        try:
            if target is Level.REGION:
                await self._jump_region(outcome, normalize_code(code, Level.REGION))
            elif target is Level.DEPARTMENT:
                await self._jump_department(outcome, normalize_code(code, Level.DEPARTMENT))
            elif target is Level.COMMUNE:
                await self._jump_commune(outcome, normalize_code(code, Level.COMMUNE))
            else:
                logger.warning(f"Cannot jump to a {target.value}")
        except (NavigationError, *FETCH_ERRORS) as e:
            logger.warning(f"Jump to {target.value} {code} stopped: {str(e)}")

        return outcome

    async def _jump_region(self, outcome: JumpOutcome, region_code: str) -> bool:
        if self.registry.region(region_code) is None:
            logger.warning(f"No region with code {region_code}")
            return False
        return self._step(outcome, await self.navigator.select_region(region_code), Level.REGION)

    async def _jump_department(self, outcome: JumpOutcome, department_code: str) -> bool:
        if self.registry.department(department_code) is None:
            logger.warning(f"No department with code {department_code}")
            return False
        region = await self.registry.find_region_of_department(department_code)
        if region is None:
            logger.warning(f"No region owns department {department_code}")
            return False
        if not await self._jump_region(outcome, region.code):
            return False
        return self._step(
            outcome,
            await self.navigator.select_department(department_code),
            Level.DEPARTMENT,
        )

    async def _jump_commune(self, outcome: JumpOutcome, commune_code: str) -> bool:
        department_code = department_code_of_commune(commune_code)
        if not await self._jump_department(outcome, department_code):
            return False
        if self.navigator.context.find(Level.COMMUNE, commune_code) is None:
            logger.warning(f"Commune {commune_code} not found in department {department_code}")
            return False
        return self._step(
            outcome,
            await self.navigator.select_commune(commune_code),
            Level.COMMUNE,
        )

    def _step(self, outcome: JumpOutcome, result: TransitionResult, level: Level) -> bool:
        outcome.effects.extend(result.effects)
        if not result.committed:
            logger.warning(f"Jump stopped at {level.value}: transition {result.status.value}")
            return False
        outcome.reached = level
        outcome.completed = level is outcome.target
        return True
