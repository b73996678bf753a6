"""
Domain service: map drill-down navigation.

The state machine walks region -> department -> commune. Each drill fetches
geometry (or membership) and aggregates concurrently, joins them, and only
commits if the selection it was computed for is still the latest one. A
late result for a superseded selection is dropped without any side effect.

Every handler returns a `TransitionResult` holding the new context and the
render effects to apply, so the state machine never touches the renderer.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import httpx

from geodrill.config import settings
from geodrill.domain.effects import (
    ClearLayer,
    Effect,
    Highlight,
    RenderLayer,
    ResetZoom,
    SetBackButton,
    SetLayerOpacity,
    UpdateFilterLabel,
    UpdatePanel,
    ZoomTo,
)
from geodrill.domain.models import Area, AreaStats, Indicator, Level, normalize_code
from geodrill.infrastructure.geo_api_client import GeoAPIError
from geodrill.services.domain.aggregation import AggregationError, AggregationProvider
from geodrill.services.domain.color_scale import color_effects, value_domain
from geodrill.services.domain.filter_state import FilterState
from geodrill.services.domain.geography import GeographyRegistry
from geodrill.utils.geo_projection import geometry_bounds, zoom_scale


logger = logging.getLogger(__name__)

# Errors a transition absorbs: it logs them and leaves the state unchanged
FETCH_ERRORS = (GeoAPIError, AggregationError, httpx.HTTPError)

MAP_LEVELS = (Level.REGION, Level.DEPARTMENT, Level.COMMUNE)

DIMMED_OPACITY = 0.2
DEFAULT_MAX_ZOOM = 20.0
COMMUNE_MAX_ZOOM = 25.0
BACK_MAX_ZOOM = 10.0


class NavigationError(Exception):
    """Raised when a command refers to an area that cannot be selected."""
    pass


class TransitionStatus(str, Enum):
    COMMITTED = "committed"
    DISCARDED = "discarded"
    ABORTED = "aborted"
    IGNORED = "ignored"


def join_stats(
    features: Iterable[Area],
    stats: Mapping[str, AreaStats],
) -> Tuple[Area, ...]:
    """
    Attach statistics to features by code.

    Every feature is kept; features without a matching row get None stats.
    """
    return tuple(f.with_stats(stats.get(f.code)) for f in features)


@dataclass(frozen=True)
class NavigationContext:
    """Snapshot of the map navigation state."""
    level: Level = Level.REGION
    active_region: Optional[Area] = None
    active_department: Optional[Area] = None
    active_commune: Optional[Area] = None
    indicator: Indicator = Indicator.ALTITUDE
    features: Dict[Level, Tuple[Area, ...]] = field(default_factory=dict)
    # bumped each time the displayed layer changes
    view: int = 0

    def displayed(self, level: Optional[Level] = None) -> Tuple[Area, ...]:
        return self.features.get(level or self.level, ())

    def find(self, level: Level, code: str) -> Optional[Area]:
        code = normalize_code(code, level)
        return next((a for a in self.displayed(level) if a.code == code), None)


@dataclass(frozen=True)
class TransitionResult:
    status: TransitionStatus
    context: NavigationContext
    effects: List[Effect] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.status is TransitionStatus.COMMITTED

    @property
    def features(self) -> Tuple[Area, ...]:
        return self.context.displayed()


class NavigationStateMachine:
    """
    Map view navigation over regions, departments and communes.

    The machine owns the current `NavigationContext`. Handlers may interleave
    at their suspension points, so each one re-validates its request token
    after every await before committing.
    """

    def __init__(
        self,
        registry: GeographyRegistry,
        provider: AggregationProvider,
        filter_state: FilterState,
        indicator: Optional[Indicator] = None,
    ):
        """
        Initialize the state machine.

        Args:
            registry: Geography registry, already loaded
            provider: Aggregation provider
            filter_state: Shared land-cover filter
            indicator: Indicator coloured at startup
        """
        self.registry = registry
        self.provider = provider
        self.filter_state = filter_state
        self._context = NavigationContext(
            indicator=indicator or Indicator(settings.default_indicator),
        )
        self._tokens: Dict[Level, int] = {Level.REGION: 0, Level.DEPARTMENT: 0}

    @property
    def context(self) -> NavigationContext:
        return self._context

    # ------------------------------------------------------------------
    # Request tokens
    # ------------------------------------------------------------------

    def _claim(self, level: Level) -> int:
        """Start a selection at a level, superseding pending ones at and below it."""
        self._invalidate(level)
        return self._tokens[level]

    def _invalidate(self, level: Level) -> None:
        self._tokens[Level.DEPARTMENT] += 1
        if level is Level.REGION:
            self._tokens[Level.REGION] += 1

    def _is_current(self, level: Level, token: int) -> bool:
        return self._tokens[level] == token

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self) -> TransitionResult:
        """
        Display every region coloured under the current filter.

        Returns:
            TransitionResult for the region layer
        """
        version = self.filter_state.version
        try:
            stats = await self.provider.aggregate_by_level(Level.REGION, self.filter_state.selected)
        except FETCH_ERRORS as e:
            logger.error(f"Initial region aggregation failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)

        regions = join_stats(self.registry.regions, stats)
        ctx = self._context
        self._context = replace(
            ctx,
            level=Level.REGION,
            active_region=None,
            active_department=None,
            active_commune=None,
            features={Level.REGION: regions},
            view=ctx.view + 1,
        )
        effects: List[Effect] = [
            RenderLayer(level=Level.REGION, features=list(regions)),
            SetBackButton(label=None),
            *color_effects(Level.REGION, regions, ctx.indicator),
        ]
        return await self._finish_commit(effects, version)

    async def select_region(self, code: str) -> TransitionResult:
        """
        Drill from the region layer into the departments of a region.

        Args:
            code: Region code

        Returns:
            TransitionResult; discarded if another region was selected meanwhile

        Raises:
            NavigationError: If the region is unknown
        """
        region = self._context.find(Level.REGION, code) or self.registry.region(code)
        if region is None:
            raise NavigationError(f"Unknown region {code}")

        token = self._claim(Level.REGION)
        version = self.filter_state.version
        selected = self.filter_state.selected

        try:
            members, stats = await asyncio.gather(
                self.registry.departments_of_region(region.code),
                self.provider.aggregate_by_level(Level.DEPARTMENT, selected),
            )
        except FETCH_ERRORS as e:
            logger.error(f"Loading departments of region {region.code} failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)

        if not self._is_current(Level.REGION, token):
            logger.debug(f"Dropping stale departments of region {region.code}")
            return self._result(TransitionStatus.DISCARDED)

        member_codes = set(members)
        departments = join_stats(
            (d.with_parent(region.code) for d in self.registry.departments if d.code in member_codes),
            stats,
        )

        ctx = self._context
        # a department drill still pending belongs to the region being replaced
        self._invalidate(Level.DEPARTMENT)
        self._context = replace(
            ctx,
            level=Level.DEPARTMENT,
            active_region=region,
            active_department=None,
            active_commune=None,
            features={
                Level.REGION: ctx.displayed(Level.REGION),
                Level.DEPARTMENT: departments,
            },
            view=ctx.view + 1,
        )
        effects: List[Effect] = [
            ClearLayer(level=Level.COMMUNE),
            RenderLayer(level=Level.DEPARTMENT, features=list(departments)),
            SetLayerOpacity(level=Level.REGION, opacity=DIMMED_OPACITY),
            SetLayerOpacity(level=Level.DEPARTMENT, opacity=1.0),
            SetBackButton(label="Back to regions"),
            self._panel(region, Level.REGION),
            *color_effects(Level.DEPARTMENT, departments, ctx.indicator),
            self._zoom(region, DEFAULT_MAX_ZOOM),
        ]
        return await self._finish_commit(effects, version)

    async def select_department(self, code: str) -> TransitionResult:
        """
        Drill from the department layer into the communes of a department.

        Args:
            code: Department code, displayed in the current department layer

        Returns:
            TransitionResult; discarded if another selection superseded it

        Raises:
            NavigationError: If the department is not displayed
        """
        department = self._context.find(Level.DEPARTMENT, code)
        if department is None or self._context.active_region is None:
            raise NavigationError(f"Department {code} is not displayed")

        token = self._claim(Level.DEPARTMENT)
        version = self.filter_state.version
        selected = self.filter_state.selected

        try:
            communes, stats = await asyncio.gather(
                self.registry.communes_of_department(department.code),
                self.provider.aggregate_communes_in_department(department.code, selected),
            )
        except FETCH_ERRORS as e:
            logger.error(f"Loading communes of department {department.code} failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)

        if not self._is_current(Level.DEPARTMENT, token):
            logger.debug(f"Dropping stale communes of department {department.code}")
            return self._result(TransitionStatus.DISCARDED)

        communes = join_stats(communes, stats)

        ctx = self._context
        self._context = replace(
            ctx,
            level=Level.COMMUNE,
            active_department=department,
            active_commune=None,
            features={**ctx.features, Level.COMMUNE: communes},
            view=ctx.view + 1,
        )
        effects: List[Effect] = [
            RenderLayer(level=Level.COMMUNE, features=list(communes)),
            SetLayerOpacity(level=Level.DEPARTMENT, opacity=DIMMED_OPACITY),
            SetLayerOpacity(level=Level.COMMUNE, opacity=1.0),
            SetBackButton(label="Back to departments"),
            self._panel(department, Level.DEPARTMENT),
            *color_effects(Level.COMMUNE, communes, ctx.indicator),
            self._zoom(department, DEFAULT_MAX_ZOOM),
        ]
        return await self._finish_commit(effects, version)

    async def select_commune(self, code: str) -> TransitionResult:
        """
        Select a commune of the displayed commune layer.

        Communes have no children in the map view: this only updates the
        panel, the zoom and the highlight.

        Raises:
            NavigationError: If the commune is not displayed
        """
        commune = self._context.find(Level.COMMUNE, code)
        if commune is None or self._context.level is not Level.COMMUNE:
            raise NavigationError(f"Commune {code} is not displayed")

        self._context = replace(self._context, active_commune=commune)
        effects: List[Effect] = [
            self._panel(commune, Level.COMMUNE),
            self._zoom(commune, COMMUNE_MAX_ZOOM),
            Highlight(level=Level.COMMUNE, code=commune.code),
        ]
        return self._result(TransitionStatus.COMMITTED, effects)

    async def back(self) -> TransitionResult:
        """
        Go up one level and re-aggregate it under the current filter.

        Returns:
            TransitionResult; ignored at the region level
        """
        ctx = self._context
        if ctx.level is Level.REGION:
            return self._result(TransitionStatus.IGNORED)

        if ctx.level is Level.COMMUNE:
            self._invalidate(Level.DEPARTMENT)
            self._context = replace(
                ctx,
                level=Level.DEPARTMENT,
                active_department=None,
                active_commune=None,
                features={**ctx.features, Level.COMMUNE: ()},
                view=ctx.view + 1,
            )
            effects: List[Effect] = [
                ClearLayer(level=Level.COMMUNE),
                SetLayerOpacity(level=Level.DEPARTMENT, opacity=1.0),
                SetBackButton(label="Back to regions"),
            ]
            if ctx.active_department is not None:
                effects.append(self._panel(ctx.active_department, Level.DEPARTMENT))
            if ctx.active_region is not None:
                effects.append(self._zoom(ctx.active_region, BACK_MAX_ZOOM))
        else:
            self._invalidate(Level.REGION)
            self._context = replace(
                ctx,
                level=Level.REGION,
                active_region=None,
                active_department=None,
                active_commune=None,
                features={Level.REGION: ctx.displayed(Level.REGION)},
                view=ctx.view + 1,
            )
            effects = [
                ClearLayer(level=Level.DEPARTMENT),
                ClearLayer(level=Level.COMMUNE),
                SetLayerOpacity(level=Level.REGION, opacity=1.0),
                SetBackButton(label=None),
                ResetZoom(),
            ]
            if ctx.active_region is not None:
                effects.append(self._panel(ctx.active_region, Level.REGION))

        refreshed = await self._refresh()
        status = TransitionStatus.COMMITTED
        if refreshed.status is not TransitionStatus.COMMITTED:
            logger.warning(f"Back to {self._context.level.value} kept stale colours: refresh {refreshed.status.value}")
            status = refreshed.status
        return self._result(status, effects + refreshed.effects)

    async def change_filter(self, labels: Iterable[str]) -> TransitionResult:
        """
        Replace the land-cover selection and re-aggregate the current level.

        Args:
            labels: Labels to select

        Returns:
            TransitionResult of the refresh, preceded by the filter label update
        """
        self.filter_state.set_selected(labels)
        effects: List[Effect] = [UpdateFilterLabel(label=self.filter_state.summary_label())]
        refreshed = await self._refresh()
        return self._result(refreshed.status, effects + refreshed.effects)

    async def refresh(self) -> TransitionResult:
        """Re-aggregate the current level under the current filter."""
        return await self._refresh()

    def change_indicator(self, indicator: Indicator) -> TransitionResult:
        """Colour the current layer by another indicator, without fetching."""
        indicator = Indicator(indicator)
        self._context = replace(self._context, indicator=indicator)
        ctx = self._context
        effects = color_effects(ctx.level, ctx.displayed(), indicator)
        selected = ctx.active_commune or ctx.active_department or ctx.active_region
        if selected is not None:
            effects.append(self._panel(selected, selected.level))
        return self._result(TransitionStatus.COMMITTED, effects)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _refresh(self) -> TransitionResult:
        ctx = self._context
        level = ctx.level
        version = self.filter_state.version
        selected = self.filter_state.selected

        try:
            if level is Level.COMMUNE:
                stats = await self.provider.aggregate_communes_in_department(
                    ctx.active_department.code, selected
                )
            else:
                stats = await self.provider.aggregate_by_level(level, selected)
        except FETCH_ERRORS as e:
            logger.error(f"Refreshing {level.value} statistics failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)

        if self._context.view != ctx.view or self.filter_state.version != version:
            logger.debug(f"Dropping stale {level.value} refresh")
            return self._result(TransitionStatus.DISCARDED)

        current = self._context
        joined = join_stats(current.displayed(level), stats)
        features = {**current.features, level: joined}
        updates = {"features": features}
        # keep the selected areas in sync with the repainted layers
        for attr in ("active_region", "active_department", "active_commune"):
            area = getattr(current, attr)
            if area is not None and area.level is level:
                updates[attr] = area.with_stats(stats.get(area.code))
        self._context = replace(current, **updates)
        return self._result(
            TransitionStatus.COMMITTED,
            color_effects(level, joined, current.indicator),
        )

    async def _finish_commit(self, effects: List[Effect], version: int) -> TransitionResult:
        """Chain a refresh when the filter changed while the drill was pending."""
        if self.filter_state.version != version:
            refreshed = await self._refresh()
            effects = effects + refreshed.effects
        return self._result(TransitionStatus.COMMITTED, effects)

    def _result(
        self,
        status: TransitionStatus,
        effects: Optional[List[Effect]] = None,
    ) -> TransitionResult:
        return TransitionResult(status=status, context=self._context, effects=effects or [])

    def _panel(self, area: Area, level: Level) -> UpdatePanel:
        indicator = self._context.indicator
        domain = value_domain(self._context.displayed(level), indicator)
        displayed_max = domain[1] if domain else None
        value = area.value(indicator)
        ratio = 0.0
        if value is not None and displayed_max:
            ratio = max(0.0, value / displayed_max)
        return UpdatePanel(
            code=area.code,
            name=area.name,
            level_label=level.label,
            indicator_label=indicator.label,
            value=value,
            unit=indicator.unit,
            displayed_max=displayed_max,
            ratio=ratio,
            top_categories=(
                area.stats.top_categories(settings.breakdown_top_n) if area.stats else []
            ),
        )

    def _zoom(self, area: Area, max_zoom: float) -> ZoomTo:
        bounds = geometry_bounds(area.geometry)
        return ZoomTo(
            code=area.code,
            bounds=bounds,
            scale=zoom_scale(bounds, max_zoom),
            max_zoom=max_zoom,
        )
