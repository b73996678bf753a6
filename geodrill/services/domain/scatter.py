"""
Domain service: drill-down history of the altitude/slope scatter view.

The scatter view has its own level cursor, independent from the map, and
goes one level deeper: a commune drills into its individual parcels. Each
drill pushes the frame displayed before it, and back pops that frame and
shows it again as it was, without fetching anything.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from geodrill.domain.effects import Effect, RenderScatter, ScatterPoint
from geodrill.domain.models import Area, Level, normalize_code
from geodrill.services.domain.aggregation import AggregationProvider
from geodrill.services.domain.filter_state import FilterState
from geodrill.services.domain.geography import GeographyRegistry
from geodrill.services.domain.navigation import (
    FETCH_ERRORS,
    NavigationError,
    TransitionStatus,
    join_stats,
)


logger = logging.getLogger(__name__)

CHILD_LEVEL = {
    Level.REGION: Level.DEPARTMENT,
    Level.DEPARTMENT: Level.COMMUNE,
    Level.COMMUNE: Level.PARCEL,
}


@dataclass(frozen=True)
class ScatterFrame:
    """One entry of the scatter history."""
    level: Level
    features: Tuple[Area, ...]
    # code of the area drilled into, None for the region frame
    parent_code: Optional[str] = None


@dataclass(frozen=True)
class ScatterResult:
    status: TransitionStatus
    frame: ScatterFrame
    effects: List[Effect]

    @property
    def committed(self) -> bool:
        return self.status is TransitionStatus.COMMITTED


def scatter_points(features: Sequence[Area]) -> List[ScatterPoint]:
    """Plot every feature that has data at (altitude, slope)."""
    return [
        ScatterPoint(
            code=f.code,
            name=f.name,
            altitude=f.stats.altitude,
            slope=f.stats.slope,
            surface=f.stats.total_surface,
        )
        for f in features
        if f.stats is not None
    ]


class ScatterNavigator:
    """Scatter view drill-down with a LIFO back stack."""

    def __init__(
        self,
        registry: GeographyRegistry,
        provider: AggregationProvider,
        filter_state: FilterState,
    ):
        self.registry = registry
        self.provider = provider
        self.filter_state = filter_state
        self._frame = ScatterFrame(level=Level.REGION, features=())
        self._stack: List[ScatterFrame] = []
        self._token = 0

    @property
    def level(self) -> Level:
        return self._frame.level

    @property
    def frame(self) -> ScatterFrame:
        return self._frame

    @property
    def depth(self) -> int:
        return len(self._stack)

    async def start(self) -> ScatterResult:
        """Show every region and forget the history."""
        self._token += 1
        token = self._token
        try:
            features = await self._load(Level.REGION, None)
        except FETCH_ERRORS as e:
            logger.error(f"Loading scatter regions failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)
        if token != self._token:
            return self._result(TransitionStatus.DISCARDED)
        self._stack.clear()
        self._frame = ScatterFrame(level=Level.REGION, features=features)
        return self._result(TransitionStatus.COMMITTED, render=True)

    async def drill(self, code: str) -> ScatterResult:
        """
        Drill into one point of the current scatter.

        Args:
            code: Code of a displayed area

        Returns:
            ScatterResult; ignored at the parcel level

        Raises:
            NavigationError: If no displayed point has this code
        """
        before = self._frame
        if before.level is Level.PARCEL:
            return self._result(TransitionStatus.IGNORED)

        wanted = normalize_code(code, before.level)
        area = next((f for f in before.features if f.code == wanted), None)
        if area is None:
            raise NavigationError(f"{code} is not displayed in the scatter view")

        self._token += 1
        token = self._token
        child = CHILD_LEVEL[before.level]
        try:
            features = await self._load(child, area)
        except FETCH_ERRORS as e:
            logger.error(f"Scatter drill into {area.code} failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)

        if token != self._token:
            logger.debug(f"Dropping stale scatter drill into {area.code}")
            return self._result(TransitionStatus.DISCARDED)

        self._stack.append(before)
        self._frame = ScatterFrame(level=child, features=features, parent_code=area.code)
        return self._result(TransitionStatus.COMMITTED, render=True)

    def back(self) -> ScatterResult:
        """Restore the frame displayed before the last drill."""
        if not self._stack:
            return self._result(TransitionStatus.IGNORED)
        # a pending drill would otherwise push on top of the restored frame
        self._token += 1
        self._frame = self._stack.pop()
        return self._result(TransitionStatus.COMMITTED, render=True)

    async def refresh(self) -> ScatterResult:
        """Re-aggregate the current frame under the current filter."""
        frame = self._frame
        parent_code = frame.parent_code
        if frame.level is not Level.REGION and parent_code is None:
            return self._result(TransitionStatus.IGNORED)

        self._token += 1
        token = self._token
        try:
            if frame.level is Level.PARCEL:
                features = await self._parcels(parent_code)
            elif frame.level is Level.REGION:
                features = await self._load(Level.REGION, None)
            else:
                stats = await self._stats(frame.level, parent_code)
                features = join_stats(frame.features, stats)
        except FETCH_ERRORS as e:
            logger.error(f"Scatter refresh failed: {str(e)}")
            return self._result(TransitionStatus.ABORTED)

        if token != self._token:
            return self._result(TransitionStatus.DISCARDED)
        self._frame = replace(frame, features=features)
        return self._result(TransitionStatus.COMMITTED, render=True)

    async def _load(self, level: Level, parent: Optional[Area]) -> Tuple[Area, ...]:
        selected = self.filter_state.selected
        if level is Level.REGION:
            stats = await self.provider.aggregate_by_level(Level.REGION, selected)
            return join_stats(self.registry.regions, stats)

        if level is Level.DEPARTMENT:
            members, stats = await asyncio.gather(
                self.registry.departments_of_region(parent.code),
                self.provider.aggregate_by_level(Level.DEPARTMENT, selected),
            )
            member_codes = set(members)
            return join_stats(
                (d.with_parent(parent.code) for d in self.registry.departments if d.code in member_codes),
                stats,
            )

        if level is Level.COMMUNE:
            communes, stats = await asyncio.gather(
                self.registry.communes_of_department(parent.code),
                self.provider.aggregate_communes_in_department(parent.code, selected),
            )
            return join_stats(communes, stats)

        return await self._parcels(parent.code)

    async def _parcels(self, commune_code: str) -> Tuple[Area, ...]:
        parcels = await self.provider.aggregate_parcels_in_commune(
            commune_code, self.filter_state.selected
        )
        return tuple(p.to_area() for p in parcels)

    async def _stats(self, level: Level, parent_code: Optional[str]):
        selected = self.filter_state.selected
        if level is Level.COMMUNE:
            return await self.provider.aggregate_communes_in_department(parent_code, selected)
        return await self.provider.aggregate_by_level(level, selected)

    def _result(self, status: TransitionStatus, render: bool = False) -> ScatterResult:
        effects: List[Effect] = []
        if render:
            effects.append(RenderScatter(
                level=self._frame.level,
                points=scatter_points(self._frame.features),
                can_go_back=bool(self._stack),
            ))
        return ScatterResult(status=status, frame=self._frame, effects=effects)
