"""
Domain service: per-area aggregation of parcel indicators.

Every aggregate is computed in two steps: first per (area, land-cover group),
then per area, so that the area means are surface-weighted means of the
per-group means and the per-group breakdown stays available for charts.
"""
import asyncio
import logging
from typing import Collection, Dict, List

import numpy as np
import pandas as pd

from geodrill.domain.models import (
    AreaStats,
    CategoryBreakdown,
    Level,
    ParcelStats,
    normalize_code,
)
from geodrill.infrastructure.parcel_dataset import (
    ALTITUDE_COLUMN,
    COMMUNE_COLUMN,
    DEPARTMENT_COLUMN,
    LAND_COVER_COLUMN,
    PARCEL_ID_COLUMN,
    REGION_COLUMN,
    SLOPE_COLUMN,
    SURFACE_COLUMN,
    ParcelDataset,
)


logger = logging.getLogger(__name__)

LEVEL_COLUMNS = {
    Level.REGION: REGION_COLUMN,
    Level.DEPARTMENT: DEPARTMENT_COLUMN,
    Level.COMMUNE: COMMUNE_COLUMN,
}


class AggregationError(Exception):
    """Raised when the parcel dataset cannot be aggregated."""
    pass


class AggregationProvider:
    """
    Computes per-area statistics from the parcel dataset.

    The pandas work is CPU bound, so the public coroutines run it in a
    worker thread and the event loop stays responsive while it runs.
    """

    def __init__(self, dataset: ParcelDataset):
        """
        Initialize the provider.

        Args:
            dataset: Parcel dataset to aggregate
        """
        self.dataset = dataset

    async def list_land_cover_categories(self) -> List[str]:
        """
        List the distinct land-cover groups present in the dataset.

        Returns:
            Sorted list of labels
        """
        return await self._run(self._categories)

    async def aggregate_by_level(
        self,
        level: Level,
        selected_types: Collection[str],
    ) -> Dict[str, AreaStats]:
        """
        Aggregate every area of a level under a land-cover filter.

        Args:
            level: region, department or commune
            selected_types: Land-cover labels to keep

        Returns:
            Mapping of area code to statistics; empty when no type is selected

        Raises:
            ValueError: If the level cannot be aggregated
            AggregationError: If the dataset cannot be aggregated
        """
        level = Level(level)
        if level not in LEVEL_COLUMNS:
            raise ValueError(f"Cannot aggregate parcels by {level.value}")
        if not selected_types:
            return {}
        return await self._run(self._aggregate, LEVEL_COLUMNS[level], level, set(selected_types), None)

    async def aggregate_communes_in_department(
        self,
        department_code: str,
        selected_types: Collection[str],
    ) -> Dict[str, AreaStats]:
        """
        Aggregate the communes of one department.

        Args:
            department_code: Department code
            selected_types: Land-cover labels to keep

        Returns:
            Mapping of 5-character commune code to statistics
        """
        if not selected_types:
            return {}
        scope = (DEPARTMENT_COLUMN, normalize_code(department_code, Level.DEPARTMENT))
        return await self._run(self._aggregate, COMMUNE_COLUMN, Level.COMMUNE, set(selected_types), scope)

    async def aggregate_parcels_in_commune(
        self,
        commune_code: str,
        selected_types: Collection[str],
    ) -> List[ParcelStats]:
        """
        List the parcels of one commune.

        Args:
            commune_code: Commune code
            selected_types: Land-cover labels to keep

        Returns:
            List of ParcelStats, largest parcels first
        """
        if not selected_types:
            return []
        return await self._run(
            self._parcels,
            normalize_code(commune_code, Level.COMMUNE),
            set(selected_types),
        )

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (KeyError, TypeError, pd.errors.DataError) as e:
            raise AggregationError(f"Aggregation failed: {str(e)}") from e

    def _categories(self) -> List[str]:
        labels = self.dataset.frame[LAND_COVER_COLUMN].dropna().unique()
        return sorted(str(label) for label in labels)

    def _aggregate(
        self,
        area_column: str,
        level: Level,
        selected_types: set,
        scope,
    ) -> Dict[str, AreaStats]:
        df = self.dataset.frame
        mask = df[LAND_COVER_COLUMN].isin(selected_types)
        if scope is not None:
            column, value = scope
            mask &= df[column] == value
        df = df.loc[mask]
        if df.empty:
            return {}

        per_type = _aggregate_per_type(df, area_column)

        result: Dict[str, AreaStats] = {}
        for code, group in per_type.groupby(area_column, sort=False):
            breakdown = [
                CategoryBreakdown(
                    label=str(row[LAND_COVER_COLUMN]),
                    surface=float(row["surface"]),
                    altitude=float(row["altitude"]),
                    slope=float(row["slope"]),
                )
                for _, row in group.iterrows()
            ]
            try:
                stats = AreaStats.from_breakdown(int(group["count"].sum()), breakdown)
            except ValueError:
                # zero-surface areas carry no meaningful mean
                continue
            result[normalize_code(code, level)] = stats

        logger.debug(f"Aggregated {len(result)} areas on {area_column}")
        return result

    def _parcels(self, commune_code: str, selected_types: set) -> List[ParcelStats]:
        df = self.dataset.frame
        df = df.loc[
            (df[COMMUNE_COLUMN] == commune_code)
            & df[LAND_COVER_COLUMN].isin(selected_types)
        ].sort_values(SURFACE_COLUMN, ascending=False)
        return [
            ParcelStats(
                parcel_id=str(row[PARCEL_ID_COLUMN]),
                commune_code=commune_code,
                land_cover=str(row[LAND_COVER_COLUMN]),
                surface=float(row[SURFACE_COLUMN]),
                altitude=float(row[ALTITUDE_COLUMN]),
                slope=float(row[SLOPE_COLUMN]),
            )
            for _, row in df.iterrows()
        ]


def _aggregate_per_type(df: pd.DataFrame, area_column: str) -> pd.DataFrame:
    """Count, surface and surface-weighted means per (area, land-cover group)."""
    work = pd.DataFrame({
        area_column: df[area_column],
        LAND_COVER_COLUMN: df[LAND_COVER_COLUMN],
        "surface": df[SURFACE_COLUMN],
        "alt_x_surf": df[ALTITUDE_COLUMN] * df[SURFACE_COLUMN],
        "slope_x_surf": df[SLOPE_COLUMN] * df[SURFACE_COLUMN],
    })
    grouped = (
        work.groupby([area_column, LAND_COVER_COLUMN], sort=False)
        .agg(
            count=("surface", "size"),
            surface=("surface", "sum"),
            alt_x_surf=("alt_x_surf", "sum"),
            slope_x_surf=("slope_x_surf", "sum"),
        )
        .reset_index()
    )
    grouped = grouped[grouped["surface"] > 0].copy()
    grouped["altitude"] = grouped["alt_x_surf"] / grouped["surface"]
    grouped["slope"] = grouped["slope_x_surf"] / grouped["surface"]
    return grouped.replace([np.inf, -np.inf], np.nan).dropna(subset=["altitude", "slope"])
