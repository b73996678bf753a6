"""
Domain models for areas, parcels and their aggregated statistics.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, datasets, etc.).
"""
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
from pydantic import BaseModel, Field


class Level(str, Enum):
    """Geographic level of an area."""
    REGION = "region"
    DEPARTMENT = "department"
    COMMUNE = "commune"
    PARCEL = "parcel"

    @property
    def label(self) -> str:
        return LEVEL_LABELS[self]


LEVEL_LABELS = {
    Level.REGION: "Region",
    Level.DEPARTMENT: "Department",
    Level.COMMUNE: "Commune",
    Level.PARCEL: "Parcel",
}


class Indicator(str, Enum):
    """Indicator used to colour areas."""
    ALTITUDE = "altitude"
    SLOPE = "slope"

    @property
    def unit(self) -> str:
        return "m" if self is Indicator.ALTITUDE else "%"

    @property
    def label(self) -> str:
        return "Mean altitude" if self is Indicator.ALTITUDE else "Mean slope"


def normalize_code(code: Any, level: Level) -> str:
    """
    Return the canonical string form of an area code.

    Commune and parcel codes are zero-padded to 5 characters,
    region and department codes are kept unpadded.

    Args:
        code: Raw code as found in a dataset or a GeoJSON property
        level: Level the code belongs to

    Returns:
        Canonical code
    """
    text = str(code).strip()
    if level in (Level.COMMUNE, Level.PARCEL):
        return text.zfill(5)
    return text


class CategoryBreakdown(BaseModel):
    """Statistics of one land-cover category inside an area."""
    label: str
    surface: float = Field(description="Surface in hectares")
    altitude: float = Field(description="Surface-weighted mean altitude in meters")
    slope: float = Field(description="Surface-weighted mean slope")

    class Config:
        frozen = True


class AreaStats(BaseModel):
    """Aggregated indicator bundle for one area under one filter."""
    parcel_count: int = Field(ge=0)
    total_surface: float = Field(description="Surface in hectares")
    altitude: float
    slope: float
    breakdown_by_type: List[CategoryBreakdown] = Field(default_factory=list)

    class Config:
        frozen = True

    @classmethod
    def from_breakdown(
        cls,
        parcel_count: int,
        breakdown: List[CategoryBreakdown],
    ) -> "AreaStats":
        """
        Build area statistics from per-category values.

        Altitude and slope are the surface-weighted means of the categories.

        Args:
            parcel_count: Number of parcels in the area
            breakdown: One entry per land-cover category present

        Returns:
            AreaStats instance

        Raises:
            ValueError: If the breakdown is empty or has no surface
        """
        if not breakdown:
            raise ValueError("Cannot build statistics from an empty breakdown")

        surfaces = np.array([c.surface for c in breakdown], dtype=float)
        total = float(surfaces.sum())
        if total <= 0:
            raise ValueError("Cannot build statistics from a zero surface")

        altitude = np.average([c.altitude for c in breakdown], weights=surfaces)
        slope = np.average([c.slope for c in breakdown], weights=surfaces)
        return cls(
            parcel_count=parcel_count,
            total_surface=total,
            altitude=float(altitude),
            slope=float(slope),
            breakdown_by_type=list(breakdown),
        )

    def value(self, indicator: Indicator) -> float:
        """Return the value of the given indicator."""
        if indicator is Indicator.ALTITUDE:
            return self.altitude
        return self.slope

    def top_categories(self, n: int) -> List[CategoryBreakdown]:
        """Return the n categories covering the largest surface."""
        ranked = sorted(self.breakdown_by_type, key=lambda c: c.surface, reverse=True)
        return ranked[:n]


class Area(BaseModel):
    """A geographic unit at one level, optionally joined with its statistics."""
    code: str
    name: str
    level: Level
    geometry: Optional[Dict[str, Any]] = Field(
        default=None,
        description="GeoJSON geometry, only consumed by the renderer"
    )
    parent_code: Optional[str] = None
    stats: Optional[AreaStats] = Field(
        default=None,
        description="None when no parcel matched the active filter"
    )

    class Config:
        frozen = True

    def with_stats(self, stats: Optional[AreaStats]) -> "Area":
        """Return a new area carrying the given statistics."""
        return self.model_copy(update={"stats": stats})

    def with_parent(self, parent_code: Optional[str]) -> "Area":
        """Return a new area attached to the given parent."""
        return self.model_copy(update={"parent_code": parent_code})

    def value(self, indicator: Indicator) -> Optional[float]:
        """Indicator value, or None when the area has no data."""
        if self.stats is None:
            return None
        return self.stats.value(indicator)

    @classmethod
    def from_feature(
        cls,
        feature: Dict[str, Any],
        level: Level,
        parent_code: Optional[str] = None,
    ) -> "Area":
        """
        Build an area from a GeoJSON feature.

        Args:
            feature: GeoJSON feature with `code` and `nom` properties
            level: Level of the feature
            parent_code: Code of the parent area, if known

        Returns:
            Area without statistics
        """
        properties = feature.get("properties") or {}
        return cls(
            code=normalize_code(properties["code"], level),
            name=properties.get("nom") or properties.get("name") or str(properties["code"]),
            level=level,
            geometry=feature.get("geometry"),
            parent_code=parent_code,
        )


class ParcelStats(BaseModel):
    """Statistics of an individual land parcel."""
    parcel_id: str
    commune_code: str
    land_cover: str
    surface: float
    altitude: float
    slope: float

    class Config:
        frozen = True

    def to_area(self) -> Area:
        """Express the parcel as a parcel-level area for the scatter view."""
        breakdown = CategoryBreakdown(
            label=self.land_cover,
            surface=self.surface,
            altitude=self.altitude,
            slope=self.slope,
        )
        return Area(
            code=self.parcel_id,
            name=f"{self.land_cover} ({self.parcel_id})",
            level=Level.PARCEL,
            parent_code=self.commune_code,
            stats=AreaStats(
                parcel_count=1,
                total_surface=self.surface,
                altitude=self.altitude,
                slope=self.slope,
                breakdown_by_type=[breakdown],
            ),
        )


class CommuneMatch(BaseModel):
    """Commune row returned by the remote name lookup."""
    name: str = Field(alias="nom")
    code: str
    department_code: Optional[str] = Field(default=None, alias="codeDepartement")
    region_code: Optional[str] = Field(default=None, alias="codeRegion")

    class Config:
        populate_by_name = True


class SearchCandidate(BaseModel):
    """One ranked result of a free-text search."""
    type: Level
    name: str
    code: str
    department_code: Optional[str] = None
    region_code: Optional[str] = None
