"""
Domain service: registry of regions, departments and communes.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

import httpx

from geodrill.config import settings
from geodrill.domain.models import Area, Level, normalize_code
from geodrill.infrastructure.api_constants import GeoAPIConstants
from geodrill.infrastructure.geo_api_client import GeoAPIClient, GeoAPIError


logger = logging.getLogger(__name__)


def department_code_of_commune(commune_code: str) -> str:
    """
    Derive the department code from a commune code.

    Overseas communes (codes starting with 97) belong to a 3-digit
    department, every other commune to a 2-character one.

    Args:
        commune_code: Commune code, padded or not

    Returns:
        Department code
    """
    code = normalize_code(commune_code, Level.COMMUNE)
    if code.startswith(GeoAPIConstants.OVERSEAS_PREFIX):
        return code[:3]
    return code[:2]


class GeographyRegistry:
    """
    Holds the static region and department features.

    Regions and departments are fetched once by `load` and never change
    afterwards. Commune geometries are fetched on demand for one department.
    """

    def __init__(self, client: GeoAPIClient, cache_membership: Optional[bool] = None):
        """
        Initialize the registry.

        Args:
            client: Geography API client
            cache_membership: Keep region membership after the first lookup,
                defaults to the configured value
        """
        self.client = client
        self.cache_membership = (
            settings.cache_region_membership if cache_membership is None else cache_membership
        )
        self._regions: Tuple[Area, ...] = ()
        self._departments: Tuple[Area, ...] = ()
        self._membership: Dict[str, List[str]] = {}

    @property
    def loaded(self) -> bool:
        return bool(self._regions)

    @property
    def regions(self) -> Tuple[Area, ...]:
        return self._regions

    @property
    def departments(self) -> Tuple[Area, ...]:
        return self._departments

    async def load(self) -> None:
        """Fetch every region and every department concurrently."""
        regions, departments = await asyncio.gather(
            self.client.fetch_all_regions(),
            self.client.fetch_all_departments(),
        )
        self._regions = tuple(
            Area.from_feature(f, Level.REGION) for f in regions.get("features", [])
        )
        self._departments = tuple(
            Area.from_feature(f, Level.DEPARTMENT) for f in departments.get("features", [])
        )
        logger.info(
            f"Geography loaded: {len(self._regions)} regions, "
            f"{len(self._departments)} departments"
        )

    def region(self, code: str) -> Optional[Area]:
        code = normalize_code(code, Level.REGION)
        return next((r for r in self._regions if r.code == code), None)

    def department(self, code: str) -> Optional[Area]:
        code = normalize_code(code, Level.DEPARTMENT)
        return next((d for d in self._departments if d.code == code), None)

    async def departments_of_region(self, region_code: str) -> List[str]:
        """
        Resolve the department codes of a region.

        Args:
            region_code: Region code

        Returns:
            List of department codes

        Raises:
            GeoAPIError: If the membership lookup fails
        """
        region_code = normalize_code(region_code, Level.REGION)
        if self.cache_membership and region_code in self._membership:
            return list(self._membership[region_code])

        rows = await self.client.fetch_departments_of_region(region_code)
        codes = [normalize_code(row["code"], Level.DEPARTMENT) for row in rows if "code" in row]
        if self.cache_membership:
            self._membership[region_code] = codes
        return codes

    async def communes_of_department(self, department_code: str) -> List[Area]:
        """
        Fetch the commune features of a department.

        Args:
            department_code: Department code

        Returns:
            Commune areas without statistics
        """
        department_code = normalize_code(department_code, Level.DEPARTMENT)
        collection = await self.client.fetch_commune_geometries(department_code)
        return [
            Area.from_feature(f, Level.COMMUNE, parent_code=department_code)
            for f in collection.get("features", [])
        ]

    async def find_region_of_department(self, department_code: str) -> Optional[Area]:
        """
        Find the region owning a department by scanning every region's membership.

        Args:
            department_code: Department code

        Returns:
            The owning region, or None when no region lists the department
        """
        department_code = normalize_code(department_code, Level.DEPARTMENT)
        for region in self._regions:
            try:
                members = await self.departments_of_region(region.code)
            except (GeoAPIError, httpx.HTTPError) as e:
                logger.warning(f"Membership lookup failed for region {region.code}: {str(e)}")
                continue
            if department_code in members:
                return region
        return None

    def search_names(self, query: str) -> Tuple[List[Area], List[Area]]:
        """
        Match region and department names containing a query.

        Args:
            query: Free text, matched case-insensitively

        Returns:
            Tuple of (matching regions, matching departments)
        """
        needle = query.strip().lower()
        if not needle:
            return [], []
        regions = [r for r in self._regions if needle in r.name.lower()]
        departments = [d for d in self._departments if needle in d.name.lower()]
        return regions, departments
