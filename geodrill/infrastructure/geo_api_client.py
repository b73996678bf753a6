"""
Infrastructure layer: geography API client with retry logic.
"""
import logging
from typing import List, Dict, Any, Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from geodrill.config import settings
from geodrill.domain.models import CommuneMatch
from geodrill.infrastructure.api_constants import GeoAPIEndpoints, GeoAPIConstants


logger = logging.getLogger(__name__)


class GeoAPIError(Exception):
    """Custom exception for geography API errors."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GeoAPIClient:
    """
    Client for the static geography files and geo.api.gouv.fr.
    Implements retry logic with exponential backoff.
    """

    def __init__(self):
        """Initialize the API client with configuration."""
        self.base_url = settings.geo_api_base_url
        self.regions_url = settings.regions_geojson_url
        self.departments_url = settings.departments_geojson_url
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"accept": "application/json"},
            timeout=settings.http_timeout,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "GeoAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        reraise=True,
    )
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Any:
        """
        Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path or absolute URL
            **kwargs: Additional arguments for the request

        Returns:
            Decoded JSON payload

        Raises:
            GeoAPIError: If the request fails with a client error
            httpx.HTTPStatusError: On server errors once retries are exhausted
            httpx.TransportError: On network errors once retries are exhausted
        """
        try:
            response = await self.client.request(method, endpoint, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            # Retry on server errors (5xx)
            if e.response.status_code >= 500:
                logger.warning(f"Geo API {endpoint} answered {e.response.status_code}, retrying")
                raise
            # Don't retry on client errors (4xx)
            raise GeoAPIError(
                f"API request failed: {e.response.status_code} - {e.response.text}",
                status_code=e.response.status_code,
            )
        except ValueError as e:
            raise GeoAPIError(f"Invalid JSON from {endpoint}: {str(e)}")

    async def fetch_all_regions(self) -> Dict[str, Any]:
        """
        Fetch the FeatureCollection of every region.

        Returns:
            GeoJSON FeatureCollection
        """
        return await self._make_request("GET", self.regions_url)

    async def fetch_all_departments(self) -> Dict[str, Any]:
        """
        Fetch the FeatureCollection of every department.

        Returns:
            GeoJSON FeatureCollection
        """
        return await self._make_request("GET", self.departments_url)

    async def fetch_departments_of_region(self, region_code: str) -> List[Dict[str, Any]]:
        """
        Fetch the departments belonging to a region.

        Args:
            region_code: Region code

        Returns:
            List of department metadata dicts, each with a `code` key

        Raises:
            GeoAPIError: If the request fails
        """
        data = await self._make_request(
            "GET",
            GeoAPIEndpoints.get_region_departments(region_code),
        )
        if not isinstance(data, list):
            raise GeoAPIError(f"Unexpected membership payload for region {region_code}")
        return data

    async def fetch_commune_geometries(self, department_code: str) -> Dict[str, Any]:
        """
        Fetch commune contours of a department.

        Args:
            department_code: Department code

        Returns:
            GeoJSON FeatureCollection of communes
        """
        return await self._make_request(
            "GET",
            GeoAPIEndpoints.get_department_communes(department_code),
            params=GeoAPIConstants.COMMUNE_GEOMETRY_PARAMS,
        )

    async def search_communes_by_name(
        self,
        query: str,
        limit: Optional[int] = None,
    ) -> List[CommuneMatch]:
        """
        Look up communes whose name matches a query.

        Args:
            query: Free text
            limit: Maximum number of communes, defaults to the configured limit

        Returns:
            List of CommuneMatch instances
        """
        data = await self._make_request(
            "GET",
            GeoAPIEndpoints.COMMUNES,
            params={
                "nom": query,
                "fields": GeoAPIConstants.COMMUNE_SEARCH_FIELDS,
                "limit": limit or settings.commune_search_limit,
            },
        )
        return [CommuneMatch(**row) for row in data]


# Singleton instance
_geo_client: Optional[GeoAPIClient] = None


def get_geo_client() -> GeoAPIClient:
    """
    Get or create the singleton geography client instance.

    Returns:
        GeoAPIClient instance
    """
    global _geo_client
    if _geo_client is None:
        _geo_client = GeoAPIClient()
    return _geo_client
