"""
Unit tests for the geography API client.

Tests cover:
- Successful API responses
- Retry logic on 5xx errors
- No retry on 4xx errors
- Async context manager
- Payload validation
"""
import pytest
import httpx
import respx
from unittest.mock import AsyncMock

from geodrill.domain.models import CommuneMatch
from geodrill.infrastructure.geo_api_client import (
    GeoAPIClient,
    GeoAPIError,
    get_geo_client,
)


# ============================================================
# API Client Initialization Tests
# ============================================================

class TestGeoClientInitialization:
    """Tests for API client initialization."""

    def test_client_initialization(self):
        """Client should initialize with correct configuration."""
        client = GeoAPIClient()

        assert client.base_url is not None
        assert client.regions_url.startswith("http")
        assert client.client is not None

    def test_singleton_pattern(self):
        """get_geo_client should return the same instance."""
        import geodrill.infrastructure.geo_api_client as module
        module._geo_client = None

        client1 = get_geo_client()
        client2 = get_geo_client()

        assert client1 is client2


# ============================================================
# Async Context Manager Tests
# ============================================================

class TestAsyncContextManager:
    """Tests for async context manager functionality."""

    @pytest.mark.asyncio
    async def test_context_manager_enter(self):
        """__aenter__ should return the client instance."""
        client = GeoAPIClient()

        async with client as ctx_client:
            assert ctx_client is client

    @pytest.mark.asyncio
    async def test_context_manager_exit_closes_client(self):
        """__aexit__ should close the HTTP client."""
        client = GeoAPIClient()
        client.close = AsyncMock()

        async with client:
            pass

        client.close.assert_called_once()


# ============================================================
# API Response Tests
# ============================================================

class TestAPIResponses:
    """Tests for API response handling."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_all_regions_uses_static_file(self):
        """Regions come from the absolute GeoJSON URL, not the API base."""
        client = GeoAPIClient()
        collection = {"type": "FeatureCollection", "features": []}
        route = respx.get(client.regions_url).mock(
            return_value=httpx.Response(200, json=collection)
        )

        result = await client.fetch_all_regions()

        assert result == collection
        assert route.called
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_departments_of_region(self):
        client = GeoAPIClient()
        respx.get(f"{client.base_url}/regions/84/departements").mock(
            return_value=httpx.Response(200, json=[
                {"nom": "Ain", "code": "01", "codeRegion": "84"},
                {"nom": "Rhône", "code": "69", "codeRegion": "84"},
            ])
        )

        result = await client.fetch_departments_of_region("84")

        assert [row["code"] for row in result] == ["01", "69"]
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_membership_payload_must_be_a_list(self):
        client = GeoAPIClient()
        respx.get(f"{client.base_url}/regions/84/departements").mock(
            return_value=httpx.Response(200, json={"code": "01"})
        )

        with pytest.raises(GeoAPIError, match="Unexpected membership payload"):
            await client.fetch_departments_of_region("84")

        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_commune_geometries_requests_contours(self):
        client = GeoAPIClient()
        route = respx.get(f"{client.base_url}/departements/01/communes").mock(
            return_value=httpx.Response(200, json={"type": "FeatureCollection", "features": []})
        )

        await client.fetch_commune_geometries("01")

        params = route.calls.last.request.url.params
        assert params["format"] == "geojson"
        assert params["geometry"] == "contour"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_communes_reads_api_field_names(self):
        client = GeoAPIClient()
        route = respx.get(f"{client.base_url}/communes").mock(
            return_value=httpx.Response(200, json=[
                {"nom": "Lyon", "code": "69123", "codeDepartement": "69", "codeRegion": "84"},
            ])
        )

        result = await client.search_communes_by_name("lyo", limit=3)

        assert result == [CommuneMatch(
            name="Lyon", code="69123", department_code="69", region_code="84"
        )]
        params = route.calls.last.request.url.params
        assert params["nom"] == "lyo"
        assert params["limit"] == "3"
        await client.close()


# ============================================================
# Error Handling Tests
# ============================================================

class TestErrorHandling:
    """Tests for error handling."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_4xx_error_no_retry(self):
        """4xx errors should not trigger retry."""
        client = GeoAPIClient()

        respx.get(f"{client.base_url}/test").mock(
            return_value=httpx.Response(404, text="Not Found")
        )

        with pytest.raises(GeoAPIError, match="404") as exc_info:
            await client._make_request("GET", "/test")

        assert exc_info.value.status_code == 404
        # Should only be called once (no retry)
        assert respx.calls.call_count == 1
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_5xx_error_triggers_retry(self):
        """5xx errors should trigger retry."""
        client = GeoAPIClient()

        # First call fails with 503, second succeeds
        route = respx.get(f"{client.base_url}/test")
        route.side_effect = [
            httpx.Response(503, text="Service Unavailable"),
            httpx.Response(200, json={"result": "success"}),
        ]

        result = await client._make_request("GET", "/test")

        assert result == {"result": "success"}
        assert respx.calls.call_count == 2  # Retried once
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json_raises(self):
        client = GeoAPIClient()

        respx.get(f"{client.base_url}/test").mock(
            return_value=httpx.Response(200, text="<html>")
        )

        with pytest.raises(GeoAPIError, match="Invalid JSON"):
            await client._make_request("GET", "/test")

        await client.close()
