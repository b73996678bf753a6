"""
Unit tests for search and programmatic jumps.
"""
import httpx
import pytest
import pytest_asyncio

from geodrill.config import settings
from geodrill.domain.models import Level
from geodrill.services.application.jump_resolver import JumpResolver
from geodrill.services.domain.geography import department_code_of_commune


@pytest_asyncio.fixture
async def resolver(registry, navigator, geo_client) -> JumpResolver:
    return JumpResolver(registry, navigator, geo_client)


# ============================================================
# Search Tests
# ============================================================

class TestSearch:
    """Tests for candidate lookup and ordering."""

    @pytest.mark.asyncio
    async def test_regions_then_departments(self, resolver):
        candidates = await resolver.search("rh")

        assert [(c.type, c.code) for c in candidates] == [
            (Level.REGION, "84"),
            (Level.DEPARTMENT, "13"),
            (Level.DEPARTMENT, "69"),
        ]

    @pytest.mark.asyncio
    async def test_communes_come_last(self, resolver):
        candidates = await resolver.search("paris")

        assert [(c.type, c.code) for c in candidates] == [
            (Level.DEPARTMENT, "75"),
            (Level.COMMUNE, "75056"),
        ]
        assert candidates[-1].department_code == "75"
        assert candidates[-1].region_code == "11"

    @pytest.mark.asyncio
    async def test_short_query_returns_nothing(self, resolver):
        assert await resolver.search("l") == []
        assert await resolver.search("  ") == []

    @pytest.mark.asyncio
    async def test_results_are_capped(self, resolver, monkeypatch):
        monkeypatch.setattr(settings, "search_max_results", 2)

        candidates = await resolver.search("rh")

        assert [c.code for c in candidates] == ["84", "13"]

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local_matches(self, resolver, geo_client):
        geo_client.fail_search = True

        assert len(await resolver.search("rh")) == 3
        assert await resolver.search("lyon") == []


# ============================================================
# Jump Tests
# ============================================================

class TestJump:
    """Tests for jumps replaying the navigation transitions."""

    @pytest.mark.asyncio
    async def test_jump_to_region(self, resolver, navigator):
        outcome = await resolver.jump(Level.REGION, "84")

        assert outcome.completed
        assert outcome.reached is Level.REGION
        assert navigator.context.active_region.code == "84"

    @pytest.mark.asyncio
    async def test_jump_to_department_finds_its_region(self, resolver, navigator):
        outcome = await resolver.jump(Level.DEPARTMENT, "13")

        assert outcome.completed
        assert navigator.context.active_region.code == "93"
        assert navigator.context.active_department.code == "13"
        assert navigator.context.level is Level.COMMUNE

    @pytest.mark.asyncio
    async def test_jump_to_commune(self, resolver, navigator):
        outcome = await resolver.jump("commune", "69123")

        assert outcome.completed
        assert outcome.reached is Level.COMMUNE
        assert navigator.context.active_region.code == "84"
        assert navigator.context.active_department.code == "69"
        assert navigator.context.active_commune.code == "69123"
        assert outcome.effects

    @pytest.mark.asyncio
    async def test_unknown_commune_does_nothing(self, resolver, navigator):
        outcome = await resolver.jump(Level.COMMUNE, "99999")

        assert not outcome.completed
        assert outcome.reached is None
        assert navigator.context.level is Level.REGION

    @pytest.mark.asyncio
    async def test_commune_missing_from_department(self, resolver, navigator):
        outcome = await resolver.jump(Level.COMMUNE, "01999")

        assert not outcome.completed
        assert outcome.reached is Level.DEPARTMENT
        assert navigator.context.active_commune is None

    @pytest.mark.asyncio
    async def test_failing_step_stops_at_last_level(self, resolver, navigator, geo_client):
        geo_client.failing_departments.add("69")

        outcome = await resolver.jump(Level.COMMUNE, "69123")

        assert not outcome.completed
        assert outcome.reached is Level.REGION
        assert navigator.context.level is Level.DEPARTMENT
        assert navigator.context.active_region.code == "84"

    @pytest.mark.asyncio
    async def test_failing_region_lookup_is_skipped(self, resolver, geo_client):
        geo_client.failing_regions.add("11")

        outcome = await resolver.jump(Level.DEPARTMENT, "13")

        assert outcome.completed

    @pytest.mark.asyncio
    async def test_unreachable_region_is_skipped(self, resolver, navigator, geo_client):
        """Network errors left after retries skip the region like API errors do."""
        geo_client.region_errors["11"] = httpx.ConnectError("connection refused")

        outcome = await resolver.jump(Level.COMMUNE, "69123")

        assert outcome.completed
        assert navigator.context.active_region.code == "84"

    @pytest.mark.asyncio
    async def test_region_server_error_is_skipped(self, resolver, navigator, geo_client):
        request = httpx.Request("GET", "https://geo.api.gouv.fr/regions/11/departements")
        geo_client.region_errors["11"] = httpx.HTTPStatusError(
            "503 Service Unavailable",
            request=request,
            response=httpx.Response(503, request=request),
        )

        outcome = await resolver.jump(Level.DEPARTMENT, "13")

        assert outcome.completed
        assert navigator.context.active_region.code == "93"

    @pytest.mark.asyncio
    async def test_parcel_target_is_refused(self, resolver):
        outcome = await resolver.jump(Level.PARCEL, "p1")

        assert outcome.reached is None


class TestDepartmentOfCommune:
    """Tests for deriving a department from a commune code."""

    def test_metropolitan(self):
        assert department_code_of_commune("69123") == "69"
        assert department_code_of_commune("1001") == "01"

    def test_corsica(self):
        assert department_code_of_commune("2A004") == "2A"

    def test_overseas(self):
        assert department_code_of_commune("97411") == "974"
