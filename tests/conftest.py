"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- A small parcel dataset and its aggregation provider
- A fake geography client whose fetches can be held open
- A loaded geography registry and a started navigation state machine
"""
import asyncio
from typing import Dict, List, Optional, Set

import pandas as pd
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from geodrill.domain.models import CommuneMatch, Indicator
from geodrill.infrastructure.geo_api_client import GeoAPIError
from geodrill.infrastructure.parcel_dataset import ParcelDataset
from geodrill.main import app
from geodrill.services.application.viewer_session import ViewerSession
from geodrill.services.domain.aggregation import AggregationProvider
from geodrill.services.domain.filter_state import FilterState
from geodrill.services.domain.geography import GeographyRegistry
from geodrill.services.domain.navigation import NavigationStateMachine


LAND_COVER_TYPES = ["Estive", "Prairie permanente", "Prairie temporaire"]


def square(lon: float, lat: float, size: float = 1.0) -> dict:
    """GeoJSON polygon of a square whose south-west corner is (lon, lat)."""
    return {
        "type": "Polygon",
        "coordinates": [[
            [lon, lat],
            [lon + size, lat],
            [lon + size, lat + size],
            [lon, lat + size],
            [lon, lat],
        ]],
    }


def feature(code: str, name: str, lon: float, lat: float, size: float = 1.0) -> dict:
    return {
        "type": "Feature",
        "properties": {"code": code, "nom": name},
        "geometry": square(lon, lat, size),
    }


REGIONS = {
    "type": "FeatureCollection",
    "features": [
        feature("11", "Île-de-France", 1.5, 48.1, 1.5),
        feature("84", "Auvergne-Rhône-Alpes", 2.0, 44.1, 5.0),
        feature("93", "Provence-Alpes-Côte d'Azur", 4.2, 43.0, 3.0),
    ],
}

DEPARTMENTS = {
    "type": "FeatureCollection",
    "features": [
        feature("01", "Ain", 4.7, 45.6, 1.0),
        feature("13", "Bouches-du-Rhône", 4.2, 43.2, 1.0),
        feature("38", "Isère", 4.7, 44.7, 1.2),
        feature("69", "Rhône", 4.2, 45.4, 0.6),
        feature("75", "Paris", 2.2, 48.8, 0.2),
    ],
}

MEMBERSHIP = {
    "11": ["75"],
    "84": ["01", "38", "69"],
    "93": ["13"],
}

COMMUNES = {
    "01": [
        feature("01001", "L'Abergement-Clémenciat", 4.9, 46.1, 0.05),
        feature("01002", "L'Abergement-de-Varey", 5.4, 45.9, 0.05),
        feature("01004", "Ambérieu-en-Bugey", 5.3, 45.9, 0.1),
    ],
    "13": [feature("13055", "Marseille", 5.3, 43.2, 0.2)],
    "38": [feature("38185", "Grenoble", 5.7, 45.1, 0.1)],
    "69": [feature("69123", "Lyon", 4.8, 45.7, 0.1)],
    "75": [feature("75056", "Paris", 2.2, 48.8, 0.1)],
}

COMMUNE_MATCHES = [
    {"nom": "Lyon", "code": "69123", "codeDepartement": "69", "codeRegion": "84"},
    {"nom": "Marseille", "code": "13055", "codeDepartement": "13", "codeRegion": "93"},
    {"nom": "Paris", "code": "75056", "codeDepartement": "75", "codeRegion": "11"},
]


class FakeGeoClient:
    """
    In-memory stand-in for GeoAPIClient.

    Fetches for a code listed in `region_gates` or `commune_gates` wait on
    that asyncio.Event, so tests decide in which order results arrive.
    """

    def __init__(self):
        self.region_gates: Dict[str, asyncio.Event] = {}
        self.commune_gates: Dict[str, asyncio.Event] = {}
        self.failing_regions: Set[str] = set()
        self.failing_departments: Set[str] = set()
        # raw exceptions raised as-is, as when retries run out
        self.region_errors: Dict[str, Exception] = {}
        self.fail_search = False
        self.membership_calls: List[str] = []
        self.commune_calls: List[str] = []

    async def fetch_all_regions(self) -> dict:
        return REGIONS

    async def fetch_all_departments(self) -> dict:
        return DEPARTMENTS

    async def fetch_departments_of_region(self, region_code: str) -> List[dict]:
        self.membership_calls.append(region_code)
        if region_code in self.region_gates:
            await self.region_gates[region_code].wait()
        if region_code in self.region_errors:
            raise self.region_errors[region_code]
        if region_code in self.failing_regions:
            raise GeoAPIError(f"Region {region_code} unavailable", status_code=503)
        return [{"code": code} for code in MEMBERSHIP.get(region_code, [])]

    async def fetch_commune_geometries(self, department_code: str) -> dict:
        self.commune_calls.append(department_code)
        if department_code in self.commune_gates:
            await self.commune_gates[department_code].wait()
        if department_code in self.failing_departments:
            raise GeoAPIError(f"Department {department_code} unavailable", status_code=503)
        return {"type": "FeatureCollection", "features": COMMUNES.get(department_code, [])}

    async def search_communes_by_name(self, query: str, limit: Optional[int] = None) -> List[CommuneMatch]:
        if self.fail_search:
            raise GeoAPIError("Search unavailable", status_code=503)
        needle = query.lower()
        rows = [row for row in COMMUNE_MATCHES if needle in row["nom"].lower()]
        return [CommuneMatch(**row) for row in rows[: limit or 5]]

    async def close(self):
        pass


# ============================================================
# Dataset Fixtures
# ============================================================

@pytest.fixture
def parcels_frame() -> pd.DataFrame:
    """Parcels of four departments; one commune code lost its leading zero."""
    return pd.DataFrame({
        "id_parcel": ["p1", "p2", "p3", "p4", "p5", "p6", "p7", "p8"],
        "reg_parc": ["84", "84", "84", "84", "84", "11", "93", "84"],
        "dep_parc": ["01", "01", "01", "69", "69", "75", "13", "01"],
        "com_parc": [1001, "1001", "01002", "69123", "69123", "75056", "13055", "01002"],
        "libelle_group": [
            "Prairie permanente",
            "Prairie temporaire",
            "Prairie permanente",
            "Prairie permanente",
            "Estive",
            "Prairie temporaire",
            "Estive",
            "Prairie permanente",
        ],
        "surf_parc": [2.0, 1.0, 3.0, 3.0, 1.0, 0.5, 2.0, 1.0],
        "alt_mean": [300.0, 330.0, 250.0, 200.0, 1200.0, 40.0, 800.0, 270.0],
        "pente_mean": [5.0, 8.0, 3.0, 2.0, 25.0, 1.0, 15.0, 4.0],
    })


@pytest.fixture
def parcel_dataset(parcels_frame) -> ParcelDataset:
    return ParcelDataset(parcels_frame)


@pytest.fixture
def provider(parcel_dataset) -> AggregationProvider:
    return AggregationProvider(parcel_dataset)


# ============================================================
# Geography Fixtures
# ============================================================

@pytest.fixture
def geo_client() -> FakeGeoClient:
    return FakeGeoClient()


@pytest_asyncio.fixture
async def registry(geo_client) -> GeographyRegistry:
    """Loaded registry that looks membership up on every call."""
    registry = GeographyRegistry(geo_client, cache_membership=False)
    await registry.load()
    return registry


@pytest.fixture
def filter_state() -> FilterState:
    return FilterState(LAND_COVER_TYPES)


@pytest_asyncio.fixture
async def navigator(registry, provider, filter_state) -> NavigationStateMachine:
    """State machine already displaying the region layer."""
    machine = NavigationStateMachine(
        registry, provider, filter_state, indicator=Indicator.ALTITUDE
    )
    await machine.start()
    return machine


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def started_session(geo_client, provider) -> ViewerSession:
    """Viewer session started outside of any running event loop."""
    session = ViewerSession(
        client=geo_client,
        provider=provider,
        registry=GeographyRegistry(geo_client, cache_membership=True),
    )
    asyncio.run(session.start())
    return session


@pytest.fixture
def test_client() -> TestClient:
    """Create a synchronous test client for FastAPI."""
    return TestClient(app)
