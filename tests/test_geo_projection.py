"""
Unit tests for bounds and zoom computation.
"""
import pytest

from geodrill.utils.geo_projection import (
    FRANCE_BOUNDS,
    geometry_bounds,
    project_bounds,
    zoom_scale,
)


def square(lon, lat, size):
    return {
        "type": "Polygon",
        "coordinates": [[
            [lon, lat], [lon + size, lat], [lon + size, lat + size], [lon, lat + size], [lon, lat],
        ]],
    }


class TestGeometryBounds:
    """Tests for GeoJSON bounding boxes."""

    def test_polygon_bounds(self):
        assert geometry_bounds(square(4.0, 45.0, 0.5)) == pytest.approx((4.0, 45.0, 4.5, 45.5))

    def test_missing_geometry(self):
        assert geometry_bounds(None) is None
        assert geometry_bounds({}) is None


class TestProjection:
    """Tests for the Lambert-93 projection."""

    def test_france_is_in_lambert_range(self):
        min_x, min_y, max_x, max_y = project_bounds(FRANCE_BOUNDS)

        assert min_x < max_x
        assert max_x - min_x > 1_000_000
        assert 5_500_000 < min_y < max_y < 7_500_000


class TestZoomScale:
    """Tests for the zoom factor."""

    def test_whole_country_is_not_zoomed(self):
        assert zoom_scale(FRANCE_BOUNDS, 20) == 1.0

    def test_smaller_area_zooms_further(self):
        region = zoom_scale((2.0, 44.0, 7.0, 49.0), 20)
        department = zoom_scale((4.7, 45.6, 5.7, 46.6), 20)

        assert 1.0 < region < department <= 20

    def test_clamped_to_max_zoom(self):
        assert zoom_scale((4.80, 45.70, 4.801, 45.701), 25) == 25

    def test_no_bounds(self):
        assert zoom_scale(None, 20) == 1.0
