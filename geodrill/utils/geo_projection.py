"""
Geospatial projection utilities for zooming onto areas.
"""
from typing import Any, Dict, Optional, Tuple

from pyproj import Transformer
from shapely.geometry import shape


# Lambert-93, the conic conformal projection used for maps of France
LAMBERT_93 = "EPSG:2154"

# Metropolitan France extent in degrees (min lon, min lat, max lon, max lat)
FRANCE_BOUNDS = (-5.2, 41.3, 9.6, 51.1)

# Fraction of the viewport a zoomed area should fill
ZOOM_FILL = 0.8

_to_lambert = Transformer.from_crs("EPSG:4326", LAMBERT_93, always_xy=True)


def geometry_bounds(
    geometry: Optional[Dict[str, Any]]
) -> Optional[Tuple[float, float, float, float]]:
    """
    Get the bounding box of a GeoJSON geometry.

    Args:
        geometry: GeoJSON geometry dict

    Returns:
        (min lon, min lat, max lon, max lat), or None for a missing geometry
    """
    if not geometry:
        return None
    geom = shape(geometry)
    if geom.is_empty:
        return None
    return geom.bounds


def project_bounds(
    bounds: Tuple[float, float, float, float]
) -> Tuple[float, float, float, float]:
    """
    Project a lon/lat bounding box to Lambert-93 meters.

    Args:
        bounds: (min lon, min lat, max lon, max lat)

    Returns:
        (min x, min y, max x, max y) in meters
    """
    min_lon, min_lat, max_lon, max_lat = bounds
    xs, ys = _to_lambert.transform(
        [min_lon, min_lon, max_lon, max_lon],
        [min_lat, max_lat, min_lat, max_lat],
    )
    return min(xs), min(ys), max(xs), max(ys)


def zoom_scale(
    bounds: Optional[Tuple[float, float, float, float]],
    max_zoom: float,
    reference: Tuple[float, float, float, float] = FRANCE_BOUNDS,
) -> float:
    """
    Compute the zoom factor that fits an area in the viewport.

    The full reference extent is scale 1. The area is scaled so its larger
    side fills a fixed fraction of the viewport, clamped to [1, max_zoom].

    Args:
        bounds: Area bounding box in degrees
        max_zoom: Largest allowed zoom factor
        reference: Extent displayed at scale 1

    Returns:
        Zoom factor
    """
    if bounds is None:
        return 1.0
    ref_min_x, ref_min_y, ref_max_x, ref_max_y = project_bounds(reference)
    min_x, min_y, max_x, max_y = project_bounds(bounds)
    dx = (max_x - min_x) / (ref_max_x - ref_min_x)
    dy = (max_y - min_y) / (ref_max_y - ref_min_y)
    extent = max(dx, dy)
    if extent <= 0:
        return float(max_zoom)
    return max(1.0, min(max_zoom, ZOOM_FILL / extent))
