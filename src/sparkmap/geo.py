"""Great-circle distance, geofence checks and coarse geocells."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Protocol

from sparkmap._constants import EARTH_RADIUS_M, GEOCELL_GRID_DEGREES
from sparkmap.models.lot import GeoPoint


class HasCoordinates(Protocol):
    lat: float
    lng: float


Point = HasCoordinates | Mapping[str, Any]


def _coords(point: Point) -> tuple[float, float]:
    if isinstance(point, Mapping):
        return float(point["lat"]), float(point["lng"])
    return float(point.lat), float(point.lng)


def distance_meters(a: Point, b: Point) -> float:
    """Haversine distance in meters between two ``lat``/``lng`` points."""
    lat_a, lng_a = _coords(a)
    lat_b, lng_b = _coords(b)
    d_lat = math.radians(lat_b - lat_a)
    d_lng = math.radians(lng_b - lng_a)
    s1 = math.radians(lat_a)
    s2 = math.radians(lat_b)
    x = math.sin(d_lat / 2) ** 2 + math.cos(s1) * math.cos(s2) * math.sin(d_lng / 2) ** 2
    # Rounding can push x marginally above 1 for antipodal points.
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, x)))


def within_radius(a: Point, b: Point, radius_meters: float) -> bool:
    """Whether *a* and *b* are at most *radius_meters* apart (inclusive)."""
    return distance_meters(a, b) <= radius_meters


def _round_to_grid(value: float) -> float:
    # Half steps round towards +inf.
    steps = math.floor(value / GEOCELL_GRID_DEGREES + 0.5)
    return round(steps * GEOCELL_GRID_DEGREES, 3)


def coords_to_cell_id(lat: float, lng: float) -> str:
    """Snap a coordinate onto the 0.005° grid and render it as ``"lat,lng"``."""
    return f"{_round_to_grid(lat)},{_round_to_grid(lng)}"


def cell_id_to_coords(cell_id: str) -> GeoPoint | None:
    """Parse a cell id back into its grid coordinate; ``None`` if malformed."""
    if not cell_id:
        return None
    lat_text, _, lng_text = cell_id.partition(",")
    try:
        lat = float(lat_text)
        lng = float(lng_text)
    except ValueError:
        return None
    if math.isnan(lat) or math.isnan(lng):
        return None
    return GeoPoint(lat=lat, lng=lng)
