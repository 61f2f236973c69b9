"""Geospatial primitives: validated coordinates and haversine distance."""
import math
from dataclasses import dataclass

from poi_discovery.exceptions import InvalidCoordinate

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point. Out-of-range values are rejected, never clamped."""
    latitude: float
    longitude: float

    def __post_init__(self):
        lat = _as_float(self.latitude, "latitude")
        lon = _as_float(self.longitude, "longitude")
        if not -90.0 <= lat <= 90.0:
            raise InvalidCoordinate(f"Latitude must be between -90 and 90, got {lat}")
        if not -180.0 <= lon <= 180.0:
            raise InvalidCoordinate(f"Longitude must be between -180 and 180, got {lon}")
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    def rounded(self, places: int = 4) -> "Coordinate":
        return Coordinate(round(self.latitude, places), round(self.longitude, places))


def _as_float(value, field: str) -> float:
    if isinstance(value, bool):
        raise InvalidCoordinate(f"{field} must be a number, got {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinate(f"{field} must be a number, got {value!r}")
    if math.isnan(result) or math.isinf(result):
        raise InvalidCoordinate(f"{field} must be finite, got {value!r}")
    return result


def haversine_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two coordinates."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    # rounding can push h a hair above 1 for antipodal points
    h = min(1.0, h)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
