"""Geo utilities: coordinates, haversine distance and distance labels."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

EARTH_RADIUS_KM = 6371.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    @property
    def is_valid(self) -> bool:
        return (
            _is_number(self.latitude)
            and _is_number(self.longitude)
            and -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )

    @classmethod
    def from_mapping(cls, value: Any) -> Optional["Coordinate"]:
        """
        Build a coordinate from a mapping or an object exposing latitude/longitude.

        Returns None for anything structurally invalid instead of raising, so
        malformed records can be skipped silently.
        """
        if value is None:
            return None
        if isinstance(value, Coordinate):
            return value if value.is_valid else None
        if isinstance(value, dict):
            lat, lon = value.get("latitude"), value.get("longitude")
        else:
            lat, lon = getattr(value, "latitude", None), getattr(value, "longitude", None)
        if not (_is_number(lat) and _is_number(lon)):
            return None
        coordinate = cls(float(lat), float(lon))
        return coordinate if coordinate.is_valid else None

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


def distance_km(a: Optional[Coordinate], b: Optional[Coordinate]) -> float:
    """
    Great-circle distance between two coordinates in kilometers.

    An absent or invalid coordinate yields math.inf so callers filtering by
    radius drop the record; the value is never meant for display.
    """
    if a is None or b is None or not a.is_valid or not b.is_valid:
        return math.inf

    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlam = math.radians(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def format_distance(distance: Any) -> str:
    """Render a distance in km as "N m" below one kilometer, "N.N km" otherwise."""
    if not isinstance(distance, (int, float)) or isinstance(distance, bool):
        return "N/A"
    if math.isnan(distance) or math.isinf(distance) or distance < 0:
        return "N/A"
    if distance < 1:
        # half-up, so 0.0005 km renders as "1 m" rather than banker's "0 m"
        return f"{math.floor(distance * 1000 + 0.5)} m"
    return f"{distance:.1f} km"
