"""Coordinate validation helpers."""

from __future__ import annotations

import math
from typing import Any, Optional

COORDINATE_PRECISION = 6


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """Return True when both values are finite numbers inside the WGS84 ranges."""

    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not math.isfinite(lat) or not math.isfinite(lng):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def coerce_coordinate(value: Any) -> Optional[float]:
    """Parse a coordinate that may arrive as a number or a numeric string."""

    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def clean_coordinate(lat: Any, lng: Any) -> tuple[float, float]:
    """Validate a coordinate pair and round it to six decimals.

    Raises ``ValueError`` with a readable message when the pair cannot be used.
    """

    lat_value = coerce_coordinate(lat)
    lng_value = coerce_coordinate(lng)
    if lat_value is None or lng_value is None:
        raise ValueError("Coordinates are missing or not numeric")
    if not math.isfinite(lat_value) or not math.isfinite(lng_value):
        raise ValueError("Coordinates are not finite numbers")
    if not -90.0 <= lat_value <= 90.0:
        raise ValueError(f"Latitude {lat_value} is outside the valid range (-90 to 90)")
    if not -180.0 <= lng_value <= 180.0:
        raise ValueError(f"Longitude {lng_value} is outside the valid range (-180 to 180)")
    return round(lat_value, COORDINATE_PRECISION), round(lng_value, COORDINATE_PRECISION)


def format_coordinates(lat: float, lng: float) -> str:
    """Fallback address used when reverse geocoding is unavailable."""

    return f"{lat:.{COORDINATE_PRECISION}f}, {lng:.{COORDINATE_PRECISION}f}"
