"""Great-circle distance and location-string parsing for drive time."""
import math
import re
from typing import Optional, Tuple

from fieldclock.core.config import settings

# "1,250" / "12,345.6" style odometer readings, not "lat,lng"
_THOUSANDS_GROUPED = re.compile(r"^\d{1,3}(,\d{3})+(\.\d+)?$")


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Straight-line distance in statute miles between two points.

    NaN inputs give NaN; callers clamp.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return settings.EARTH_RADIUS_MI * c


def driving_miles(lat1: float, lon1: float, lat2: float, lon2: float, factor: Optional[float] = None) -> float:
    """Approximate road miles: haversine times a driving factor."""
    if factor is None:
        factor = settings.ROAD_DISTANCE_FACTOR
    return haversine_miles(lat1, lon1, lat2, lon2) * factor


def _to_float(token: str) -> Optional[float]:
    try:
        value = float(token)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) or math.isinf(value) else value


def parse_coordinates(value) -> Optional[Tuple[float, float]]:
    """Return (lat, lng) for a "lat,lng" string, else None."""
    raw = str(value if value is not None else "").strip()
    if "," not in raw or _THOUSANDS_GROUPED.match(raw):
        return None
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2:
        return None
    lat, lng = _to_float(parts[0]), _to_float(parts[1])
    if lat is None or lng is None:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def parse_odometer(value) -> Optional[float]:
    """Return an odometer reading, tolerating thousands separators, else None."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _to_float(str(value))
    raw = str(value if value is not None else "").strip().replace(",", "")
    if not raw:
        return None
    return _to_float(raw)


def format_position(latitude: float, longitude: float) -> str:
    return f"{latitude},{longitude}"
