"""
Geo helpers: coordinate parsing, planar distance bounds and haversine distances.
"""

import math

EARTH_RADIUS_M = 6_371_008.8
METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180

# Half the equator: every point on Earth is within this radius.
MAX_RADIUS_KM = 20_000


def parse_coordinate(raw: object, limit: float) -> float | None:
    """Parse a latitude/longitude. None if missing, not a finite number or out of [-limit, limit]."""
    if raw is None:
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    if not math.isfinite(value) or not -limit <= value <= limit:
        return None
    return value


def parse_radius_km(raw: object, default: int, maximum: int = MAX_RADIUS_KM) -> int:
    """Integer kilometers; missing, invalid or non-positive values give the default.
    Values above `maximum` are clamped to it."""
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    if value <= 0:
        return default
    return min(value, maximum)


def longitude_scale(latitude: float) -> float:
    """Meters per degree of longitude at this latitude, relative to a degree of latitude."""
    return math.cos(math.radians(latitude))


def bounding_box(
    latitude: float, longitude: float, radius_m: float
) -> tuple[tuple[float, float], tuple[float, float] | None]:
    """Latitude and longitude ranges enclosing the circle. The longitude range is None
    near the poles, where it spans every meridian."""
    dlat = radius_m / METERS_PER_DEGREE
    lat_range = (latitude - dlat, latitude + dlat)
    scale = longitude_scale(latitude)
    if scale < 1e-6:
        return lat_range, None
    dlng = radius_m / (METERS_PER_DEGREE * scale)
    return lat_range, (longitude - dlng, longitude + dlng)


def planar_distance_sq_m(latitude: float, longitude: float, lat0: float, lng0: float):
    """Squared equirectangular distance in meters from (lat0, lng0).

    Works on floats and on SQL column expressions alike: only arithmetic is used,
    with the longitude scale computed once for the reference latitude.
    """
    dy = (latitude - lat0) * METERS_PER_DEGREE
    dx = (longitude - lng0) * (METERS_PER_DEGREE * longitude_scale(lat0))
    return dx * dx + dy * dy


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M / 1000 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
