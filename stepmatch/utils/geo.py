"""
Spherical-earth geodesy helpers (R = 6371 km)
"""
import math
from typing import Sequence, Tuple

from stepmatch.models.request import Coordinate

EARTH_RADIUS_M = 6371000.0


def haversine_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two points (Haversine formula)"""
    lat1_rad = math.radians(a.lat)
    lat2_rad = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def initial_bearing(a: Coordinate, b: Coordinate) -> float:
    """Bearing (0-360 degrees) from a to b"""
    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)

    d_lng = lng2 - lng1

    y = math.sin(d_lng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(
        d_lng
    )

    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def destination_point(
    origin: Coordinate, distance_meters: float, bearing_deg: float
) -> Coordinate:
    """Project a point distance_meters away from origin along bearing_deg"""
    angular = distance_meters / EARTH_RADIUS_M
    lat1 = math.radians(origin.lat)
    lng1 = math.radians(origin.lng)
    bearing = math.radians(bearing_deg)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lng2 = lng1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )

    # Normalise longitude to [-180, 180)
    lng_deg = (math.degrees(lng2) + 540) % 360 - 180
    return Coordinate(lat=math.degrees(lat2), lng=lng_deg)


def bearing_difference(a_deg: float, b_deg: float) -> float:
    """Smallest absolute angle between two bearings, in [0, 180]"""
    diff = abs(a_deg - b_deg) % 360
    return 360 - diff if diff > 180 else diff


def _project(point: Coordinate, ref_lat_rad: float) -> Tuple[float, float]:
    """Equirectangular projection to local meters"""
    x = math.radians(point.lng) * math.cos(ref_lat_rad) * EARTH_RADIUS_M
    y = math.radians(point.lat) * EARTH_RADIUS_M
    return x, y


def point_to_segment_meters(
    point: Coordinate, seg_start: Coordinate, seg_end: Coordinate
) -> float:
    """Distance from point to segment in a flat projection. Fine at city scale."""
    ref_lat = math.radians(point.lat)
    px, py = _project(point, ref_lat)
    ax, ay = _project(seg_start, ref_lat)
    bx, by = _project(seg_end, ref_lat)

    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - ax, py - ay)

    t = ((px - ax) * dx + (py - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def path_length_meters(path: Sequence[Coordinate]) -> float:
    return sum(haversine_meters(path[i], path[i + 1]) for i in range(len(path) - 1))
