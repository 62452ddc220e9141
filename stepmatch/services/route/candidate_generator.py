"""
Candidate destinations on a ring around the origin, and detour waypoints
beside an existing path
"""
from typing import List, NamedTuple, Sequence

from stepmatch.models.request import Coordinate
from stepmatch.utils.geo import destination_point, initial_bearing


class RingCandidate(NamedTuple):
    point: Coordinate
    bearing_deg: float
    radius_meters: float


def ring_bearings(bearing_count: int, bearing_offset_deg: float = 0.0) -> List[float]:
    if bearing_count <= 0:
        return []
    step = 360.0 / bearing_count
    return [(bearing_offset_deg + i * step) % 360 for i in range(bearing_count)]


def ring_candidates(
    center: Coordinate,
    radius_meters: float,
    bearing_count: int,
    bearing_offset_deg: float = 0.0,
) -> List[RingCandidate]:
    """Evenly spaced points at radius_meters around center.

    Ordered by generation index (offset, offset + step, ...). The offset lets
    repeated calls explore directions disjoint from a previous ring.
    """
    return [
        RingCandidate(destination_point(center, radius_meters, bearing), bearing, radius_meters)
        for bearing in ring_bearings(bearing_count, bearing_offset_deg)
    ]


def _sample_indices(path_length: int, count: int) -> List[int]:
    """Interior indices at fractions k / (count + 1) of the path"""
    last = path_length - 1
    indices = []
    for k in range(1, count + 1):
        idx = int(round(last * k / (count + 1)))
        # Keep the sample strictly inside the path
        idx = min(max(idx, 1), last - 1)
        if idx not in indices:
            indices.append(idx)
    return indices


def _local_bearing(path: Sequence[Coordinate], idx: int) -> float:
    before = path[idx - 1]
    after = path[idx + 1]
    if before == after:
        after = path[idx]
    return initial_bearing(before, after)


def detour_waypoints(
    reference_path: Sequence[Coordinate], offset_meters: float, count_per_side: int
) -> List[Coordinate]:
    """Points offset perpendicular to the path at interior samples.

    For each sample the left point comes first, then the right one. Chaining
    one of them between the endpoints of a directions request pushes the
    service towards a different path.
    """
    if len(reference_path) < 3 or count_per_side <= 0 or offset_meters <= 0:
        return []

    waypoints = []
    for idx in _sample_indices(len(reference_path), count_per_side):
        anchor = reference_path[idx]
        bearing = _local_bearing(reference_path, idx)
        waypoints.append(destination_point(anchor, offset_meters, (bearing - 90) % 360))
        waypoints.append(destination_point(anchor, offset_meters, (bearing + 90) % 360))
    return waypoints
