from __future__ import annotations

from typing import List, Sequence

from stepmatch.models.request import Coordinate
from stepmatch.utils.geo import point_to_segment_meters

MAX_SAMPLES = 50
DEFAULT_BUFFER_METERS = 15.0


def sample_path(path: Sequence[Coordinate], max_samples: int = MAX_SAMPLES) -> List[Coordinate]:
    """Up to max_samples points evenly spread over the path's vertices, ends included."""
    if len(path) <= max_samples:
        return list(path)
    if max_samples == 1:
        return [path[0]]

    last = len(path) - 1
    return [path[int(round(i * last / (max_samples - 1)))] for i in range(max_samples)]


def _near_path(
    point: Coordinate, reference: Sequence[Coordinate], buffer_meters: float
) -> bool:
    if len(reference) == 1:
        return point_to_segment_meters(point, reference[0], reference[0]) <= buffer_meters

    for i in range(len(reference) - 1):
        if point_to_segment_meters(point, reference[i], reference[i + 1]) <= buffer_meters:
            return True
    return False


def overlap_ratio(
    reference_path: Sequence[Coordinate],
    candidate_path: Sequence[Coordinate],
    buffer_meters: float = DEFAULT_BUFFER_METERS,
) -> float:
    """
    Share of candidate_path that runs within buffer_meters of reference_path.

    This is buffered point sampling, a heuristic rather than exact polygon
    overlap: 0.0 means disjoint, 1.0 means the candidate retraces the
    reference (in either direction).
    """
    if not reference_path or not candidate_path:
        return 0.0

    samples = sample_path(candidate_path)
    hits = sum(1 for point in samples if _near_path(point, reference_path, buffer_meters))
    return hits / len(samples)
