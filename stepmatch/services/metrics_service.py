"""
Distance / metrics model - pure conversions between steps, distance, duration and calories
"""
import math
from typing import Dict, List, Optional

from stepmatch.exceptions import InvalidInputError
from stepmatch.models.request import Activity, Pace, PlanningRequest
from stepmatch.models.route import TargetWindow

STRIDE_FACTORS: Dict[Activity, float] = {
    Activity.WALK: 0.415,
    Activity.RUN: 0.5,
}

# Used when the profile height is missing or unusable
DEFAULT_STRIDE_METERS: Dict[Activity, float] = {
    Activity.WALK: 0.72,
    Activity.RUN: 0.85,
}

SPEED_KMH: Dict[Pace, float] = {
    Pace.SLOW: 4.0,
    Pace.MODERATE: 5.0,
    Pace.FAST: 6.0,
}
RUN_FAST_SPEED_KMH = 6.5

CALORIE_COEFFICIENTS: Dict[Pace, float] = {
    Pace.SLOW: 0.35,
    Pace.MODERATE: 0.50,
    Pace.FAST: 0.70,
}

# Upper bounds for a human profile and a single-day goal
MAX_HEIGHT_M = 3.0
MAX_WEIGHT_KG = 650.0
MAX_STEP_GOAL = 200_000
MAX_DISTANCE_KM = 200.0


def stride_meters(height_m: float, activity: Activity = Activity.WALK) -> float:
    """Estimated stride length from body height.

    Raises:
        InvalidInputError: if height is not a positive number
    """
    if height_m is None or not height_m > 0 or math.isinf(height_m):
        raise InvalidInputError(f"Height must be a positive number of meters, got {height_m}")
    return STRIDE_FACTORS[Activity(activity)] * height_m


def stride_or_default(height_m: Optional[float], activity: Activity = Activity.WALK) -> float:
    """Like stride_meters but falls back to the documented default stride"""
    try:
        return stride_meters(height_m, activity)
    except InvalidInputError:
        return DEFAULT_STRIDE_METERS[Activity(activity)]


def steps_for_distance(distance_meters: float, stride: float) -> int:
    if not stride > 0:
        raise InvalidInputError(f"Stride must be positive, got {stride}")
    return int(round(distance_meters / stride))


def speed_kmh(pace: Pace, activity: Activity = Activity.WALK) -> float:
    if Activity(activity) == Activity.RUN and Pace(pace) == Pace.FAST:
        return RUN_FAST_SPEED_KMH
    return SPEED_KMH[Pace(pace)]


def duration_seconds(
    distance_meters: float, pace: Pace, activity: Activity = Activity.WALK
) -> int:
    meters_per_second = speed_kmh(pace, activity) * 1000 / 3600
    return int(round(distance_meters / meters_per_second))


def duration_minutes(
    distance_meters: float, pace: Pace, activity: Activity = Activity.WALK
) -> int:
    return int(round(distance_meters / 1000 / speed_kmh(pace, activity) * 60))


def calories(distance_km: float, weight_kg: float, pace: Pace) -> int:
    return int(round(distance_km * weight_kg * CALORIE_COEFFICIENTS[Pace(pace)]))


def _in_range(value, upper: float) -> bool:
    """Finite, positive and not above upper"""
    return value is not None and math.isfinite(value) and 0 < value <= upper


def validate_request(request: PlanningRequest) -> None:
    """Reject bad planning parameters before any search starts.

    Raises:
        InvalidInputError: listing every offending field
    """
    problems: List[str] = []

    origin = request.origin
    if not (math.isfinite(origin.lat) and -90 <= origin.lat <= 90):
        problems.append("origin.lat must be within [-90, 90]")
    if not (math.isfinite(origin.lng) and -180 <= origin.lng <= 180):
        problems.append("origin.lng must be within [-180, 180]")
    if not _in_range(request.step_goal, MAX_STEP_GOAL):
        problems.append(f"step_goal must be between 1 and {MAX_STEP_GOAL}")
    if not _in_range(request.height_m, MAX_HEIGHT_M):
        problems.append(f"height_m must be a positive number up to {MAX_HEIGHT_M}")
    if not _in_range(request.weight_kg, MAX_WEIGHT_KG):
        problems.append(f"weight_kg must be a positive number up to {MAX_WEIGHT_KG}")
    if request.distance_km is not None and not _in_range(request.distance_km, MAX_DISTANCE_KM):
        problems.append(f"distance_km must be a positive number up to {MAX_DISTANCE_KM}")

    if problems:
        raise InvalidInputError("; ".join(problems))


def target_window(request: PlanningRequest, tolerance: float = 0.05) -> TargetWindow:
    """Target distance and its [min, max] acceptance range for a request"""
    if request.distance_km is not None:
        target = request.distance_km * 1000
    else:
        target = request.step_goal * stride_meters(request.height_m, request.activity)

    return TargetWindow(
        target_meters=target,
        min_meters=target * (1 - tolerance),
        max_meters=target * (1 + tolerance),
    )


def route_metrics(distance_meters: float, request: PlanningRequest) -> Dict[str, int]:
    """Steps, duration and calories for a route of the given length"""
    stride = stride_or_default(request.height_m, request.activity)
    return {
        "steps": steps_for_distance(distance_meters, stride),
        "duration_seconds": duration_seconds(distance_meters, request.pace, request.activity),
        "calories": calories(distance_meters / 1000, request.weight_kg, request.pace),
    }
