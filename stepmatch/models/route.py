"""
Route models shared by the matcher, the planning session and the API layer
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from stepmatch.models.request import Coordinate, TripType


class RouteResult(BaseModel):
    """One route returned by the directions service"""

    distance_meters: float
    duration_seconds: float
    geometry: List[Coordinate]


class TargetWindow(BaseModel):
    """Accepted distance range around the target, in meters"""

    model_config = ConfigDict(frozen=True)

    target_meters: float
    min_meters: float
    max_meters: float

    def contains(self, distance_meters: float) -> bool:
        return self.min_meters <= distance_meters <= self.max_meters

    def missed_by(self, distance_meters: float) -> float:
        """Distance to the nearest window bound, 0 inside the window"""
        if distance_meters < self.min_meters:
            return self.min_meters - distance_meters
        if distance_meters > self.max_meters:
            return distance_meters - self.max_meters
        return 0.0


class RouteCandidate(BaseModel):
    """A destination and its paths, evaluated transiently during the search"""

    destination: Coordinate
    bearing_deg: Optional[float] = None
    search_radius_meters: Optional[float] = None
    outbound_geometry: List[Coordinate]
    outbound_meters: float
    outbound_seconds: float = 0.0
    return_geometry: Optional[List[Coordinate]] = None
    return_meters: float = 0.0
    return_seconds: float = 0.0
    overlap_ratio: Optional[float] = None
    is_same_path_return: bool = False

    @property
    def total_meters(self) -> float:
        return self.outbound_meters + self.return_meters


class PlannedRoute(BaseModel):
    """Final route handed back to the caller. Always inside the target window."""

    model_config = ConfigDict(frozen=True)

    origin: Coordinate
    destination: Coordinate
    trip_type: TripType
    total_distance_meters: float
    total_duration_seconds: int
    estimated_steps: int
    estimated_calories: int
    outbound_geometry: List[Coordinate]
    return_geometry: Optional[List[Coordinate]] = None
    outbound_meters: float
    return_meters: float = 0.0
    overlap_ratio: Optional[float] = None
    is_same_path_return: bool = False
    adjusted: bool = False
    within_tolerance: bool = True

    @property
    def degraded(self) -> bool:
        """Found via the same-path fallback or the best-effort adjustment"""
        return self.is_same_path_return or self.adjusted


class MatchFailure(BaseModel):
    """Search exhausted every strategy without landing in the window"""

    model_config = ConfigDict(frozen=True)

    window: TargetWindow
    closest_distance_meters: Optional[float] = None
    missed_by_meters: Optional[float] = None
    reason: str = "no route within tolerance"
