"""
Response models for the route planning API
Includes route geometry and target-window diagnostics
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class LocationPoint(BaseModel):
    """Location point model"""
    lat: float
    lng: float


class RouteGeometry(BaseModel):
    """Route geometry information"""
    overview_polyline: Dict[str, str]  # {"points": "encoded_polyline"}
    coordinates: List[List[float]]  # [[lat, lng], ...]
    distance: int  # Distance in meters


class Route(BaseModel):
    """Planned route with its metrics"""
    origin: LocationPoint
    destination: LocationPoint
    trip_type: str
    distance: int  # Total distance in meters
    duration: str  # Duration string (e.g., "3848s")
    duration_minutes: int
    steps: int
    calories: int
    outbound: RouteGeometry
    return_path: Optional[RouteGeometry] = None
    overlap_ratio: Optional[float] = None
    same_path_return: bool = False
    adjusted: bool = False
    degraded: bool = False
    within_tolerance: bool = True


class TargetInfo(BaseModel):
    target_meters: int
    min_meters: int
    max_meters: int


class FailureInfo(BaseModel):
    reason: str
    target: TargetInfo
    closest_distance: Optional[int] = None
    missed_by: Optional[int] = None


class AttemptInfo(BaseModel):
    valid_attempt_count: int
    max_attempts: int
    locked: bool
    remaining_attempts: int


class PlanResponse(BaseModel):
    """Route planning response model"""
    success: bool = True
    message: str = "success"
    session_id: Optional[str] = None
    route: Optional[Route] = None
    failure: Optional[FailureInfo] = None
    attempts: Optional[AttemptInfo] = None
    trace: Dict[str, Any] = {}  # Advisory search diagnostics


class VariantsResponse(BaseModel):
    success: bool = True
    message: str = "success"
    routes: List[Route] = []
    total_count: int = 0
    trace: Dict[str, Any] = {}


class SelectionResponse(BaseModel):
    """Manual destination / reset response model"""
    success: bool = True
    message: str = "success"
    route: Optional[Route] = None
    rejection: Optional[str] = None
    straight_line_distance: Optional[int] = None
    attempts: AttemptInfo
