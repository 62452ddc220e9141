from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Activity(str, Enum):
    WALK = "walk"
    RUN = "run"


class Pace(str, Enum):
    SLOW = "slow"
    MODERATE = "moderate"
    FAST = "fast"


class TripType(str, Enum):
    ONE_WAY = "one-way"
    ROUND_TRIP = "round-trip"


class Coordinate(BaseModel):
    """Immutable (lat, lng) pair in decimal degrees"""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    def as_tuple(self):
        return (self.lat, self.lng)


class PlanningRequest(BaseModel):
    origin: Coordinate
    step_goal: int
    height_m: float
    weight_kg: float
    pace: Pace = Pace.MODERATE
    trip_type: TripType = TripType.ONE_WAY
    activity: Activity = Activity.WALK
    # Running screens plan by distance; overrides the step-derived target
    distance_km: Optional[float] = None

    @property
    def is_round_trip(self) -> bool:
        return self.trip_type == TripType.ROUND_TRIP


class VariantsRequest(BaseModel):
    request: PlanningRequest
    count: Optional[int] = None
