from enum import Enum
from typing import Optional

from pydantic import BaseModel

from stepmatch.models.route import PlannedRoute, TargetWindow


class ResetMode(str, Enum):
    # back to Open(0), manual re-selection allowed again
    UNLOCK = "unlock"
    # default route restored, manual re-selection stays disabled
    LOCK_AND_START_DEFAULT = "lock_and_start_default"


class RejectionReason(str, Enum):
    TOO_CLOSE = "too_close"
    TOO_FAR = "too_far"
    NO_ROUTE = "no_route"
    LOCKED = "locked"
    # reset or re-planned while the pick was being routed
    SUPERSEDED = "superseded"


class AttemptState(BaseModel):
    valid_attempt_count: int = 0
    max_attempts: int
    locked: bool = False

    @property
    def remaining_attempts(self) -> int:
        if self.locked:
            return 0
        return max(0, self.max_attempts - self.valid_attempt_count)


class Rejected(BaseModel):
    reason: RejectionReason
    message: str
    straight_line_meters: Optional[float] = None
    window: Optional[TargetWindow] = None


class SelectionOutcome(BaseModel):
    """Answer to a manual destination proposal: a committed route or a rejection"""

    route: Optional[PlannedRoute] = None
    rejected: Optional[Rejected] = None
    state: AttemptState

    @property
    def accepted(self) -> bool:
        return self.route is not None
