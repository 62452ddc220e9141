"""
Search trace - advisory record of what the matcher tried, for "why this route" displays
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class TraceEvent(BaseModel):
    phase: str
    event: str
    detail: Dict[str, Any] = {}


class SearchTrace(BaseModel):
    phases: List[str] = []
    candidates_evaluated: int = 0
    oracle_calls: int = 0
    cache_hits: int = 0
    oracle_errors: int = 0
    final_overlap_ratio: Optional[float] = None
    events: List[TraceEvent] = []

    def enter_phase(self, phase: str) -> None:
        if phase not in self.phases:
            self.phases.append(phase)

    def record(self, phase: str, event: str, **detail: Any) -> None:
        self.events.append(TraceEvent(phase=phase, event=event, detail=detail))
