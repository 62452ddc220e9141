from typing import List, Optional

from pydantic import BaseModel

from stepmatch.config import Settings, settings as default_settings


class SearchPolicy(BaseModel):
    """Tunable knobs of the target-matching search"""

    tolerance: float = 0.05
    bearing_counts: List[int] = [16, 20, 24]
    tolerance_factors: List[float] = [0.0, 0.01, 0.02, 0.03, 0.04, 0.05]
    max_alternatives: int = 3
    fanout: int = 4
    phase1_budget_seconds: float = 45.0
    differentiation_budget_seconds: float = 8.0
    overlap_buffer_meters: float = 15.0
    overlap_acceptable_ratio: float = 0.30
    same_path_overlap_ratio: float = 1.0
    detour_offsets_meters: List[float] = [150.0, 300.0, 500.0]
    variant_min_separation_deg: float = 60.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SearchPolicy":
        s = settings or default_settings
        return cls(
            tolerance=s.distance_tolerance,
            bearing_counts=s.bearing_counts,
            tolerance_factors=s.tolerance_factors,
            max_alternatives=s.max_alternatives,
            fanout=max(1, s.oracle_fanout),
            phase1_budget_seconds=s.phase1_budget_seconds,
            differentiation_budget_seconds=s.differentiation_budget_seconds,
            overlap_buffer_meters=s.overlap_buffer_meters,
            overlap_acceptable_ratio=s.overlap_acceptable_ratio,
            same_path_overlap_ratio=s.same_path_overlap_ratio,
            detour_offsets_meters=s.detour_offsets_meters,
            variant_min_separation_deg=s.variant_min_separation_deg,
        )
