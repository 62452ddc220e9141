from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Mapbox Directions API configuration
    mapbox_access_token: str = ""
    mapbox_base_url: str = "https://api.mapbox.com"
    mapbox_profile: str = "walking"
    http_timeout_seconds: float = 10.0

    # API configuration
    api_version: str = "1.0"

    # API call limits
    max_api_calls_per_day: int = 5000

    # Target matching
    distance_tolerance: float = 0.05
    bearing_counts: List[int] = [16, 20, 24]
    tolerance_factors: List[float] = [0.0, 0.01, 0.02, 0.03, 0.04, 0.05]
    max_alternatives: int = 3
    oracle_fanout: int = 4
    phase1_budget_seconds: float = 45.0
    differentiation_budget_seconds: float = 8.0

    # Round-trip differentiation (heuristic overlap thresholds are policy)
    overlap_buffer_meters: float = 15.0
    overlap_acceptable_ratio: float = 0.30
    same_path_overlap_ratio: float = 1.0
    detour_offsets_meters: List[float] = [150.0, 300.0, 500.0]

    # Destination variants
    variant_count: int = 3
    variant_min_separation_deg: float = 60.0

    # Manual destination selection
    max_manual_attempts: int = 3
    reset_mode: str = "lock_and_start_default"
    count_invalid_attempts: bool = False

    # Planning session store
    max_sessions: int = 1000
    session_ttl_seconds: float = 3600.0

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
