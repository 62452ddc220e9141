"""
API Call Counter - daily cap on directions requests
"""
from datetime import date
from typing import Dict, Optional

from stepmatch.config import settings


class APICounter:
    """API call counter"""

    def __init__(self, max_calls_per_day: Optional[int] = None):
        self.max_calls_per_day = (
            max_calls_per_day
            if max_calls_per_day is not None
            else settings.max_api_calls_per_day
        )
        self.call_count: Dict[str, int] = {}
        self.current_date = date.today()

    def _today_key(self) -> str:
        today = date.today()

        # Reset counter if date changes
        if today != self.current_date:
            self.call_count.clear()
            self.current_date = today

        return today.isoformat()

    def can_make_call(self) -> bool:
        """Check if API can be called"""
        return self.call_count.get(self._today_key(), 0) < self.max_calls_per_day

    def record_call(self) -> None:
        """Record one API call"""
        key = self._today_key()
        self.call_count[key] = self.call_count.get(key, 0) + 1

    def get_remaining_calls(self) -> int:
        """Get remaining call count"""
        return max(0, self.max_calls_per_day - self.call_count.get(self._today_key(), 0))


# Global counter instance
api_counter = APICounter()
