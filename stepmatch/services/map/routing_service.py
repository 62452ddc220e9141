from abc import ABC, abstractmethod
from typing import List, Sequence

from stepmatch.models.request import Coordinate
from stepmatch.models.route import RouteResult


class RoutingService(ABC):
    """Walking-directions oracle interface"""

    @abstractmethod
    async def fetch_route(
        self,
        start: Coordinate,
        end: Coordinate,
        *,
        alternatives: bool = False,
        max_alternatives: int = 3,
        waypoints: Sequence[Coordinate] = (),
    ) -> List[RouteResult]:
        """Get one or more routes from start to end, through waypoints in order

        Returns:
            Routes ordered as the service ranks them, at least one

        Raises:
            RoutingOracleError: NoRouteFoundError, ServiceUnavailableError or
                RateLimitedError. Implementations make a single attempt.
        """
        pass
