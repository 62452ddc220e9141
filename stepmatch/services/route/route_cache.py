import asyncio
from typing import Dict, List, Optional, Sequence, Tuple, Union

from stepmatch.exceptions import NoRouteFoundError
from stepmatch.models.request import Coordinate
from stepmatch.models.route import RouteResult
from stepmatch.services.map.routing_service import RoutingService
from stepmatch.services.route.trace import SearchTrace

# 5 decimal places is roughly 1 m
KEY_PRECISION = 5


def _point_key(point: Coordinate) -> Tuple[float, float]:
    return (round(point.lat, KEY_PRECISION), round(point.lng, KEY_PRECISION))


class MemoizedRoutingService(RoutingService):
    """Per-search wrapper: memoizes answers and caps concurrent calls.

    Only definitive answers are kept (routes and NoRouteFound); transient
    failures are retried on the next identical request.
    """

    def __init__(
        self,
        inner: RoutingService,
        *,
        fanout: int = 4,
        trace: Optional[SearchTrace] = None,
    ):
        self.inner = inner
        self.trace = trace or SearchTrace()
        self._semaphore = asyncio.Semaphore(max(1, fanout))
        self._results: Dict[tuple, Union[List[RouteResult], NoRouteFoundError]] = {}

    async def fetch_route(
        self,
        start: Coordinate,
        end: Coordinate,
        *,
        alternatives: bool = False,
        max_alternatives: int = 3,
        waypoints: Sequence[Coordinate] = (),
    ) -> List[RouteResult]:
        key = (
            _point_key(start),
            _point_key(end),
            tuple(_point_key(w) for w in waypoints),
            alternatives,
            max_alternatives if alternatives else 1,
        )

        if key in self._results:
            self.trace.cache_hits += 1
            cached = self._results[key]
            if isinstance(cached, NoRouteFoundError):
                raise NoRouteFoundError(str(cached), cached.status_code)
            return cached

        async with self._semaphore:
            self.trace.oracle_calls += 1
            try:
                routes = await self.inner.fetch_route(
                    start,
                    end,
                    alternatives=alternatives,
                    max_alternatives=max_alternatives,
                    waypoints=waypoints,
                )
            except NoRouteFoundError as e:
                self._results[key] = e
                raise

        if not routes:
            self._results[key] = NoRouteFoundError("Directions service returned no routes")
            raise NoRouteFoundError("Directions service returned no routes")

        self._results[key] = routes
        return routes
