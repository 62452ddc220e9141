"""Stub directions services shared by the matcher, session and API tests."""
import asyncio
from typing import Callable, List, Optional, Sequence

from stepmatch.exceptions import NoRouteFoundError
from stepmatch.models.request import Coordinate, PlanningRequest, TripType
from stepmatch.models.route import RouteResult
from stepmatch.services.map.routing_service import RoutingService
from stepmatch.utils.geo import destination_point, initial_bearing, path_length_meters

PARIS = Coordinate(lat=48.8566, lng=2.3522)


def make_request(**overrides) -> PlanningRequest:
    data = dict(
        origin=PARIS,
        step_goal=10000,
        height_m=1.70,
        weight_kg=70,
        pace="moderate",
        trip_type=TripType.ONE_WAY,
        activity="walk",
    )
    data.update(overrides)
    return PlanningRequest(**data)


def straight_path(anchors: Sequence[Coordinate], points_per_leg: int = 20) -> List[Coordinate]:
    path = [anchors[0]]
    for a, b in zip(anchors, anchors[1:]):
        for i in range(1, points_per_leg):
            f = i / (points_per_leg - 1)
            path.append(
                Coordinate(lat=a.lat + (b.lat - a.lat) * f, lng=a.lng + (b.lng - a.lng) * f)
            )
    return path


class FakeRoutingService(RoutingService):
    """
    Routes along straight lines between the requested points.

    distance = straight length x detour factor, unless fixed_distance is set.
    With alt_offset_m, alternative requests also return a path bent through a
    point offset sideways from the midpoint.
    """

    def __init__(
        self,
        detour_factor: float = 1.0,
        *,
        factor_fn: Optional[Callable[[Coordinate, Coordinate], float]] = None,
        fixed_distance: Optional[float] = None,
        alt_offset_m: Optional[float] = None,
        fail_all: bool = False,
        fail_to: Optional[Coordinate] = None,
        delay_fn: Optional[Callable[[int], float]] = None,
    ):
        self.detour_factor = detour_factor
        self.factor_fn = factor_fn
        self.fixed_distance = fixed_distance
        self.alt_offset_m = alt_offset_m
        self.fail_all = fail_all
        self.fail_to = fail_to
        self.delay_fn = delay_fn
        self.calls = []

    async def fetch_route(
        self,
        start: Coordinate,
        end: Coordinate,
        *,
        alternatives: bool = False,
        max_alternatives: int = 3,
        waypoints: Sequence[Coordinate] = (),
    ) -> List[RouteResult]:
        call_index = len(self.calls)
        self.calls.append((start, end, alternatives, tuple(waypoints)))

        if self.delay_fn is not None:
            await asyncio.sleep(self.delay_fn(call_index))

        if self.fail_all:
            raise NoRouteFoundError("no route")
        if self.fail_to is not None and end == self.fail_to:
            raise NoRouteFoundError("no route back")

        routes = [self._route(start, end, [start, *waypoints, end])]
        if alternatives and self.alt_offset_m:
            mid = Coordinate(lat=(start.lat + end.lat) / 2, lng=(start.lng + end.lng) / 2)
            via = destination_point(mid, self.alt_offset_m, (initial_bearing(start, end) + 90) % 360)
            routes.append(self._route(start, end, [start, via, end]))
        return routes[: max(1, max_alternatives) if alternatives else 1]

    def _route(self, start, end, anchors) -> RouteResult:
        geometry = straight_path(anchors)
        if self.fixed_distance is not None:
            distance = self.fixed_distance
        else:
            factor = self.factor_fn(start, end) if self.factor_fn else self.detour_factor
            distance = path_length_meters(geometry) * factor
        return RouteResult(
            distance_meters=distance,
            duration_seconds=distance / 1.4,
            geometry=geometry,
        )
