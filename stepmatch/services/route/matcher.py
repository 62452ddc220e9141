"""
Route matcher - finds a destination whose real walking distance lands inside
the target window, using the directions service as an oracle.

Phases:
    1. ring search        - concentric rings of destinations, first valid hit wins
    2. differentiation    - round trips only, look for a return that does not retrace the outbound
    3. adjustment         - rescale the closest miss once and re-query
    same-path fallback    - last resort of phase 2, return = reversed outbound
"""
import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Sequence

from pydantic import BaseModel

from stepmatch.exceptions import RoutingOracleError
from stepmatch.models.request import Coordinate, PlanningRequest, TripType
from stepmatch.models.route import (
    MatchFailure,
    PlannedRoute,
    RouteCandidate,
    RouteResult,
    TargetWindow,
)
from stepmatch.services import metrics_service
from stepmatch.services.map.routing_service import RoutingService
from stepmatch.services.route.candidate_generator import (
    RingCandidate,
    detour_waypoints,
    ring_candidates,
)
from stepmatch.services.route.overlap_scorer import overlap_ratio
from stepmatch.services.route.policy import SearchPolicy
from stepmatch.services.route.route_cache import MemoizedRoutingService
from stepmatch.services.route.trace import SearchTrace
from stepmatch.utils.geo import (
    bearing_difference,
    destination_point,
    haversine_meters,
    initial_bearing,
)

logger = logging.getLogger(__name__)

PHASE_RING = "ring_search"
PHASE_DIFFERENTIATION = "differentiation"
PHASE_ADJUSTMENT = "adjustment"
PHASE_MANUAL = "manual_destination"
PHASE_VARIANTS = "variants"


def is_valid(
    outbound_meters: float,
    return_meters: float,
    trip_type: TripType,
    window: TargetWindow,
) -> bool:
    """One-way checks the single leg, round-trip checks the summed legs"""
    if TripType(trip_type) == TripType.ROUND_TRIP:
        return window.contains(outbound_meters + return_meters)
    return window.contains(outbound_meters)


class MatchResult(BaseModel):
    """Either a planned route or a failure, plus the search trace"""

    route: Optional[PlannedRoute] = None
    failure: Optional[MatchFailure] = None
    trace: SearchTrace

    @property
    def succeeded(self) -> bool:
        return self.route is not None


class VariantsResult(BaseModel):
    routes: List[PlannedRoute] = []
    trace: SearchTrace


class _Search:
    """State of one search: request, window, memoized oracle and trace"""

    def __init__(self, request: PlanningRequest, window: TargetWindow, oracle, trace):
        self.request = request
        self.window = window
        self.oracle = oracle
        self.trace = trace

    @property
    def origin(self) -> Coordinate:
        return self.request.origin

    @property
    def round_trip(self) -> bool:
        return self.request.is_round_trip

    def distance_error(self, candidate: RouteCandidate) -> float:
        return abs(self.total(candidate) - self.window.target_meters)

    def total(self, candidate: RouteCandidate) -> float:
        if self.round_trip:
            return candidate.total_meters
        return candidate.outbound_meters

    def valid(self, candidate: RouteCandidate) -> bool:
        return is_valid(
            candidate.outbound_meters,
            candidate.return_meters,
            self.request.trip_type,
            self.window,
        )


class RouteMatcher:
    """
    Orchestrates the target-matching search.

    Stateless between calls: every call builds its own memoized oracle and
    trace, so one matcher can serve concurrent planning sessions.
    """

    def __init__(
        self,
        routing_service: Optional[RoutingService] = None,
        policy: Optional[SearchPolicy] = None,
    ):
        if routing_service:
            self.routing_service = routing_service
        else:
            from stepmatch.services.map.mapbox_routing_service import MapboxRoutingService

            self.routing_service = MapboxRoutingService()
        self.policy = policy or SearchPolicy.from_settings()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def plan_route(self, request: PlanningRequest) -> MatchResult:
        """Find a route for the request or explain why none fits.

        Raises:
            InvalidInputError: bad planning parameters, before any oracle call
        """
        search = self._start_search(request)
        window = search.window
        logger.info(
            f"🎯 Planning {request.trip_type.value} {request.activity.value}: "
            f"target {window.target_meters:.0f}m "
            f"[{window.min_meters:.0f}, {window.max_meters:.0f}]"
        )

        hit, best = await self._ring_search(search)
        if hit is not None:
            if search.round_trip:
                hit = await self._differentiate(search, hit)
            return self._success(search, hit, adjusted=False)

        logger.info("⚠️ Ring search found nothing in tolerance, adjusting closest candidate")
        adjusted = await self._adjust_best(search, best)
        if adjusted is not None and search.valid(adjusted):
            if search.round_trip:
                adjusted = await self._differentiate(search, adjusted)
            return self._success(search, adjusted, adjusted=True)

        closest = min(
            [c for c in (best, adjusted) if c is not None],
            key=search.distance_error,
            default=None,
        )
        return self._failure(search, closest)

    async def evaluate_destination(
        self, request: PlanningRequest, destination: Coordinate
    ) -> MatchResult:
        """Route a caller-chosen destination and validate it against the window"""
        search = self._start_search(request)
        search.trace.enter_phase(PHASE_MANUAL)

        ring_point = RingCandidate(
            destination,
            initial_bearing(request.origin, destination),
            haversine_meters(request.origin, destination),
        )
        candidate = await self._evaluate(search, ring_point, PHASE_MANUAL)
        if candidate is None:
            return self._failure(search, None, reason="no route to destination")

        search.trace.candidates_evaluated += 1
        if not search.valid(candidate):
            return self._failure(search, candidate)

        if search.round_trip:
            candidate = await self._differentiate(search, candidate)
        return self._success(search, candidate, adjusted=False)

    async def find_variants(
        self, request: PlanningRequest, count: int = 3
    ) -> VariantsResult:
        """Up to count valid routes whose destinations lie in clearly different directions"""
        search = self._start_search(request)
        search.trace.enter_phase(PHASE_VARIANTS)
        found: List[RouteCandidate] = []

        async with aclosing(self._iter_ring(search, PHASE_VARIANTS)) as candidates:
            async for candidate in candidates:
                if not search.valid(candidate):
                    continue
                if any(
                    bearing_difference(candidate.bearing_deg, f.bearing_deg)
                    < self.policy.variant_min_separation_deg
                    for f in found
                ):
                    continue
                found.append(candidate)
                search.trace.record(
                    PHASE_VARIANTS,
                    "variant_found",
                    bearing=candidate.bearing_deg,
                    total_meters=search.total(candidate),
                )
                if len(found) >= count:
                    break

        routes = []
        for candidate in found:
            if search.round_trip:
                candidate = await self._differentiate(search, candidate)
            routes.append(self._build_route(search, candidate, adjusted=False))

        logger.info(f"🎉 Found {len(routes)} route variants")
        return VariantsResult(routes=routes, trace=search.trace)

    # ------------------------------------------------------------------
    # Phase 1 - ring search
    # ------------------------------------------------------------------

    def _ring_plan(self, search: _Search) -> List[List[RingCandidate]]:
        """Rings in evaluation priority order"""
        rings = []
        target = search.window.target_meters
        for bearing_count in self.policy.bearing_counts:
            for factor in self.policy.tolerance_factors:
                radii = [target] if factor == 0 else [target * (1 - factor), target * (1 + factor)]
                for radius in radii:
                    search_radius = radius / 2 if search.round_trip else radius
                    rings.append(ring_candidates(search.origin, search_radius, bearing_count))
        return rings

    async def _iter_ring(self, search: _Search, phase: str) -> AsyncIterator[RouteCandidate]:
        """Evaluated ring candidates in fixed priority order.

        Calls are issued in batches of `fanout`; each batch is gathered and
        then yielded in order, so concurrency never changes the outcome.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.policy.phase1_budget_seconds
        fanout = max(1, self.policy.fanout)

        for ring in self._ring_plan(search):
            search.trace.record(
                phase,
                "ring",
                radius_meters=round(ring[0].radius_meters, 1) if ring else None,
                bearings=len(ring),
            )
            for i in range(0, len(ring), fanout):
                batch = ring[i : i + fanout]
                remaining = deadline - loop.time()
                if remaining <= 0:
                    search.trace.record(phase, "budget_exhausted")
                    logger.warning(f"⏱️ {phase} budget exhausted")
                    return
                try:
                    results = await asyncio.wait_for(
                        asyncio.gather(*[self._evaluate(search, c, phase) for c in batch]),
                        timeout=remaining,
                    )
                except asyncio.TimeoutError:
                    search.trace.record(phase, "budget_exhausted")
                    logger.warning(f"⏱️ {phase} budget exhausted")
                    return

                for candidate in results:
                    if candidate is None:
                        continue
                    search.trace.candidates_evaluated += 1
                    yield candidate

    async def _ring_search(self, search: _Search):
        """Returns (first valid candidate or None, closest candidate seen)"""
        search.trace.enter_phase(PHASE_RING)
        best: Optional[RouteCandidate] = None

        async with aclosing(self._iter_ring(search, PHASE_RING)) as candidates:
            async for candidate in candidates:
                if search.valid(candidate):
                    logger.info(
                        f"✅ Valid route at bearing {candidate.bearing_deg:.1f}°: "
                        f"{search.total(candidate):.0f}m"
                    )
                    search.trace.record(
                        PHASE_RING,
                        "valid_hit",
                        bearing=candidate.bearing_deg,
                        total_meters=search.total(candidate),
                    )
                    return candidate, best
                if best is None or search.distance_error(candidate) < search.distance_error(best):
                    best = candidate

        return None, best

    # ------------------------------------------------------------------
    # Candidate evaluation
    # ------------------------------------------------------------------

    async def _evaluate(
        self, search: _Search, ring_point: RingCandidate, phase: str
    ) -> Optional[RouteCandidate]:
        """Fetch outbound (and return) legs for one destination. Oracle errors skip it."""
        destination = ring_point.point
        try:
            outbound = (await search.oracle.fetch_route(search.origin, destination))[0]
        except RoutingOracleError as e:
            self._record_oracle_error(search, phase, destination, e)
            return None

        candidate = RouteCandidate(
            destination=destination,
            bearing_deg=ring_point.bearing_deg,
            search_radius_meters=ring_point.radius_meters,
            outbound_geometry=outbound.geometry,
            outbound_meters=outbound.distance_meters,
            outbound_seconds=outbound.duration_seconds,
        )
        if not search.round_trip:
            return candidate

        try:
            back = (await search.oracle.fetch_route(destination, search.origin))[0]
        except RoutingOracleError as e:
            self._record_oracle_error(search, phase, destination, e)
            return self._same_path_return(candidate)

        return self._with_return(search, candidate, back)

    def _with_return(
        self, search: _Search, candidate: RouteCandidate, back: RouteResult
    ) -> RouteCandidate:
        return candidate.model_copy(
            update={
                "return_geometry": back.geometry,
                "return_meters": back.distance_meters,
                "return_seconds": back.duration_seconds,
                "overlap_ratio": overlap_ratio(
                    candidate.outbound_geometry,
                    back.geometry,
                    self.policy.overlap_buffer_meters,
                ),
                "is_same_path_return": False,
            }
        )

    @staticmethod
    def _same_path_return(candidate: RouteCandidate) -> RouteCandidate:
        """Return leg synthesized by walking the outbound path backwards"""
        return candidate.model_copy(
            update={
                "return_geometry": list(reversed(candidate.outbound_geometry)),
                "return_meters": candidate.outbound_meters,
                "return_seconds": candidate.outbound_seconds,
                "overlap_ratio": 1.0,
                "is_same_path_return": True,
            }
        )

    @staticmethod
    def _record_oracle_error(
        search: _Search, phase: str, destination: Coordinate, error: RoutingOracleError
    ) -> None:
        search.trace.oracle_errors += 1
        search.trace.record(
            phase,
            "oracle_error",
            kind=error.kind,
            lat=round(destination.lat, 6),
            lng=round(destination.lng, 6),
        )
        logger.debug(f"   ⚠️ Skipping ({destination.lat:.5f}, {destination.lng:.5f}): {error}")

    # ------------------------------------------------------------------
    # Phase 2 - round-trip differentiation
    # ------------------------------------------------------------------

    def _acceptable(self, candidate: RouteCandidate) -> bool:
        return (
            not candidate.is_same_path_return
            and candidate.overlap_ratio is not None
            and candidate.overlap_ratio < self.policy.overlap_acceptable_ratio
        )

    async def _differentiate(self, search: _Search, candidate: RouteCandidate) -> RouteCandidate:
        """Swap the return leg for a less overlapping one that keeps the total valid"""
        if self._acceptable(candidate):
            return self._finalize_return(search, candidate)

        search.trace.enter_phase(PHASE_DIFFERENTIATION)
        logger.info(
            f"🔄 Return overlaps outbound ({candidate.overlap_ratio:.2f}), "
            "looking for a different way back"
        )
        options: List[RouteCandidate] = [] if candidate.is_same_path_return else [candidate]

        try:
            await asyncio.wait_for(
                self._collect_returns(search, candidate, options),
                timeout=self.policy.differentiation_budget_seconds,
            )
        except asyncio.TimeoutError:
            search.trace.record(PHASE_DIFFERENTIATION, "budget_exhausted")
            logger.warning("⏱️ Differentiation budget exhausted, keeping best return so far")

        if not options:
            search.trace.record(PHASE_DIFFERENTIATION, "same_path_fallback")
            logger.warning("↩️ No distinct return found, falling back to the same path")
            return self._finalize_return(search, self._same_path_return(candidate))

        chosen = min(options, key=lambda option: option.overlap_ratio)
        return self._finalize_return(search, chosen)

    async def _collect_returns(
        self, search: _Search, candidate: RouteCandidate, options: List[RouteCandidate]
    ) -> None:
        """Fill options with valid returns; stop early once one is acceptable"""
        destination = candidate.destination

        # a. alternatives for the plain end -> start request
        try:
            alternatives = await search.oracle.fetch_route(
                destination,
                search.origin,
                alternatives=True,
                max_alternatives=self.policy.max_alternatives,
            )
        except RoutingOracleError as e:
            self._record_oracle_error(search, PHASE_DIFFERENTIATION, destination, e)
            alternatives = []

        if self._add_options(search, candidate, alternatives, options, "alternative"):
            return

        # b. detours beside the outbound midpoint
        for offset in self.policy.detour_offsets_meters:
            waypoints = detour_waypoints(candidate.outbound_geometry, offset, 1)
            results = await asyncio.gather(
                *[self._fetch_detour(search, destination, waypoint) for waypoint in waypoints]
            )
            found = [route for route in results if route is not None]
            if self._add_options(search, candidate, found, options, f"detour_{offset:.0f}m"):
                return

    async def _fetch_detour(
        self, search: _Search, destination: Coordinate, waypoint: Coordinate
    ) -> Optional[RouteResult]:
        try:
            return (
                await search.oracle.fetch_route(
                    destination, search.origin, waypoints=[waypoint]
                )
            )[0]
        except RoutingOracleError as e:
            self._record_oracle_error(search, PHASE_DIFFERENTIATION, waypoint, e)
            return None

    def _add_options(
        self,
        search: _Search,
        candidate: RouteCandidate,
        returns: Sequence[RouteResult],
        options: List[RouteCandidate],
        source: str,
    ) -> bool:
        """Append valid returns to options; True once one is acceptable"""
        for back in returns:
            option = self._with_return(search, candidate, back)
            if not search.valid(option):
                continue
            options.append(option)
            search.trace.record(
                PHASE_DIFFERENTIATION,
                "return_option",
                source=source,
                overlap=round(option.overlap_ratio, 3),
                total_meters=option.total_meters,
            )
        return any(self._acceptable(option) for option in options)

    def _finalize_return(self, search: _Search, candidate: RouteCandidate) -> RouteCandidate:
        if (
            not candidate.is_same_path_return
            and candidate.overlap_ratio is not None
            and candidate.overlap_ratio >= self.policy.same_path_overlap_ratio
        ):
            # The service's own return retraces the outbound
            candidate = candidate.model_copy(update={"is_same_path_return": True})

        search.trace.final_overlap_ratio = candidate.overlap_ratio
        return candidate

    # ------------------------------------------------------------------
    # Phase 3 - best-effort adjustment
    # ------------------------------------------------------------------

    async def _adjust_best(
        self, search: _Search, best: Optional[RouteCandidate]
    ) -> Optional[RouteCandidate]:
        """Rescale the closest miss along its bearing and query it once"""
        search.trace.enter_phase(PHASE_ADJUSTMENT)
        if best is None or best.bearing_deg is None or not best.search_radius_meters:
            search.trace.record(PHASE_ADJUSTMENT, "no_candidate")
            return None

        current = search.total(best)
        if current <= 0:
            search.trace.record(PHASE_ADJUSTMENT, "degenerate_candidate")
            return None

        new_radius = best.search_radius_meters * (search.window.target_meters / current)
        point = destination_point(search.origin, new_radius, best.bearing_deg)
        search.trace.record(
            PHASE_ADJUSTMENT,
            "rescaled",
            from_meters=current,
            old_radius=best.search_radius_meters,
            new_radius=new_radius,
        )

        adjusted = await self._evaluate(
            search, RingCandidate(point, best.bearing_deg, new_radius), PHASE_ADJUSTMENT
        )
        if adjusted is not None:
            search.trace.candidates_evaluated += 1
            search.trace.record(
                PHASE_ADJUSTMENT,
                "requeried",
                total_meters=search.total(adjusted),
                valid=search.valid(adjusted),
            )
        return adjusted

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _start_search(self, request: PlanningRequest) -> _Search:
        metrics_service.validate_request(request)
        window = metrics_service.target_window(request, self.policy.tolerance)
        trace = SearchTrace()
        oracle = MemoizedRoutingService(
            self.routing_service, fanout=self.policy.fanout, trace=trace
        )
        return _Search(request, window, oracle, trace)

    def _build_route(
        self, search: _Search, candidate: RouteCandidate, adjusted: bool
    ) -> PlannedRoute:
        request = search.request
        total = search.total(candidate)
        metrics = metrics_service.route_metrics(total, request)

        return PlannedRoute(
            origin=request.origin,
            destination=candidate.destination,
            trip_type=request.trip_type,
            total_distance_meters=total,
            total_duration_seconds=metrics["duration_seconds"],
            estimated_steps=metrics["steps"],
            estimated_calories=metrics["calories"],
            outbound_geometry=candidate.outbound_geometry,
            return_geometry=candidate.return_geometry if search.round_trip else None,
            outbound_meters=candidate.outbound_meters,
            return_meters=candidate.return_meters if search.round_trip else 0.0,
            overlap_ratio=candidate.overlap_ratio if search.round_trip else None,
            is_same_path_return=candidate.is_same_path_return if search.round_trip else False,
            adjusted=adjusted,
            within_tolerance=search.window.contains(total),
        )

    def _success(self, search: _Search, candidate: RouteCandidate, adjusted: bool) -> MatchResult:
        route = self._build_route(search, candidate, adjusted)
        if not route.within_tolerance:
            # Never hand out an out-of-window route as a PlannedRoute
            return self._failure(search, candidate)
        if route.degraded:
            search.trace.record(
                search.trace.phases[-1],
                "degraded_match",
                same_path=route.is_same_path_return,
                adjusted=route.adjusted,
            )
        return MatchResult(route=route, trace=search.trace)

    def _failure(
        self,
        search: _Search,
        closest: Optional[RouteCandidate],
        reason: str = "no route within tolerance",
    ) -> MatchResult:
        closest_meters = search.total(closest) if closest is not None else None
        failure = MatchFailure(
            window=search.window,
            closest_distance_meters=closest_meters,
            missed_by_meters=(
                search.window.missed_by(closest_meters) if closest_meters is not None else None
            ),
            reason=reason,
        )
        logger.info(
            f"❌ No match: closest {closest_meters if closest_meters is not None else 'n/a'}m "
            f"for target {search.window.target_meters:.0f}m"
        )
        return MatchResult(failure=failure, trace=search.trace)
