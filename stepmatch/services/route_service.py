"""
Planning sessions - the caller-facing side of the route engine
Integrates the matcher, the attempt limiter and the response builder
"""
import logging
import time
import uuid
from collections import OrderedDict
from typing import Callable, Optional

from stepmatch.config import Settings, settings as default_settings
from stepmatch.exceptions import SelectionError
from stepmatch.models.request import Coordinate, PlanningRequest
from stepmatch.models.route import PlannedRoute
from stepmatch.models.selection import (
    AttemptState,
    Rejected,
    RejectionReason,
    ResetMode,
    SelectionOutcome,
)
from stepmatch.services import metrics_service
from stepmatch.services.route.matcher import MatchResult, RouteMatcher, VariantsResult
from stepmatch.services.selection.attempt_limiter import SelectionAttemptLimiter
from stepmatch.utils.geo import haversine_meters

logger = logging.getLogger(__name__)


class PlanningSession:
    """
    State of one trip-planning flow: the default route, the active route and
    the attempt limiter gating manual destination overrides.

    Nothing is committed until an operation completes, so a cancelled
    search leaves the session untouched. Every reset or re-plan starts a new
    generation; a manual pick routed under an older generation is discarded.
    """

    def __init__(self, matcher: RouteMatcher, limiter: SelectionAttemptLimiter):
        self.matcher = matcher
        self.limiter = limiter
        self.request: Optional[PlanningRequest] = None
        self.default_route: Optional[PlannedRoute] = None
        self.active_route: Optional[PlannedRoute] = None
        self.generation = 0
        self.last_used = 0.0

    @property
    def attempt_state(self) -> AttemptState:
        return self.limiter.state

    async def plan_route(self, request: PlanningRequest) -> MatchResult:
        result = await self.matcher.plan_route(request)

        self.request = request
        self.default_route = result.route
        self.active_route = result.route
        self.limiter.restart()
        self.generation += 1
        return result

    async def propose_manual_destination(self, destination: Coordinate) -> SelectionOutcome:
        """Try a user-picked destination, gated by the attempt limiter"""
        if self.request is None:
            raise SelectionError("Plan a route before choosing a destination manually")

        if not self.limiter.can_attempt():
            return self._reject(
                RejectionReason.LOCKED,
                "Manual selection is locked. Reset to restore the default route.",
                consume=False,
            )

        window = metrics_service.target_window(self.request, self.matcher.policy.tolerance)
        straight = haversine_meters(self.request.origin, destination)
        compared = straight * 2 if self.request.is_round_trip else straight

        # A walking route is never shorter than the straight line
        if compared > window.max_meters:
            return self._reject(
                RejectionReason.TOO_FAR,
                f"Destination too far ({compared:.0f}m, max {window.max_meters:.0f}m)",
                straight=straight,
                window=window,
            )

        generation = self.generation
        result = await self.matcher.evaluate_destination(self.request, destination)
        if generation != self.generation:
            return self._reject(
                RejectionReason.SUPERSEDED,
                "Selection was reset while this destination was being routed",
                straight=straight,
                window=window,
                consume=False,
            )

        if result.route is None:
            if result.failure is None or result.failure.closest_distance_meters is None:
                return self._reject(
                    RejectionReason.NO_ROUTE,
                    "No walking route to this destination",
                    straight=straight,
                    window=window,
                )
            reason = (
                RejectionReason.TOO_CLOSE
                if compared < window.min_meters
                else RejectionReason.TOO_FAR
            )
            return self._reject(
                reason,
                f"Route of {result.failure.closest_distance_meters:.0f}m misses "
                f"[{window.min_meters:.0f}, {window.max_meters:.0f}]m",
                straight=straight,
                window=window,
            )

        # Another pick may have used the last attempt while this one was routed
        if not self.limiter.can_attempt():
            return self._reject(
                RejectionReason.LOCKED,
                "Manual selection locked while this destination was being routed",
                straight=straight,
                window=window,
                consume=False,
            )

        state = self.limiter.register_valid()
        self.active_route = result.route
        logger.info(
            f"📍 Manual destination accepted ({state.valid_attempt_count}/{state.max_attempts})"
        )
        return SelectionOutcome(route=result.route, state=state)

    def reset_selection(self) -> PlannedRoute:
        """Restore the default route; the limiter follows its reset mode"""
        if self.default_route is None:
            raise SelectionError("No default route to restore")

        self.limiter.reset()
        self.generation += 1
        self.active_route = self.default_route
        return self.default_route

    def _reject(
        self,
        reason: RejectionReason,
        message: str,
        straight: Optional[float] = None,
        window=None,
        consume: bool = True,
    ) -> SelectionOutcome:
        state = self.limiter.register_invalid() if consume else self.limiter.state
        logger.info(f"🚫 Manual destination rejected: {reason.value}")
        return SelectionOutcome(
            rejected=Rejected(
                reason=reason,
                message=message,
                straight_line_meters=straight,
                window=window,
            ),
            state=state,
        )


class RouteService:
    """
    Route planning service - owns the matcher and the planning sessions

    Sessions live in memory, least recently used first. Idle ones expire after
    session_ttl_seconds and the store never grows past max_sessions.

    Architecture: Request validation → Target matching → Session commit → Response building
    """

    def __init__(
        self,
        matcher: Optional[RouteMatcher] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or default_settings
        self.matcher = matcher or RouteMatcher()
        self.clock = clock
        self.sessions: "OrderedDict[str, PlanningSession]" = OrderedDict()

    def new_limiter(self) -> SelectionAttemptLimiter:
        return SelectionAttemptLimiter(
            max_attempts=self.settings.max_manual_attempts,
            reset_mode=ResetMode(self.settings.reset_mode),
            count_invalid_attempts=self.settings.count_invalid_attempts,
        )

    def create_session(self) -> str:
        self._evict()
        session_id = uuid.uuid4().hex
        session = PlanningSession(self.matcher, self.new_limiter())
        session.last_used = self.clock()
        self.sessions[session_id] = session
        return session_id

    def get_session(self, session_id: str) -> PlanningSession:
        try:
            session = self.sessions[session_id]
        except KeyError:
            raise SelectionError(f"Unknown planning session {session_id}") from None

        session.last_used = self.clock()
        self.sessions.move_to_end(session_id)
        return session

    def close_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    def _evict(self) -> None:
        """Drop expired sessions, then the least recently used beyond capacity"""
        cutoff = self.clock() - self.settings.session_ttl_seconds
        expired = [sid for sid, s in self.sessions.items() if s.last_used < cutoff]
        for session_id in expired:
            del self.sessions[session_id]

        # Leave room for the session about to be created
        while self.sessions and len(self.sessions) >= max(1, self.settings.max_sessions):
            self.sessions.popitem(last=False)

        if expired:
            logger.info(f"🧹 Evicted {len(expired)} expired planning sessions")

    async def plan(self, request: PlanningRequest):
        """Open a session and plan its default route"""
        session_id = self.create_session()
        session = self.sessions[session_id]
        try:
            result = await session.plan_route(request)
        except BaseException:
            # Abandoned or invalid searches leave no session behind
            self.close_session(session_id)
            raise

        session.last_used = self.clock()
        if session_id in self.sessions:
            self.sessions.move_to_end(session_id)
        return session_id, result

    async def variants(self, request: PlanningRequest, count: Optional[int] = None) -> VariantsResult:
        return await self.matcher.find_variants(request, count or self.settings.variant_count)
