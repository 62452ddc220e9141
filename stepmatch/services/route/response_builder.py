"""
Response builder service - converts planned routes and search outcomes to API response format
Includes encoded route geometry for map display
"""
from typing import List, Optional, Sequence

import polyline

from stepmatch.models.request import Coordinate
from stepmatch.models.response import (
    AttemptInfo,
    FailureInfo,
    LocationPoint,
    PlanResponse,
    Route,
    RouteGeometry,
    SelectionResponse,
    TargetInfo,
    VariantsResponse,
)
from stepmatch.models.route import MatchFailure, PlannedRoute
from stepmatch.models.selection import AttemptState, SelectionOutcome
from stepmatch.services.route.matcher import MatchResult, VariantsResult
from stepmatch.services.route.trace import SearchTrace


class ResponseBuilderService:
    """Response builder service - converts internal data to API response format"""

    def build_plan_response(
        self,
        result: MatchResult,
        session_id: Optional[str] = None,
        attempts: Optional[AttemptState] = None,
    ) -> PlanResponse:
        if result.route is not None:
            message = "Route found"
            if result.route.adjusted:
                message = "Route found after adjusting the closest candidate"
            elif result.route.is_same_path_return:
                message = "Route found, returning along the same path"
            return PlanResponse(
                success=True,
                message=message,
                session_id=session_id,
                route=self.build_route(result.route),
                attempts=self.build_attempts(attempts) if attempts else None,
                trace=self.build_trace(result.trace),
            )

        return PlanResponse(
            success=False,
            message="No route within tolerance; consider adjusting the goal",
            session_id=session_id,
            failure=self.build_failure(result.failure),
            attempts=self.build_attempts(attempts) if attempts else None,
            trace=self.build_trace(result.trace),
        )

    def build_variants_response(self, result: VariantsResult) -> VariantsResponse:
        routes = [self.build_route(route) for route in result.routes]
        return VariantsResponse(
            success=bool(routes),
            message=f"Successfully generated {len(routes)} routes",
            routes=routes,
            total_count=len(routes),
            trace=self.build_trace(result.trace),
        )

    def build_selection_response(self, outcome: SelectionOutcome) -> SelectionResponse:
        if outcome.route is not None:
            return SelectionResponse(
                success=True,
                message="Destination accepted",
                route=self.build_route(outcome.route),
                attempts=self.build_attempts(outcome.state),
            )

        rejected = outcome.rejected
        straight = rejected.straight_line_meters
        return SelectionResponse(
            success=False,
            message=rejected.message,
            rejection=rejected.reason.value,
            straight_line_distance=round(straight) if straight is not None else None,
            attempts=self.build_attempts(outcome.state),
        )

    def build_reset_response(self, route: PlannedRoute, state: AttemptState) -> SelectionResponse:
        return SelectionResponse(
            success=True,
            message="Default route restored",
            route=self.build_route(route),
            attempts=self.build_attempts(state),
        )

    def build_route(self, route: PlannedRoute) -> Route:
        return_path = None
        if route.return_geometry:
            return_path = self.build_geometry(route.return_geometry, route.return_meters)

        return Route(
            origin=self._point(route.origin),
            destination=self._point(route.destination),
            trip_type=route.trip_type.value,
            distance=round(route.total_distance_meters),
            duration=f"{route.total_duration_seconds}s",
            duration_minutes=round(route.total_duration_seconds / 60),
            steps=route.estimated_steps,
            calories=route.estimated_calories,
            outbound=self.build_geometry(route.outbound_geometry, route.outbound_meters),
            return_path=return_path,
            overlap_ratio=round(route.overlap_ratio, 3) if route.overlap_ratio is not None else None,
            same_path_return=route.is_same_path_return,
            adjusted=route.adjusted,
            degraded=route.degraded,
            within_tolerance=route.within_tolerance,
        )

    def build_geometry(self, path: Sequence[Coordinate], distance_meters: float) -> RouteGeometry:
        pairs: List[tuple] = [(p.lat, p.lng) for p in path]
        return RouteGeometry(
            overview_polyline={"points": polyline.encode(pairs, 5)},
            coordinates=[[lat, lng] for lat, lng in pairs],
            distance=round(distance_meters),
        )

    def build_failure(self, failure: MatchFailure) -> FailureInfo:
        closest = failure.closest_distance_meters
        missed = failure.missed_by_meters
        return FailureInfo(
            reason=failure.reason,
            target=TargetInfo(
                target_meters=round(failure.window.target_meters),
                min_meters=round(failure.window.min_meters),
                max_meters=round(failure.window.max_meters),
            ),
            closest_distance=round(closest) if closest is not None else None,
            missed_by=round(missed) if missed is not None else None,
        )

    def build_attempts(self, state: AttemptState) -> AttemptInfo:
        return AttemptInfo(
            valid_attempt_count=state.valid_attempt_count,
            max_attempts=state.max_attempts,
            locked=state.locked,
            remaining_attempts=state.remaining_attempts,
        )

    def build_trace(self, trace: SearchTrace) -> dict:
        return trace.model_dump()

    @staticmethod
    def _point(point: Coordinate) -> LocationPoint:
        return LocationPoint(lat=point.lat, lng=point.lng)
