"""
Tests for planning sessions: manual destination overrides, the attempt
limit and resetting to the default route
"""
import asyncio

import pytest

from stepmatch.config import Settings
from stepmatch.exceptions import InvalidInputError, SelectionError
from stepmatch.models.request import TripType
from stepmatch.models.selection import RejectionReason
from stepmatch.services.route.matcher import RouteMatcher
from stepmatch.services.route.policy import SearchPolicy
from stepmatch.services.route_service import PlanningSession, RouteService
from stepmatch.utils.geo import destination_point

from routing_stubs import PARIS, FakeRoutingService, make_request

POLICY = SearchPolicy(bearing_counts=[8], tolerance_factors=[0.0, 0.05])

IN_WINDOW = [destination_point(PARIS, 7055, bearing) for bearing in (45, 135, 225, 315)]
TOO_CLOSE = destination_point(PARIS, 2000, 60)
TOO_FAR = destination_point(PARIS, 10000, 60)


def _service(fake=None, **settings):
    fake = fake or FakeRoutingService()
    return fake, RouteService(RouteMatcher(fake, POLICY), Settings(**settings))


def _planned(fake=None, request=None, **settings):
    fake, service = _service(fake, **settings)
    session_id, result = asyncio.run(service.plan(request or make_request()))
    assert result.succeeded
    return fake, service.get_session(session_id)


def test_plan_opens_a_session_with_the_default_route():
    _, service = _service()
    session_id, result = asyncio.run(service.plan(make_request()))

    session = service.get_session(session_id)
    assert session.default_route == result.route
    assert session.active_route == result.route
    assert session.attempt_state.valid_attempt_count == 0
    assert not session.attempt_state.locked


def test_invalid_request_leaves_no_session():
    fake, service = _service()
    with pytest.raises(InvalidInputError):
        asyncio.run(service.plan(make_request(height_m=-1)))
    assert service.sessions == {}
    assert fake.calls == []


def test_straight_line_too_far_is_rejected_without_routing():
    fake, session = _planned()
    calls_before = len(fake.calls)

    outcome = asyncio.run(session.propose_manual_destination(TOO_FAR))

    assert not outcome.accepted
    assert outcome.rejected.reason == RejectionReason.TOO_FAR
    assert outcome.rejected.straight_line_meters == pytest.approx(10000)
    assert len(fake.calls) == calls_before
    assert outcome.state.valid_attempt_count == 0


def test_round_trip_doubles_the_straight_line_check():
    fake, session = _planned(request=make_request(trip_type=TripType.ROUND_TRIP))
    calls_before = len(fake.calls)

    outcome = asyncio.run(session.propose_manual_destination(destination_point(PARIS, 4000, 10)))

    assert outcome.rejected.reason == RejectionReason.TOO_FAR
    assert len(fake.calls) == calls_before


def test_destination_too_close():
    _, session = _planned()
    default = session.active_route

    outcome = asyncio.run(session.propose_manual_destination(TOO_CLOSE))

    assert outcome.rejected.reason == RejectionReason.TOO_CLOSE
    assert outcome.rejected.window.min_meters == pytest.approx(6702.25)
    assert outcome.state.valid_attempt_count == 0
    assert session.active_route == default


def test_destination_without_route():
    unreachable = destination_point(PARIS, 7055, 100)
    _, session = _planned(FakeRoutingService(fail_to=unreachable))

    outcome = asyncio.run(session.propose_manual_destination(unreachable))

    assert outcome.rejected.reason == RejectionReason.NO_ROUTE
    assert outcome.state.valid_attempt_count == 0


def test_valid_destination_becomes_the_active_route():
    _, session = _planned()
    default = session.default_route

    outcome = asyncio.run(session.propose_manual_destination(IN_WINDOW[0]))

    assert outcome.accepted
    assert outcome.route.destination == IN_WINDOW[0]
    assert session.active_route == outcome.route
    assert session.default_route == default
    assert outcome.state.valid_attempt_count == 1
    assert outcome.state.remaining_attempts == 2


def test_third_valid_pick_locks_selection():
    fake, session = _planned()
    for destination in IN_WINDOW[:3]:
        outcome = asyncio.run(session.propose_manual_destination(destination))
        assert outcome.accepted
    assert outcome.state.locked

    calls_before = len(fake.calls)
    outcome = asyncio.run(session.propose_manual_destination(IN_WINDOW[3]))
    assert outcome.rejected.reason == RejectionReason.LOCKED
    assert session.active_route.destination == IN_WINDOW[2]
    assert len(fake.calls) == calls_before


def test_reset_restores_default_and_stays_locked():
    _, session = _planned(reset_mode="lock_and_start_default")
    asyncio.run(session.propose_manual_destination(IN_WINDOW[0]))

    route = session.reset_selection()

    assert route == session.default_route
    assert session.active_route == session.default_route
    assert session.attempt_state.valid_attempt_count == 0
    assert session.attempt_state.locked
    outcome = asyncio.run(session.propose_manual_destination(IN_WINDOW[1]))
    assert outcome.rejected.reason == RejectionReason.LOCKED


def test_reset_unlock_allows_new_picks():
    _, session = _planned(reset_mode="unlock")
    for destination in IN_WINDOW[:3]:
        asyncio.run(session.propose_manual_destination(destination))
    assert session.attempt_state.locked

    session.reset_selection()

    assert not session.attempt_state.locked
    outcome = asyncio.run(session.propose_manual_destination(IN_WINDOW[3]))
    assert outcome.accepted
    assert outcome.state.valid_attempt_count == 1


def test_counting_invalid_attempts_locks_after_rejections():
    _, session = _planned(count_invalid_attempts=True)
    for _ in range(3):
        outcome = asyncio.run(session.propose_manual_destination(TOO_CLOSE))
        assert outcome.rejected.reason == RejectionReason.TOO_CLOSE
    assert session.attempt_state.locked


def test_new_plan_reopens_selection():
    fake, service = _service(max_manual_attempts=1)
    session_id, _ = asyncio.run(service.plan(make_request()))
    session = service.get_session(session_id)
    asyncio.run(session.propose_manual_destination(IN_WINDOW[0]))
    assert session.attempt_state.locked

    asyncio.run(session.plan_route(make_request()))

    assert not session.attempt_state.locked
    assert session.attempt_state.max_attempts == 1


def test_selection_before_planning_is_an_error():
    _, service = _service()
    session = service.get_session(service.create_session())

    with pytest.raises(SelectionError):
        session.reset_selection()
    with pytest.raises(SelectionError):
        asyncio.run(session.propose_manual_destination(IN_WINDOW[0]))


def test_unknown_session():
    _, service = _service()
    with pytest.raises(SelectionError):
        service.get_session("missing")


def test_cancelled_plan_commits_nothing():
    fake = FakeRoutingService(delay_fn=lambda _: 1.0)
    _, service = _service(fake)
    session = PlanningSession(service.matcher, service.new_limiter())

    async def cancel_midway(coro):
        task = asyncio.ensure_future(coro)
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_midway(session.plan_route(make_request())))
    assert session.request is None
    assert session.default_route is None
    assert session.active_route is None

    asyncio.run(cancel_midway(service.plan(make_request())))
    assert service.sessions == {}


def test_variants_use_the_configured_count():
    _, service = _service(variant_count=2)
    result = asyncio.run(service.variants(make_request()))
    assert len(result.routes) == 2


def test_concurrent_picks_cannot_exceed_the_attempt_limit():
    # Later calls answer later, so the first pick finishes first
    fake = FakeRoutingService(delay_fn=lambda i: 0.01 * (i + 1))
    _, session = _planned(fake, max_manual_attempts=1)

    async def both():
        return await asyncio.gather(
            session.propose_manual_destination(IN_WINDOW[0]),
            session.propose_manual_destination(IN_WINDOW[1]),
        )

    first, second = asyncio.run(both())

    assert first.accepted
    assert not second.accepted
    assert second.rejected.reason == RejectionReason.LOCKED
    assert session.active_route == first.route
    assert session.attempt_state.valid_attempt_count == 1
    assert session.attempt_state.locked


def test_concurrent_picks_both_count_when_attempts_remain():
    _, session = _planned(FakeRoutingService(delay_fn=lambda _: 0.02))

    async def both():
        return await asyncio.gather(
            session.propose_manual_destination(IN_WINDOW[0]),
            session.propose_manual_destination(IN_WINDOW[1]),
        )

    outcomes = asyncio.run(both())

    assert all(outcome.accepted for outcome in outcomes)
    assert session.attempt_state.valid_attempt_count == 2
    assert session.active_route in [outcome.route for outcome in outcomes]


def _pick_then(session, interrupt, destination=IN_WINDOW[0]):
    async def run():
        task = asyncio.ensure_future(session.propose_manual_destination(destination))
        await asyncio.sleep(0.01)
        await interrupt()
        return await task

    return asyncio.run(run())


def test_reset_during_a_pick_keeps_the_default_route():
    _, session = _planned(FakeRoutingService(delay_fn=lambda _: 0.1))
    default = session.default_route

    async def reset():
        session.reset_selection()

    outcome = _pick_then(session, reset)

    assert outcome.rejected.reason == RejectionReason.SUPERSEDED
    assert session.active_route == default
    assert session.attempt_state.valid_attempt_count == 0


def test_reset_during_a_pick_in_unlock_mode_frees_no_extra_attempt():
    _, session = _planned(FakeRoutingService(delay_fn=lambda _: 0.1), reset_mode="unlock")

    async def reset():
        session.reset_selection()

    outcome = _pick_then(session, reset)

    assert outcome.rejected.reason == RejectionReason.SUPERSEDED
    assert session.active_route == session.default_route
    assert not session.attempt_state.locked
    assert session.attempt_state.valid_attempt_count == 0


def test_replan_during_a_pick_discards_the_pick():
    # Call 4 is the pick; the re-plan after it answers quickly
    _, session = _planned(FakeRoutingService(delay_fn=lambda i: 0.2 if i == 4 else 0.01))

    async def replan():
        await session.plan_route(make_request())

    outcome = _pick_then(session, replan)

    assert outcome.rejected.reason == RejectionReason.SUPERSEDED
    assert session.active_route == session.default_route


def _clocked_service(now, **settings):
    matcher = RouteMatcher(FakeRoutingService(), POLICY)
    return RouteService(matcher, Settings(**settings), clock=lambda: now[0])


def test_idle_sessions_expire():
    now = [0.0]
    service = _clocked_service(now, session_ttl_seconds=60)
    idle = service.create_session()
    now[0] = 30.0
    recent = service.create_session()

    now[0] = 75.0
    fresh = service.create_session()

    assert list(service.sessions) == [recent, fresh]
    with pytest.raises(SelectionError):
        service.get_session(idle)


def test_using_a_session_keeps_it_alive():
    now = [0.0]
    service = _clocked_service(now, session_ttl_seconds=60)
    session_id = service.create_session()

    now[0] = 50.0
    service.get_session(session_id)
    now[0] = 100.0
    service.create_session()

    assert session_id in service.sessions


def test_store_evicts_least_recently_used_beyond_capacity():
    now = [0.0]
    service = _clocked_service(now, max_sessions=2)
    first = service.create_session()
    second = service.create_session()
    service.get_session(first)

    third = service.create_session()

    assert list(service.sessions) == [first, third]
    assert len(service.sessions) == 2
    with pytest.raises(SelectionError):
        service.get_session(second)


def test_failed_plans_are_swept_like_any_other_session():
    now = [0.0]
    matcher = RouteMatcher(FakeRoutingService(fail_all=True), POLICY)
    service = RouteService(matcher, Settings(session_ttl_seconds=10), clock=lambda: now[0])
    session_id, result = asyncio.run(service.plan(make_request()))
    assert not result.succeeded
    assert session_id in service.sessions

    now[0] = 20.0
    service.create_session()

    assert session_id not in service.sessions
