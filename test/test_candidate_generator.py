import pytest

from stepmatch.models.request import Coordinate
from stepmatch.services.route.candidate_generator import detour_waypoints, ring_candidates
from stepmatch.utils.geo import (
    destination_point,
    haversine_meters,
    initial_bearing,
    point_to_segment_meters,
)

from routing_stubs import PARIS, straight_path


def test_ring_points_sit_on_the_radius_in_bearing_order():
    ring = ring_candidates(PARIS, 3500, 16)

    assert len(ring) == 16
    assert [c.bearing_deg for c in ring] == [i * 22.5 for i in range(16)]
    for candidate in ring:
        assert haversine_meters(PARIS, candidate.point) == pytest.approx(3500, rel=1e-6)
        assert candidate.radius_meters == 3500

    north = ring[0].point
    assert north.lat > PARIS.lat
    assert north.lng == pytest.approx(PARIS.lng)


def test_ring_is_reproducible():
    assert ring_candidates(PARIS, 1200, 20) == ring_candidates(PARIS, 1200, 20)


def test_ring_offset_explores_other_directions():
    base = {round(c.bearing_deg, 6) for c in ring_candidates(PARIS, 1000, 8)}
    shifted = {round(c.bearing_deg, 6) for c in ring_candidates(PARIS, 1000, 8, 22.5)}
    assert base.isdisjoint(shifted)


def test_destination_point_round_trips_with_bearing_and_distance():
    target = destination_point(PARIS, 2000, 73)
    assert haversine_meters(PARIS, target) == pytest.approx(2000, rel=1e-6)
    assert initial_bearing(PARIS, target) == pytest.approx(73, abs=0.01)


def test_detour_waypoints_flank_the_path_midpoint():
    end = destination_point(PARIS, 3000, 90)
    path = straight_path([PARIS, end], points_per_leg=21)

    left, right = detour_waypoints(path, 250, 1)

    anchor = path[10]
    assert haversine_meters(anchor, left) == pytest.approx(250, rel=1e-3)
    assert haversine_meters(anchor, right) == pytest.approx(250, rel=1e-3)
    # Path heads east: left of it is north, right is south
    assert left.lat > anchor.lat > right.lat
    assert point_to_segment_meters(left, PARIS, end) == pytest.approx(250, rel=0.01)


def test_detour_waypoints_per_side_count():
    end = destination_point(PARIS, 3000, 0)
    path = straight_path([PARIS, end], points_per_leg=30)
    assert len(detour_waypoints(path, 100, 3)) == 6
    assert detour_waypoints(path, 100, 3) == detour_waypoints(path, 100, 3)


def test_detour_waypoints_need_an_interior_point():
    assert detour_waypoints([PARIS, Coordinate(lat=48.86, lng=2.36)], 100, 1) == []
    assert detour_waypoints(straight_path([PARIS, Coordinate(lat=48.86, lng=2.36)]), 0, 1) == []
