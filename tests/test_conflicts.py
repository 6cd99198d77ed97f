"""Tests for the overlap predicate and the pure conflict filters."""

from datetime import datetime, timedelta, timezone

import pytest

from trip_scheduler.domain.models import ConflictKind, Trip, TripStatus
from trip_scheduler.services.conflicts import (
    conflict_kind,
    describe_conflicts,
    find_conflicts,
    find_in_range,
    windows_overlap,
)

_T = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


def _h(hours: float) -> datetime:
    return _T + timedelta(hours=hours)


def _make_trip(
    start: datetime,
    end: datetime,
    driver_id: int = 1,
    vehicle_id: int = 10,
    status: TripStatus = TripStatus.SCHEDULED,
    trip_id: str = "existing",
) -> Trip:
    return Trip(
        id=trip_id,
        trip_number="20250001",
        driver_id=driver_id,
        vehicle_id=vehicle_id,
        schedule_start=start,
        schedule_end=end,
        status=status,
    )


# ---------------------------------------------------------------------------
# windows_overlap
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ((0, 1), (2, 3), False),  # disjoint
        ((1, 3), (2, 4), True),  # overlaps the end
        ((2, 4), (1, 3), True),  # overlaps the start
        ((1, 5), (2, 3), True),  # contains
        ((2, 3), (1, 5), True),  # contained by
        ((1, 3), (1, 3), True),  # exact coincidence
        ((0, 10), (10, 20), False),  # adjacent
        ((10, 20), (0, 10), False),  # adjacent, other side
    ],
)
def test_windows_overlap_cases(a, b, expected):
    assert windows_overlap(_h(a[0]), _h(a[1]), _h(b[0]), _h(b[1])) is expected


def test_windows_overlap_matches_inequality_and_is_symmetric():
    """Every pair on a small grid agrees with s1 < e2 and s2 < e1, both ways round."""
    points = range(0, 6)
    windows = [(s, e) for s in points for e in points if s < e]
    for s1, e1 in windows:
        for s2, e2 in windows:
            expected = s1 < e2 and s2 < e1
            assert windows_overlap(_h(s1), _h(e1), _h(s2), _h(e2)) is expected
            assert windows_overlap(_h(s2), _h(e2), _h(s1), _h(e1)) is expected


# ---------------------------------------------------------------------------
# find_conflicts
# ---------------------------------------------------------------------------


def test_no_overlap():
    """Trips that don't overlap should not be returned as conflicts."""
    existing = [_make_trip(_h(0), _h(1))]
    assert find_conflicts(1, 10, _h(2), _h(3), existing) == []


def test_partial_overlap():
    """A trip that partially overlaps should be returned as a conflict."""
    existing = [_make_trip(_h(1), _h(2.5))]
    conflicts = find_conflicts(1, 10, _h(2), _h(3), existing)
    assert len(conflicts) == 1
    assert conflicts[0].schedule_start == _h(1)


def test_exact_boundary_no_conflict():
    """When existing.schedule_end == new start, there is no conflict (boundary touch)."""
    existing = [_make_trip(_h(1), _h(2))]
    assert find_conflicts(1, 10, _h(2), _h(3), existing) == []


def test_cancelled_trips_are_ignored():
    existing = [_make_trip(_h(1), _h(3), status=TripStatus.CANCELLED)]
    assert find_conflicts(1, 10, _h(1), _h(3), existing) == []


def test_completed_and_in_progress_trips_still_block():
    existing = [
        _make_trip(_h(1), _h(3), status=TripStatus.COMPLETED, trip_id="done"),
        _make_trip(_h(4), _h(6), status=TripStatus.IN_PROGRESS, trip_id="running"),
    ]
    conflicts = find_conflicts(1, 10, _h(2), _h(5), existing)
    assert {t.id for t in conflicts} == {"done", "running"}


def test_excluded_id_is_skipped():
    existing = [_make_trip(_h(1), _h(3), trip_id="self")]
    assert find_conflicts(1, 10, _h(1), _h(3), existing, exclude_id="self") == []


def test_unrelated_resources_do_not_conflict():
    existing = [_make_trip(_h(1), _h(3), driver_id=2, vehicle_id=20)]
    assert find_conflicts(1, 10, _h(1), _h(3), existing) == []


def test_shared_vehicle_alone_conflicts():
    existing = [_make_trip(_h(1), _h(3), driver_id=2, vehicle_id=10)]
    assert len(find_conflicts(1, 10, _h(2), _h(4), existing)) == 1


def test_find_in_range_orders_by_start():
    existing = [
        _make_trip(_h(5), _h(6), trip_id="late"),
        _make_trip(_h(1), _h(2), trip_id="early"),
        _make_trip(_h(3), _h(4), driver_id=7, trip_id="middle"),
    ]
    result = find_in_range(1, 10, _h(0), _h(10), existing)
    assert [t.id for t in result] == ["early", "middle", "late"]


# ---------------------------------------------------------------------------
# Conflict descriptions
# ---------------------------------------------------------------------------


def test_conflict_kind_reports_which_resource_collided():
    assert conflict_kind(_make_trip(_h(1), _h(2)), 1, 10) is ConflictKind.DRIVER_AND_VEHICLE
    assert conflict_kind(_make_trip(_h(1), _h(2), vehicle_id=99), 1, 10) is ConflictKind.DRIVER
    assert conflict_kind(_make_trip(_h(1), _h(2), driver_id=99), 1, 10) is ConflictKind.VEHICLE


def test_describe_conflicts_message():
    conflict = describe_conflicts([_make_trip(_h(1), _h(3))], 1, 10)[0]
    assert conflict.trip_id == "existing"
    assert conflict.describe() == (
        "Trip #20250001 (driver and vehicle) from 2025-01-01 09:00:00 to 2025-01-01 11:00:00"
    )
