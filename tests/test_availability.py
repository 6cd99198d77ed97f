"""Tests for the free-slot sweep, suggestions and next-available-slot."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trip_scheduler.domain.errors import InvalidArgument, InvalidWindow
from trip_scheduler.domain.models import Trip, TripStatus
from trip_scheduler.repos.memory import InMemoryTripRepository
from trip_scheduler.services.availability import compute_free_slots
from trip_scheduler.services.overlap import OverlapEngine

_T = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)
DRIVER = 1
VEHICLE = 10


def _h(hours: float) -> datetime:
    return _T + timedelta(hours=hours)


@pytest.fixture()
def repo() -> InMemoryTripRepository:
    return InMemoryTripRepository()


@pytest.fixture()
def engine(repo) -> OverlapEngine:
    return OverlapEngine(repo)


def _book(repo, start, end, driver_id=DRIVER, vehicle_id=VEHICLE, status=TripStatus.SCHEDULED):
    return repo.save(
        Trip(
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            schedule_start=start,
            schedule_end=end,
            status=status,
        )
    )


def _windows(slots):
    return [(s.start, s.end) for s in slots]


# ---------------------------------------------------------------------------
# compute_free_slots
# ---------------------------------------------------------------------------


def test_sweep_merges_overlapping_busy_trips():
    busy = [
        Trip(driver_id=1, vehicle_id=10, schedule_start=_h(1), schedule_end=_h(4)),
        Trip(driver_id=2, vehicle_id=10, schedule_start=_h(2), schedule_end=_h(3)),
        Trip(driver_id=1, vehicle_id=11, schedule_start=_h(3), schedule_end=_h(5)),
    ]
    slots = compute_free_slots(busy, _h(0), _h(8))
    assert _windows(slots) == [(_h(0), _h(1)), (_h(5), _h(8))]


def test_sweep_with_trip_straddling_range_edges():
    busy = [
        Trip(driver_id=1, vehicle_id=10, schedule_start=_h(-2), schedule_end=_h(1)),
        Trip(driver_id=1, vehicle_id=10, schedule_start=_h(6), schedule_end=_h(12)),
    ]
    slots = compute_free_slots(busy, _h(0), _h(8))
    assert _windows(slots) == [(_h(1), _h(6))]


def test_sweep_drops_empty_gaps_between_adjacent_trips():
    busy = [
        Trip(driver_id=1, vehicle_id=10, schedule_start=_h(0), schedule_end=_h(2)),
        Trip(driver_id=1, vehicle_id=10, schedule_start=_h(2), schedule_end=_h(4)),
    ]
    assert _windows(compute_free_slots(busy, _h(0), _h(4))) == []


# ---------------------------------------------------------------------------
# OverlapEngine.free_slots
# ---------------------------------------------------------------------------


def test_empty_range_is_one_full_slot(engine):
    slots = engine.free_slots(DRIVER, VEHICLE, _h(0), _h(10))
    assert _windows(slots) == [(_h(0), _h(10))]
    assert slots[0].duration_minutes == 600


def test_single_booking_splits_range(engine, repo):
    _book(repo, _h(2), _h(4))
    slots = engine.free_slots(DRIVER, VEHICLE, _h(0), _h(10))
    assert _windows(slots) == [(_h(0), _h(2)), (_h(4), _h(10))]


def test_fully_booked_range_returns_empty_list(engine, repo):
    _book(repo, _h(-1), _h(11))
    assert engine.free_slots(DRIVER, VEHICLE, _h(0), _h(10)) == []


def test_cancelled_trips_leave_the_range_free(engine, repo):
    _book(repo, _h(2), _h(4), status=TripStatus.CANCELLED)
    assert _windows(engine.free_slots(DRIVER, VEHICLE, _h(0), _h(10))) == [(_h(0), _h(10))]


def test_free_slots_partition_the_range(engine, repo):
    """Free slots and busy trips together cover the range exactly, with no overlaps."""
    _book(repo, _h(1), _h(2))
    _book(repo, _h(1.5), _h(3), driver_id=2)  # same vehicle, overlaps the first
    _book(repo, _h(5), _h(6), vehicle_id=11)  # same driver
    _book(repo, _h(9), _h(12))
    _book(repo, _h(3), _h(4), driver_id=3, vehicle_id=30)  # unrelated

    range_start, range_end = _h(0), _h(10)
    slots = engine.free_slots(DRIVER, VEHICLE, range_start, range_end)
    busy = repo.find_in_range(DRIVER, VEHICLE, range_start, range_end)

    for earlier, later in zip(slots, slots[1:]):
        assert earlier.end < later.start

    minute = timedelta(minutes=1)
    cursor = range_start
    while cursor < range_end:
        in_slot = any(s.start <= cursor < s.end for s in slots)
        in_busy = any(t.schedule_start <= cursor < t.schedule_end for t in busy)
        assert in_slot != in_busy, cursor
        cursor += minute


def test_free_slots_requires_both_resources(engine):
    with pytest.raises(InvalidArgument):
        engine.free_slots(None, VEHICLE, _h(0), _h(1))
    with pytest.raises(InvalidArgument):
        engine.free_slots(DRIVER, None, _h(0), _h(1))


def test_free_slots_rejects_inverted_range(engine):
    with pytest.raises(InvalidWindow):
        engine.free_slots(DRIVER, VEHICLE, _h(5), _h(1))


# ---------------------------------------------------------------------------
# suggest_alternatives
# ---------------------------------------------------------------------------


def test_suggestions_are_earliest_first_and_full_length(engine, repo):
    # Leave only short gaps before the request day, and a long one after.
    for day in range(-7, 0):
        _book(repo, _h(24 * day), _h(24 * day + 23))
    _book(repo, _h(0), _h(10))

    suggestions = engine.suggest_alternatives(DRIVER, VEHICLE, _h(2), _h(5))

    assert suggestions, "expected at least one suggestion"
    assert suggestions[0].start == _h(10)
    assert suggestions[0].end == _h(13)
    for s in suggestions:
        assert s.end - s.start == timedelta(hours=3)
        assert s.requested_duration_hours == 3.0
        assert s.available_duration_hours >= 3.0
    assert [s.start for s in suggestions] == sorted(s.start for s in suggestions)


def test_suggestions_respect_max_count(engine, repo):
    for i in range(0, 20):
        _book(repo, _h(i * 3), _h(i * 3 + 1))

    suggestions = engine.suggest_alternatives(DRIVER, VEHICLE, _h(0), _h(1), max_suggestions=3)
    assert len(suggestions) == 3


def test_suggestions_skip_slots_shorter_than_request(engine, repo):
    search_start = _h(0) - timedelta(days=7)
    _book(repo, search_start, _h(1))
    _book(repo, _h(2), _h(10))  # leaves a 1h gap at [1h, 2h)

    suggestions = engine.suggest_alternatives(DRIVER, VEHICLE, _h(0), _h(4))
    assert all(s.start >= _h(10) for s in suggestions)


def test_suggestions_use_default_count(repo):
    engine = OverlapEngine(repo, default_max_suggestions=2)
    for i in range(0, 10):
        _book(repo, _h(i * 2), _h(i * 2 + 1))
    assert len(engine.suggest_alternatives(DRIVER, VEHICLE, _h(0), _h(1))) == 2


def test_suggestions_reject_non_positive_count(engine):
    with pytest.raises(InvalidArgument):
        engine.suggest_alternatives(DRIVER, VEHICLE, _h(0), _h(1), max_suggestions=0)


# ---------------------------------------------------------------------------
# next_available_slot
# ---------------------------------------------------------------------------


def test_next_available_slot_skips_short_gaps(engine, repo):
    _book(repo, _h(0), _h(2))
    _book(repo, _h(2.5), _h(5))

    suggestion = engine.next_available_slot(DRIVER, VEHICLE, _h(0), duration_minutes=60)

    assert suggestion is not None
    assert suggestion.start == _h(5)
    assert suggestion.end == _h(6)


def test_next_available_slot_none_when_horizon_full(engine, repo):
    _book(repo, _h(0), _h(0) + timedelta(days=31))
    assert engine.next_available_slot(DRIVER, VEHICLE, _h(0), duration_minutes=30) is None


def test_next_available_slot_rejects_zero_duration(engine):
    with pytest.raises(InvalidArgument):
        engine.next_available_slot(DRIVER, VEHICLE, _h(0), duration_minutes=0)
