"""Overlap predicate and the pure filters built on it.

Every store and service decides "do these two windows collide" through
``windows_overlap``; nothing else re-derives the rule.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from trip_scheduler.domain.models import Conflict, ConflictKind, Trip


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Return True when the half-open windows [start_a, end_a) and [start_b, end_b) share an instant.

    Covers partial overlap at either end, containment in both directions and
    exact coincidence. Exact boundary touches (end == start) are NOT overlaps.
    """
    return start_a < end_b and start_b < end_a


def shares_resource(trip: Trip, driver_id: int, vehicle_id: int) -> bool:
    return trip.driver_id == driver_id or trip.vehicle_id == vehicle_id


def find_conflicts(
    driver_id: int,
    vehicle_id: int,
    start: datetime,
    end: datetime,
    trips: Iterable[Trip],
    exclude_id: str | None = None,
) -> list[Trip]:
    """Return active trips sharing the driver or the vehicle whose window overlaps [start, end)."""
    return [
        trip
        for trip in trips
        if trip.is_active
        and trip.has_window
        and (exclude_id is None or trip.id != exclude_id)
        and shares_resource(trip, driver_id, vehicle_id)
        and windows_overlap(start, end, trip.schedule_start, trip.schedule_end)
    ]


def find_in_range(
    driver_id: int,
    vehicle_id: int,
    range_start: datetime,
    range_end: datetime,
    trips: Iterable[Trip],
) -> list[Trip]:
    """Return active trips for either resource intersecting the range, earliest first."""
    hits = find_conflicts(driver_id, vehicle_id, range_start, range_end, trips)
    return sorted(hits, key=lambda t: t.schedule_start)


def conflict_kind(trip: Trip, driver_id: int, vehicle_id: int) -> ConflictKind:
    same_driver = trip.driver_id == driver_id
    same_vehicle = trip.vehicle_id == vehicle_id
    if same_driver and same_vehicle:
        return ConflictKind.DRIVER_AND_VEHICLE
    if same_driver:
        return ConflictKind.DRIVER
    return ConflictKind.VEHICLE


def describe_conflicts(trips: Iterable[Trip], driver_id: int, vehicle_id: int) -> list[Conflict]:
    return [
        Conflict(
            trip_id=trip.id,
            trip_number=trip.trip_number,
            kind=conflict_kind(trip, driver_id, vehicle_id),
            schedule_start=trip.schedule_start,
            schedule_end=trip.schedule_end,
        )
        for trip in trips
    ]
