"""Query contract the overlap engine relies on.

Implementations must match trips with ``windows_overlap`` semantics exactly;
the engine trusts their answers without re-checking.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from trip_scheduler.domain.errors import InvalidWindow
from trip_scheduler.domain.models import Trip


class TripRepository(Protocol):
    def find_conflicting(
        self,
        driver_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[Trip]:
        """Active trips sharing the driver or the vehicle that overlap [start, end)."""
        ...

    def exists_conflicting(
        self,
        driver_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> bool: ...

    def find_in_range(
        self,
        driver_id: int,
        vehicle_id: int,
        range_start: datetime,
        range_end: datetime,
    ) -> list[Trip]:
        """Active trips for either resource intersecting the range, ordered by start."""
        ...

    def save(self, trip: Trip) -> Trip: ...

    def save_if_no_conflict(self, trip: Trip, numbered_at: datetime | None = None) -> Trip:
        """Re-check ``trip`` against active trips and store it as one atomic step.

        Raises OverlapConflict instead of storing when an active ``trip`` collides
        with another trip. When ``numbered_at`` is given, the next trip number
        for that year is reserved inside the same step.
        """
        ...

    def get(self, trip_id: str) -> Trip | None: ...

    def list_all(self) -> list[Trip]: ...

    def next_trip_number(self, now: datetime) -> str:
        """Reserve and return the next ``YYYYNNNN`` label; never hands out one twice."""
        ...


def require_storable_window(trip: Trip) -> None:
    if not trip.has_window:
        raise InvalidWindow("schedule_start and schedule_end are required to save a trip")
    if trip.schedule_start >= trip.schedule_end:
        raise InvalidWindow("schedule_start must be before schedule_end")


def format_trip_number(year: int, sequence: int) -> str:
    return f"{year:04d}{sequence:04d}"


def trip_number_sequence(label: str | None, year: int) -> int:
    """Integer suffix of ``label`` when it belongs to ``year``, else 0."""
    prefix = f"{year:04d}"
    if not label or not label.startswith(prefix) or not label[4:].isdigit():
        return 0
    return int(label[4:])


def next_trip_number_after(last: str | None, now: datetime) -> str:
    """Return the label following ``last`` in the ``YYYYNNNN`` per-year sequence.

    The counter restarts at 0001 when the year of ``last`` differs from ``now``,
    and widens past four digits instead of wrapping.
    """
    return format_trip_number(now.year, trip_number_sequence(last, now.year) + 1)
