"""Free-slot sweep and the suggestion shapes derived from it."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from trip_scheduler.domain.models import FreeSlot, Suggestion, Trip

_HOUR = timedelta(hours=1)


def compute_free_slots(
    busy: Iterable[Trip],
    range_start: datetime,
    range_end: datetime,
) -> list[FreeSlot]:
    """Return the gaps in [range_start, range_end) not covered by any busy trip.

    ``busy`` must be ordered by ``schedule_start``. A cursor walks the range:
    each trip starting after the cursor closes a gap, and the cursor then jumps
    to the later of itself and the trip's end, so overlapping busy trips merge.
    Slots are disjoint, ascending, and never empty.
    """
    slots: list[FreeSlot] = []
    cursor = range_start

    for trip in busy:
        if cursor < trip.schedule_start:
            slots.append(FreeSlot(start=cursor, end=min(trip.schedule_start, range_end)))
        cursor = max(cursor, trip.schedule_end)

    if cursor < range_end:
        slots.append(FreeSlot(start=cursor, end=range_end))

    return [slot for slot in slots if slot.end > slot.start]


def fits(slot: FreeSlot, duration: timedelta) -> bool:
    return slot.end - slot.start >= duration


def to_suggestion(slot: FreeSlot, duration: timedelta) -> Suggestion:
    """Place a booking of ``duration`` at the start of ``slot``."""
    return Suggestion(
        start=slot.start,
        end=slot.start + duration,
        requested_duration_hours=round(duration / _HOUR, 1),
        available_duration_hours=round((slot.end - slot.start) / _HOUR, 1),
    )
