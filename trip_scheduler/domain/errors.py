"""Domain exceptions raised by the scheduling core.

Each kind maps to a distinct HTTP status in ``trip_scheduler.main`` so callers
can tell "your input conflicts with existing data" apart from "the system
failed".
"""

from __future__ import annotations

from trip_scheduler.domain.models import Conflict


class SchedulingError(Exception):
    """Base exception for all scheduling domain errors."""

    kind = "scheduling_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidWindow(SchedulingError):
    """Raised when a window is malformed (start >= end) or a required bound is missing."""

    kind = "invalid_window"


class OverlapConflict(SchedulingError):
    """Raised when active trips collide with a candidate trip."""

    kind = "overlap_conflict"

    def __init__(self, conflicts: list[Conflict]) -> None:
        self.conflicts = list(conflicts)
        super().__init__(
            "Trip overlaps with existing trips: "
            + ", ".join(c.describe() for c in self.conflicts)
        )


class InvalidArgument(SchedulingError):
    """Raised when a query is called without the identifiers it requires."""

    kind = "invalid_argument"


class PersistenceError(SchedulingError):
    """Raised when the store fails to write or read."""

    kind = "persistence_error"


class TripNotFound(SchedulingError):
    kind = "trip_not_found"

    def __init__(self, trip_id: str) -> None:
        super().__init__(f"Trip {trip_id} not found")
        self.trip_id = trip_id


class InvalidStatusTransition(SchedulingError):
    """Raised when a status change is not allowed by the trip lifecycle."""

    kind = "invalid_status_transition"
