"""Overlap engine: conflict validation, availability and slot suggestions.

Everything here runs on top of the ``TripRepository`` query contract; the
engine never looks at storage directly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from trip_scheduler.domain.errors import InvalidArgument, InvalidWindow, OverlapConflict
from trip_scheduler.domain.models import FreeSlot, Suggestion, Trip
from trip_scheduler.repos.base import TripRepository
from trip_scheduler.services.availability import compute_free_slots, fits, to_suggestion
from trip_scheduler.services.conflicts import describe_conflicts

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DAYS = 7
DEFAULT_HORIZON_DAYS = 30
DEFAULT_MAX_SUGGESTIONS = 5


def check_window(start: datetime | None, end: datetime | None) -> None:
    """Raise InvalidWindow unless both bounds are present and start < end."""
    if start is None or end is None:
        raise InvalidWindow("Both window start and window end are required")
    if start >= end:
        raise InvalidWindow(
            f"Window start {start.isoformat()} must be before window end {end.isoformat()}"
        )


def _require_resources(driver_id: int | None, vehicle_id: int | None) -> None:
    missing = [
        name
        for name, value in (("driver_id", driver_id), ("vehicle_id", vehicle_id))
        if value is None
    ]
    if missing:
        raise InvalidArgument(f"Missing required identifier(s): {', '.join(missing)}")


class OverlapEngine:
    def __init__(
        self,
        trip_repo: TripRepository,
        search_days: int = DEFAULT_SEARCH_DAYS,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        default_max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> None:
        self.trip_repo = trip_repo
        self.search_padding = timedelta(days=search_days)
        self.horizon = timedelta(days=horizon_days)
        self.default_max_suggestions = default_max_suggestions

    # ------------------------------------------------------------------
    # Enforcement
    # ------------------------------------------------------------------

    def validate(self, candidate: Trip) -> None:
        """Raise OverlapConflict if any active trip collides with ``candidate``.

        A candidate missing either window bound is not checked, and neither is a
        cancelled one. The candidate's own id is excluded so updates never
        collide with their stored version.
        """
        if not candidate.has_window:
            return
        check_window(candidate.schedule_start, candidate.schedule_end)
        if not candidate.is_active:
            return

        hits = self.trip_repo.find_conflicting(
            candidate.driver_id,
            candidate.vehicle_id,
            candidate.schedule_start,
            candidate.schedule_end,
            exclude_id=candidate.id,
        )
        if hits:
            conflict = OverlapConflict(
                describe_conflicts(hits, candidate.driver_id, candidate.vehicle_id)
            )
            logger.warning(conflict.message)
            raise conflict

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_overlap(
        self,
        driver_id: int | None,
        vehicle_id: int | None,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> bool:
        _require_resources(driver_id, vehicle_id)
        check_window(start, end)
        return self.trip_repo.exists_conflicting(driver_id, vehicle_id, start, end, exclude_id)

    def free_slots(
        self,
        driver_id: int | None,
        vehicle_id: int | None,
        range_start: datetime,
        range_end: datetime,
    ) -> list[FreeSlot]:
        _require_resources(driver_id, vehicle_id)
        check_window(range_start, range_end)
        busy = self.trip_repo.find_in_range(driver_id, vehicle_id, range_start, range_end)
        slots = compute_free_slots(busy, range_start, range_end)
        logger.debug(
            "Driver %s / vehicle %s: %d busy trip(s), %d free slot(s) between %s and %s",
            driver_id,
            vehicle_id,
            len(busy),
            len(slots),
            range_start.isoformat(),
            range_end.isoformat(),
        )
        return slots

    def suggest_alternatives(
        self,
        driver_id: int | None,
        vehicle_id: int | None,
        requested_start: datetime,
        requested_end: datetime,
        max_suggestions: int | None = None,
    ) -> list[Suggestion]:
        """Earliest slots around the request (padded by the search window) that fit its duration.

        Ordering is purely chronological; there is no proximity weighting.
        """
        if max_suggestions is None:
            max_suggestions = self.default_max_suggestions
        if max_suggestions < 1:
            raise InvalidArgument("max_suggestions must be at least 1")
        check_window(requested_start, requested_end)

        duration = requested_end - requested_start
        slots = self.free_slots(
            driver_id,
            vehicle_id,
            requested_start - self.search_padding,
            requested_end + self.search_padding,
        )
        fitting = [slot for slot in slots if fits(slot, duration)]
        return [to_suggestion(slot, duration) for slot in fitting[:max_suggestions]]

    def next_available_slot(
        self,
        driver_id: int | None,
        vehicle_id: int | None,
        from_dt: datetime,
        duration_minutes: int,
    ) -> Suggestion | None:
        if duration_minutes < 1:
            raise InvalidArgument("duration_minutes must be at least 1")

        duration = timedelta(minutes=duration_minutes)
        for slot in self.free_slots(driver_id, vehicle_id, from_dt, from_dt + self.horizon):
            if fits(slot, duration):
                return to_suggestion(slot, duration)
        return None
