"""Trip creation, update and status workflows.

Each write takes the in-process locks for every driver and vehicle it touches
and validates. Writes that need a check then go through the store's
``save_if_no_conflict``, which repeats the check and the write as one atomic
step, so writers in other processes sharing the store are covered as well.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from trip_scheduler.domain.bus import EventBus
from trip_scheduler.domain.errors import (
    InvalidStatusTransition,
    OverlapConflict,
    TripNotFound,
)
from trip_scheduler.domain.events import (
    ConflictDetected,
    TripCreated,
    TripStatusChanged,
    TripUpdated,
)
from trip_scheduler.domain.models import (
    STATUS_TRANSITIONS,
    Trip,
    TripCreateRequest,
    TripStatus,
    TripUpdateRequest,
)
from trip_scheduler.repos.base import TripRepository
from trip_scheduler.services.locks import ResourceLocks
from trip_scheduler.services.overlap import OverlapEngine, check_window

logger = logging.getLogger(__name__)

SCHEDULING_FIELDS = ("driver_id", "vehicle_id", "schedule_start", "schedule_end")
_REQUIRED_FIELDS = frozenset(SCHEDULING_FIELDS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _needs_validation(current: Trip, updated: Trip) -> bool:
    # STATUS_TRANSITIONS never reactivates a trip; a new path that does must re-check.
    if not current.is_active and updated.is_active:
        return True
    return any(getattr(current, f) != getattr(updated, f) for f in SCHEDULING_FIELDS)


class TripBookingService:
    def __init__(
        self,
        trip_repo: TripRepository,
        engine: OverlapEngine,
        bus: EventBus,
        locks: ResourceLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.trip_repo = trip_repo
        self.engine = engine
        self.bus = bus
        self.locks = locks or ResourceLocks()
        self.clock = clock

    def create(self, request: TripCreateRequest) -> Trip:
        check_window(request.schedule_start, request.schedule_end)
        now = self.clock()
        candidate = Trip(**request.model_dump(), created_at=now, updated_at=now)

        with self.locks.hold([candidate.driver_id], [candidate.vehicle_id]):
            try:
                self.engine.validate(candidate)
                saved = self.trip_repo.save_if_no_conflict(candidate, numbered_at=now)
            except OverlapConflict as exc:
                self._report_conflict(candidate, exc)
                raise

        logger.info(
            "Created trip #%s (%s) for driver %s / vehicle %s",
            saved.trip_number,
            saved.id,
            saved.driver_id,
            saved.vehicle_id,
        )
        self.bus.publish(TripCreated(trip_id=saved.id))
        return saved

    def update(self, trip_id: str, request: TripUpdateRequest) -> Trip:
        current = self.get(trip_id)
        changes = {
            field: value
            for field, value in request.model_dump(exclude_unset=True).items()
            if not (field in _REQUIRED_FIELDS and value is None)
        }
        changed_fields = sorted(f for f, v in changes.items() if getattr(current, f) != v)
        if not changed_fields:
            return current

        updated = current.model_copy(update=changes)
        check_window(updated.schedule_start, updated.schedule_end)

        with self.locks.hold(
            {current.driver_id, updated.driver_id},
            {current.vehicle_id, updated.vehicle_id},
        ):
            try:
                saved = self._save_checked(current, updated)
            except OverlapConflict as exc:
                self._report_conflict(updated, exc)
                raise

        logger.info("Updated trip %s: %s", saved.id, ", ".join(changed_fields))
        self.bus.publish(TripUpdated(trip_id=saved.id, changed_fields=changed_fields))
        return saved

    def change_status(self, trip_id: str, status: TripStatus) -> Trip:
        current = self.get(trip_id)
        if status == current.status:
            return current
        if status not in STATUS_TRANSITIONS[current.status]:
            raise InvalidStatusTransition(
                f"Trip {trip_id} cannot move from {current.status.value} to {status.value}"
            )

        now = self.clock()
        changes: dict = {"status": status}
        if status is TripStatus.IN_PROGRESS:
            changes["actual_start"] = now
        elif status is TripStatus.COMPLETED:
            changes["actual_end"] = now
        updated = current.model_copy(update=changes)

        with self.locks.hold([updated.driver_id], [updated.vehicle_id]):
            saved = self._save_checked(current, updated)

        logger.info("Trip %s: %s -> %s", saved.id, current.status.value, saved.status.value)
        self.bus.publish(
            TripStatusChanged(trip_id=saved.id, previous=current.status, current=saved.status)
        )
        return saved

    def _save_checked(self, current: Trip, updated: Trip) -> Trip:
        if not _needs_validation(current, updated):
            return self.trip_repo.save(updated)
        self.engine.validate(updated)
        return self.trip_repo.save_if_no_conflict(updated)

    def get(self, trip_id: str) -> Trip:
        trip = self.trip_repo.get(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        return trip

    def _report_conflict(self, candidate: Trip, exc: OverlapConflict) -> None:
        self.bus.publish(
            ConflictDetected(
                trip_id=candidate.id,
                driver_id=candidate.driver_id,
                vehicle_id=candidate.vehicle_id,
                conflicting_trip_ids=[c.trip_id for c in exc.conflicts],
            )
        )
