"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

import logging

from trip_scheduler.domain.bus import EventBus
from trip_scheduler.domain.events import (
    ConflictDetected,
    TripCreated,
    TripStatusChanged,
    TripUpdated,
)
from trip_scheduler.domain.models import TimelineEntry, TimelineEntryType
from trip_scheduler.repos.base import TripRepository
from trip_scheduler.repos.memory import TimelineRepository

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires trip-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        trip_repo: TripRepository,
        timeline_repo: TimelineRepository,
    ) -> None:
        self.bus = bus
        self.trip_repo = trip_repo
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(TripCreated, self.on_trip_created)
        self.bus.subscribe(TripUpdated, self.on_trip_updated)
        self.bus.subscribe(TripStatusChanged, self.on_status_changed)
        self.bus.subscribe(ConflictDetected, self.on_conflict_detected)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_trip_created(self, event: TripCreated) -> None:
        stored = self.trip_repo.get(event.trip_id)
        if stored is None:
            return

        self.timeline_repo.add(
            TimelineEntry(
                trip_id=event.trip_id,
                type=TimelineEntryType.CREATED,
                payload={
                    "trip_number": stored.trip_number,
                    "driver_id": stored.driver_id,
                    "vehicle_id": stored.vehicle_id,
                    "status": stored.status.value,
                },
            )
        )

    def on_trip_updated(self, event: TripUpdated) -> None:
        if self.trip_repo.get(event.trip_id) is None:
            return

        self.timeline_repo.add(
            TimelineEntry(
                trip_id=event.trip_id,
                type=TimelineEntryType.UPDATED,
                payload={"changed_fields": event.changed_fields},
            )
        )

    def on_status_changed(self, event: TripStatusChanged) -> None:
        if self.trip_repo.get(event.trip_id) is None:
            return

        self.timeline_repo.add(
            TimelineEntry(
                trip_id=event.trip_id,
                type=TimelineEntryType.STATUS_CHANGED,
                payload={"from": event.previous.value, "to": event.current.value},
            )
        )

    def on_conflict_detected(self, event: ConflictDetected) -> None:
        logger.warning(
            "Rejected booking for driver %s / vehicle %s, conflicts with %s",
            event.driver_id,
            event.vehicle_id,
            ", ".join(event.conflicting_trip_ids),
        )
        # Rejected new trips have no history to attach to.
        if event.trip_id is None:
            return

        self.timeline_repo.add(
            TimelineEntry(
                trip_id=event.trip_id,
                type=TimelineEntryType.CONFLICT_DETECTED,
                payload={"conflicting_trip_ids": event.conflicting_trip_ids},
            )
        )
