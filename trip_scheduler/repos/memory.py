"""In-memory repositories for trips and their timeline."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone

from trip_scheduler.domain.errors import OverlapConflict
from trip_scheduler.domain.models import TimelineEntry, Trip
from trip_scheduler.repos.base import next_trip_number_after, require_storable_window
from trip_scheduler.services import conflicts

logger = logging.getLogger(__name__)


class InMemoryTripRepository:
    """Dict-backed store for Trip instances, keyed by id.

    Stored trips are copies; callers must go through ``save`` to change them.
    """

    def __init__(self) -> None:
        self._store: dict[str, Trip] = {}
        self._last_number: str | None = None
        self._lock = threading.RLock()

    def find_conflicting(
        self,
        driver_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[Trip]:
        with self._lock:
            hits = conflicts.find_conflicts(
                driver_id, vehicle_id, start, end, self._store.values(), exclude_id
            )
            return [trip.model_copy() for trip in hits]

    def exists_conflicting(
        self,
        driver_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> bool:
        with self._lock:
            return bool(
                conflicts.find_conflicts(
                    driver_id, vehicle_id, start, end, self._store.values(), exclude_id
                )
            )

    def find_in_range(
        self,
        driver_id: int,
        vehicle_id: int,
        range_start: datetime,
        range_end: datetime,
    ) -> list[Trip]:
        with self._lock:
            hits = conflicts.find_in_range(
                driver_id, vehicle_id, range_start, range_end, self._store.values()
            )
            return [trip.model_copy() for trip in hits]

    def save(self, trip: Trip) -> Trip:
        require_storable_window(trip)

        stored = trip.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        if stored.id is None:
            stored.id = str(uuid.uuid4())
        with self._lock:
            self._store[stored.id] = stored
        logger.debug("Stored trip %s (%s)", stored.id, stored.status.value)
        return stored.model_copy()

    def save_if_no_conflict(self, trip: Trip, numbered_at: datetime | None = None) -> Trip:
        require_storable_window(trip)
        with self._lock:
            if trip.is_active:
                hits = conflicts.find_conflicts(
                    trip.driver_id,
                    trip.vehicle_id,
                    trip.schedule_start,
                    trip.schedule_end,
                    self._store.values(),
                    exclude_id=trip.id,
                )
                if hits:
                    raise OverlapConflict(
                        conflicts.describe_conflicts(hits, trip.driver_id, trip.vehicle_id)
                    )
            if numbered_at is not None:
                trip = trip.model_copy(update={"trip_number": self.next_trip_number(numbered_at)})
            return self.save(trip)

    def get(self, trip_id: str) -> Trip | None:
        with self._lock:
            trip = self._store.get(trip_id)
            return trip.model_copy() if trip is not None else None

    def list_all(self) -> list[Trip]:
        with self._lock:
            return [trip.model_copy() for trip in self._store.values()]

    def next_trip_number(self, now: datetime) -> str:
        with self._lock:
            self._last_number = next_trip_number_after(self._last_number, now)
            return self._last_number

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._last_number = None


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_trip(self, trip_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.trip_id == trip_id],
            key=lambda e: e.timestamp,
        )
