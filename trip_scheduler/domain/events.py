"""Domain events emitted during the trip lifecycle."""

from __future__ import annotations

from pydantic import BaseModel

from trip_scheduler.domain.models import TripStatus


class TripCreated(BaseModel):
    """Fired when a new Trip is persisted."""

    trip_id: str


class TripUpdated(BaseModel):
    """Fired after a Trip's assignment, window or route fields change."""

    trip_id: str
    changed_fields: list[str]


class TripStatusChanged(BaseModel):
    trip_id: str
    previous: TripStatus
    current: TripStatus


class ConflictDetected(BaseModel):
    """Fired when a create or update is rejected because of overlapping trips.

    ``trip_id`` is ``None`` when the rejected candidate was never persisted.
    """

    trip_id: str | None = None
    driver_id: int
    vehicle_id: int
    conflicting_trip_ids: list[str]
