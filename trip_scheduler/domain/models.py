"""Domain models for the trip scheduling system."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import AwareDatetime, BaseModel, Field


class TripStatus(StrEnum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Whether trips in this status take part in overlap checks."""
        match self:
            case TripStatus.SCHEDULED | TripStatus.IN_PROGRESS | TripStatus.COMPLETED:
                return True
            case TripStatus.CANCELLED:
                return False


# Allowed lifecycle moves, keyed by current status.
STATUS_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.SCHEDULED: frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}


class ConflictKind(StrEnum):
    DRIVER = "driver"
    VEHICLE = "vehicle"
    DRIVER_AND_VEHICLE = "driver+vehicle"

    @property
    def label(self) -> str:
        """Human wording used in conflict messages, e.g. 'driver and vehicle'."""
        return self.value.replace("+", " and ")


class TimelineEntryType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    CONFLICT_DETECTED = "conflict_detected"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Trip(BaseModel):
    """A driver and a vehicle assigned to a scheduled window.

    ``id`` is ``None`` until the trip is first saved. Either window bound may be
    missing while a trip is being assembled; the store refuses to persist a
    trip without both. Every timestamp must carry a timezone; naive values are
    rejected on construction.
    """

    id: str | None = None
    trip_number: str | None = None
    driver_id: int
    vehicle_id: int
    schedule_start: AwareDatetime | None = None
    schedule_end: AwareDatetime | None = None
    status: TripStatus = TripStatus.SCHEDULED
    origin: str | None = None
    destination: str | None = None
    actual_start: AwareDatetime | None = None
    actual_end: AwareDatetime | None = None
    created_at: AwareDatetime = Field(default_factory=_utcnow)
    updated_at: AwareDatetime = Field(default_factory=_utcnow)

    @property
    def has_window(self) -> bool:
        return self.schedule_start is not None and self.schedule_end is not None

    @property
    def is_active(self) -> bool:
        return self.status.is_active


class Conflict(BaseModel):
    """One existing trip colliding with a candidate."""

    trip_id: str
    trip_number: str | None = None
    kind: ConflictKind
    schedule_start: datetime
    schedule_end: datetime

    def describe(self) -> str:
        return (
            f"Trip #{self.trip_number or self.trip_id} ({self.kind.label}) "
            f"from {self.schedule_start:%Y-%m-%d %H:%M:%S} "
            f"to {self.schedule_end:%Y-%m-%d %H:%M:%S}"
        )


class FreeSlot(BaseModel):
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class Suggestion(BaseModel):
    start: datetime
    end: datetime
    requested_duration_hours: float
    available_duration_hours: float


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    trip_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class TripCreateRequest(BaseModel):
    driver_id: int = Field(gt=0)
    vehicle_id: int = Field(gt=0)
    schedule_start: AwareDatetime
    schedule_end: AwareDatetime
    status: TripStatus = TripStatus.SCHEDULED
    origin: str | None = None
    destination: str | None = None


class TripUpdateRequest(BaseModel):
    """Partial update; only fields that were sent are applied."""

    driver_id: int | None = Field(default=None, gt=0)
    vehicle_id: int | None = Field(default=None, gt=0)
    schedule_start: AwareDatetime | None = None
    schedule_end: AwareDatetime | None = None
    origin: str | None = None
    destination: str | None = None


class StatusChangeRequest(BaseModel):
    status: TripStatus


class FreeSlotResponse(BaseModel):
    start: datetime
    end: datetime
    duration_minutes: int

    @classmethod
    def from_slot(cls, slot: FreeSlot) -> FreeSlotResponse:
        return cls(start=slot.start, end=slot.end, duration_minutes=slot.duration_minutes)


class AvailabilityCheckResponse(BaseModel):
    has_overlap: bool


class ErrorResponse(BaseModel):
    error: str
    detail: str
    conflicts: list[Conflict] = Field(default_factory=list)
