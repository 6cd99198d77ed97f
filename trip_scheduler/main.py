"""FastAPI application entry point for the trip scheduling service."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import AwareDatetime

from trip_scheduler.config import Settings, configure_logging, get_settings
from trip_scheduler.domain.bus import EventBus
from trip_scheduler.domain.errors import (
    InvalidArgument,
    InvalidStatusTransition,
    InvalidWindow,
    OverlapConflict,
    PersistenceError,
    SchedulingError,
    TripNotFound,
)
from trip_scheduler.domain.handlers import HandlerRegistry
from trip_scheduler.domain.models import (
    AvailabilityCheckResponse,
    ErrorResponse,
    FreeSlotResponse,
    StatusChangeRequest,
    Suggestion,
    TimelineEntry,
    Trip,
    TripCreateRequest,
    TripUpdateRequest,
)
from trip_scheduler.repos.base import TripRepository
from trip_scheduler.repos.memory import InMemoryTripRepository, TimelineRepository
from trip_scheduler.repos.sql import SqlTripRepository, build_engine, init_db
from trip_scheduler.services.booking import TripBookingService
from trip_scheduler.services.overlap import OverlapEngine


def create_trip_repository(settings: Settings) -> TripRepository:
    if settings.store == "sql":
        engine = build_engine(settings.database_url, echo=settings.database_echo)
        init_db(engine)
        return SqlTripRepository(engine)
    return InMemoryTripRepository()


settings = get_settings()
configure_logging(settings)

app = FastAPI(title=settings.app_name)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
trip_repo = create_trip_repository(settings)
timeline_repo = TimelineRepository()

handler_registry = HandlerRegistry(
    bus=event_bus,
    trip_repo=trip_repo,
    timeline_repo=timeline_repo,
)

overlap_engine = OverlapEngine(
    trip_repo,
    search_days=settings.suggestion_search_days,
    horizon_days=settings.next_slot_horizon_days,
    default_max_suggestions=settings.default_max_suggestions,
)
booking_service = TripBookingService(trip_repo, overlap_engine, event_bus)


# ── Error mapping ─────────────────────────────────────────────────────

_STATUS_BY_ERROR: dict[type[SchedulingError], int] = {
    InvalidWindow: 422,
    OverlapConflict: 409,
    InvalidArgument: 400,
    PersistenceError: 503,
    TripNotFound: 404,
    InvalidStatusTransition: 409,
}


@app.exception_handler(SchedulingError)
async def handle_scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    body = ErrorResponse(
        error=exc.kind,
        detail=exc.message,
        conflicts=getattr(exc, "conflicts", []),
    )
    return JSONResponse(
        status_code=_STATUS_BY_ERROR.get(type(exc), 500),
        content=body.model_dump(mode="json"),
    )


_ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ── Trips ─────────────────────────────────────────────────────────────


@app.post("/trips", response_model=Trip, status_code=201, responses=_ERROR_RESPONSES)
def create_trip(payload: TripCreateRequest) -> Trip:
    """Validate the requested window against active trips and book it."""
    return booking_service.create(payload)


@app.get("/trips", response_model=list[Trip])
def list_trips() -> list[Trip]:
    """Return all stored trips, cancelled ones included, earliest first."""
    return sorted(trip_repo.list_all(), key=lambda t: t.schedule_start)


@app.get("/trips/{trip_id}", response_model=Trip, responses=_ERROR_RESPONSES)
def get_trip(trip_id: str) -> Trip:
    return booking_service.get(trip_id)


@app.patch("/trips/{trip_id}", response_model=Trip, responses=_ERROR_RESPONSES)
def update_trip(trip_id: str, payload: TripUpdateRequest) -> Trip:
    """Apply a partial update; scheduling changes are re-checked for overlaps."""
    return booking_service.update(trip_id, payload)


@app.post("/trips/{trip_id}/status", response_model=Trip, responses=_ERROR_RESPONSES)
def change_trip_status(trip_id: str, payload: StatusChangeRequest) -> Trip:
    return booking_service.change_status(trip_id, payload.status)


@app.get("/trips/{trip_id}/timeline", response_model=list[TimelineEntry], responses=_ERROR_RESPONSES)
def get_trip_timeline(trip_id: str) -> list[TimelineEntry]:
    booking_service.get(trip_id)
    return timeline_repo.list_for_trip(trip_id)


# ── Availability ──────────────────────────────────────────────────────
# Identifiers default to None so a missing one surfaces as InvalidArgument.


@app.get("/availability", response_model=list[FreeSlotResponse])
def free_slots(
    start: AwareDatetime,
    end: AwareDatetime,
    driver_id: int | None = None,
    vehicle_id: int | None = None,
) -> list[FreeSlotResponse]:
    """Return the gaps in [start, end) where both the driver and the vehicle are free."""
    slots = overlap_engine.free_slots(driver_id, vehicle_id, start, end)
    return [FreeSlotResponse.from_slot(slot) for slot in slots]


@app.get("/availability/check", response_model=AvailabilityCheckResponse)
def check_availability(
    start: AwareDatetime,
    end: AwareDatetime,
    driver_id: int | None = None,
    vehicle_id: int | None = None,
    exclude_id: str | None = None,
) -> AvailabilityCheckResponse:
    has_overlap = overlap_engine.has_overlap(driver_id, vehicle_id, start, end, exclude_id)
    return AvailabilityCheckResponse(has_overlap=has_overlap)


@app.get("/availability/suggestions", response_model=list[Suggestion])
def suggest_slots(
    start: AwareDatetime,
    end: AwareDatetime,
    driver_id: int | None = None,
    vehicle_id: int | None = None,
    max_suggestions: int | None = None,
) -> list[Suggestion]:
    """Suggest earliest-first alternatives with the same duration as [start, end)."""
    return overlap_engine.suggest_alternatives(driver_id, vehicle_id, start, end, max_suggestions)


@app.get("/availability/next", response_model=Suggestion)
def next_available(
    from_time: AwareDatetime,
    duration_minutes: int,
    driver_id: int | None = None,
    vehicle_id: int | None = None,
) -> Suggestion:
    suggestion = overlap_engine.next_available_slot(
        driver_id, vehicle_id, from_time, duration_minutes
    )
    if suggestion is None:
        raise HTTPException(status_code=404, detail="No free slot within the search horizon")
    return suggestion
