"""SQLAlchemy-backed trip store.

The trips table carries one index per column the overlap queries filter on.
Overlap-free writes go through per-resource claim rows (see
``SqlTripRepository``); two partial unique indexes over non-cancelled rows
still catch identical windows written through plain ``save``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    and_,
    cast,
    create_engine,
    exists,
    func,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from trip_scheduler.domain.errors import OverlapConflict, PersistenceError
from trip_scheduler.domain.models import Trip, TripStatus
from trip_scheduler.repos.base import format_trip_number, require_storable_window
from trip_scheduler.services.conflicts import describe_conflicts

logger = logging.getLogger(__name__)

Base = declarative_base()

_ACTIVE_ROWS = text("status != 'cancelled'")


class UTCDateTime(TypeDecorator):
    """Stores datetimes as naive UTC and hands them back timezone-aware.

    Naive inputs are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class TripRow(Base):
    __tablename__ = "trips"

    id = Column(String(36), primary_key=True)
    trip_number = Column(String(16), nullable=True, unique=True)
    driver_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=False, index=True)
    schedule_start = Column(UTCDateTime, nullable=False, index=True)
    schedule_end = Column(UTCDateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    origin = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)
    actual_start = Column(UTCDateTime, nullable=True)
    actual_end = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("schedule_start < schedule_end", name="ck_trips_window"),
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="ck_trips_status",
        ),
        Index(
            "uq_trips_driver_active_window",
            "driver_id",
            "schedule_start",
            "schedule_end",
            unique=True,
            sqlite_where=_ACTIVE_ROWS,
            postgresql_where=_ACTIVE_ROWS,
        ),
        Index(
            "uq_trips_vehicle_active_window",
            "vehicle_id",
            "schedule_start",
            "schedule_end",
            unique=True,
            sqlite_where=_ACTIVE_ROWS,
            postgresql_where=_ACTIVE_ROWS,
        ),
    )

    def __repr__(self) -> str:
        return f"<TripRow(id={self.id}, driver={self.driver_id}, vehicle={self.vehicle_id}, status={self.status})>"


class ResourceClaimRow(Base):
    """One row per driver or vehicle; updated to serialize bookings on it."""

    __tablename__ = "resource_claims"

    kind = Column(String(16), primary_key=True)
    resource_id = Column(Integer, primary_key=True, autoincrement=False)
    version = Column(Integer, nullable=False, default=0)


class TripSequenceRow(Base):
    """Last trip number handed out per calendar year."""

    __tablename__ = "trip_number_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)


def _to_domain(row: TripRow) -> Trip:
    return Trip(
        id=row.id,
        trip_number=row.trip_number,
        driver_id=row.driver_id,
        vehicle_id=row.vehicle_id,
        schedule_start=row.schedule_start,
        schedule_end=row.schedule_end,
        status=TripStatus(row.status),
        origin=row.origin,
        destination=row.destination,
        actual_start=row.actual_start,
        actual_end=row.actual_end,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _copy_onto(row: TripRow, trip: Trip) -> None:
    row.trip_number = trip.trip_number
    row.driver_id = trip.driver_id
    row.vehicle_id = trip.vehicle_id
    row.schedule_start = trip.schedule_start
    row.schedule_end = trip.schedule_end
    row.status = trip.status.value
    row.origin = trip.origin
    row.destination = trip.destination
    row.actual_start = trip.actual_start
    row.actual_end = trip.actual_end
    row.created_at = trip.created_at
    row.updated_at = trip.updated_at


def _conflict_filter(
    driver_id: int,
    vehicle_id: int,
    start: datetime,
    end: datetime,
    exclude_id: str | None,
):
    # Same rule as services.conflicts.windows_overlap: start_a < end_b AND start_b < end_a.
    clauses = [
        TripRow.status != TripStatus.CANCELLED.value,
        or_(TripRow.driver_id == driver_id, TripRow.vehicle_id == vehicle_id),
        TripRow.schedule_start < end,
        TripRow.schedule_end > start,
    ]
    if exclude_id is not None:
        clauses.append(TripRow.id != exclude_id)
    return and_(*clauses)


def _conflicts_stmt(driver_id, vehicle_id, start, end, exclude_id):
    return (
        select(TripRow)
        .where(_conflict_filter(driver_id, vehicle_id, start, end, exclude_id))
        .order_by(TripRow.schedule_start)
    )


class SqlTripRepository:
    """Trip store over any SQLAlchemy engine.

    ``save_if_no_conflict`` first updates the claim rows for the trip's driver
    and vehicle. Writers touching either resource queue on those row locks
    until the transaction ends, so the conflict query after the claim sees
    every booking committed before it, across processes sharing the database.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def find_conflicting(
        self,
        driver_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[Trip]:
        return self._fetch(_conflicts_stmt(driver_id, vehicle_id, start, end, exclude_id))

    def exists_conflicting(
        self,
        driver_id: int,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> bool:
        stmt = select(exists().where(_conflict_filter(driver_id, vehicle_id, start, end, exclude_id)))
        try:
            with self._session_factory() as session:
                return bool(session.scalar(stmt))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Trip lookup failed: {exc}") from exc

    def find_in_range(
        self,
        driver_id: int,
        vehicle_id: int,
        range_start: datetime,
        range_end: datetime,
    ) -> list[Trip]:
        return self._fetch(_conflicts_stmt(driver_id, vehicle_id, range_start, range_end, None))

    def save(self, trip: Trip) -> Trip:
        stored = _prepare(trip)
        return self._commit(stored, lambda session: _write(session, stored))

    def save_if_no_conflict(self, trip: Trip, numbered_at: datetime | None = None) -> Trip:
        stored = _prepare(trip)

        def check_and_write(session: Session) -> None:
            if stored.is_active:
                self._claim_resources(session, stored.driver_id, stored.vehicle_id)
                stmt = _conflicts_stmt(
                    stored.driver_id,
                    stored.vehicle_id,
                    stored.schedule_start,
                    stored.schedule_end,
                    stored.id,
                )
                hits = [_to_domain(row) for row in session.scalars(stmt)]
                if hits:
                    raise OverlapConflict(
                        describe_conflicts(hits, stored.driver_id, stored.vehicle_id)
                    )
            if numbered_at is not None:
                stored.trip_number = self._reserve_number(session, numbered_at.year)
            _write(session, stored)

        return self._commit(stored, check_and_write)

    def get(self, trip_id: str) -> Trip | None:
        try:
            with self._session_factory() as session:
                row = session.get(TripRow, trip_id)
                return _to_domain(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Trip lookup failed: {exc}") from exc

    def list_all(self) -> list[Trip]:
        return self._fetch(select(TripRow).order_by(TripRow.schedule_start))

    def next_trip_number(self, now: datetime) -> str:
        try:
            with self._session_factory.begin() as session:
                return self._reserve_number(session, now.year)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Trip number reservation failed: {exc}") from exc

    def _commit(self, stored: Trip, work: Callable[[Session], None]) -> Trip:
        try:
            with self._session_factory.begin() as session:
                work(session)
        except IntegrityError as exc:
            # The unique window indexes only fire when another writer got in first.
            winners = []
            if stored.is_active:
                winners = self.find_conflicting(
                    stored.driver_id,
                    stored.vehicle_id,
                    stored.schedule_start,
                    stored.schedule_end,
                    exclude_id=stored.id,
                )
            if winners:
                raise OverlapConflict(
                    describe_conflicts(winners, stored.driver_id, stored.vehicle_id)
                ) from exc
            raise PersistenceError(f"Trip {stored.id} violates a storage constraint: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Saving trip {stored.id} failed: {exc}") from exc

        logger.debug("Stored trip %s (%s)", stored.id, stored.status.value)
        return stored

    def _claim_resources(self, session: Session, driver_id: int, vehicle_id: int) -> None:
        for kind, resource_id in sorted([("driver", driver_id), ("vehicle", vehicle_id)]):
            bump = (
                update(ResourceClaimRow)
                .where(ResourceClaimRow.kind == kind, ResourceClaimRow.resource_id == resource_id)
                .values(version=ResourceClaimRow.version + 1)
            )
            _bump_or_create(session, bump, ResourceClaimRow(kind=kind, resource_id=resource_id, version=1))

    def _reserve_number(self, session: Session, year: int) -> str:
        bump = (
            update(TripSequenceRow)
            .where(TripSequenceRow.year == year)
            .values(last_value=TripSequenceRow.last_value + 1)
        )
        _bump_or_create(session, bump, TripSequenceRow(year=year, last_value=1))

        sequence = session.scalar(
            select(TripSequenceRow.last_value).where(TripSequenceRow.year == year)
        )
        # Numbers stored without going through the sequence still count.
        highest = session.scalar(
            select(func.max(cast(func.substr(TripRow.trip_number, 5), Integer))).where(
                TripRow.trip_number.like(f"{year:04d}%")
            )
        )
        if highest is not None and highest >= sequence:
            sequence = highest + 1
            session.execute(
                update(TripSequenceRow)
                .where(TripSequenceRow.year == year)
                .values(last_value=sequence)
            )
        return format_trip_number(year, sequence)

    def _fetch(self, stmt) -> list[Trip]:
        try:
            with self._session_factory() as session:
                return [_to_domain(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Trip lookup failed: {exc}") from exc


def _prepare(trip: Trip) -> Trip:
    require_storable_window(trip)
    stored = trip.model_copy(update={"updated_at": datetime.now(timezone.utc)})
    if stored.id is None:
        stored.id = str(uuid.uuid4())
    return stored


def _write(session: Session, stored: Trip) -> None:
    row = session.get(TripRow, stored.id)
    if row is None:
        row = TripRow(id=stored.id)
        session.add(row)
    _copy_onto(row, stored)


def _bump_or_create(session: Session, bump, fresh) -> None:
    """Run ``bump``; if it matched no row, insert ``fresh`` in a savepoint.

    Losing the insert race to another writer falls back to ``bump``, which then
    waits on that writer's row.
    """
    if session.execute(bump).rowcount:
        return
    try:
        with session.begin_nested():
            session.add(fresh)
    except IntegrityError:
        session.execute(bump)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory sqlite gets a single shared connection."""
    kwargs: dict = {"echo": echo, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(engine: Engine) -> None:
    """Create the trips table and its indexes if missing."""
    Base.metadata.create_all(engine)
