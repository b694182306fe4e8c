"""Pytest configuration and shared fixtures."""

import os
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Settings are read at import time; keep the module-level engine off PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite:///./.mealticket-test.db")

import pytest
from sqlalchemy.orm import sessionmaker

from mealticket.core.permissions import Principal, Role
from mealticket.core.tickets import TicketCodec
from mealticket.db.base import Base
from mealticket.db.session import build_engine
from mealticket.models.time_slot import TimeSlot
from mealticket.models.user import User
from mealticket.services.audit import AuditEmitter
from mealticket.services.reservations import ReservationService

NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
TICKET_SECRET = "test-ticket-secret"

STUDENT = Principal("student-1", Role.student)
OTHER_STUDENT = Principal("student-2", Role.student)
STAFF = Principal("staff-1", Role.staff)
ADMIN = Principal("admin-1", Role.admin)


class FixedClock:
    """Callable clock frozen at `now` until advanced."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSink:
    def __init__(self) -> None:
        self.records = []
        self._lock = threading.Lock()

    def write(self, record) -> None:
        with self._lock:
            self.records.append(record)

    def actions(self, outcome=None):
        return [r.action for r in self.records if outcome is None or r.outcome == outcome]


class BrokenSink:
    def write(self, record) -> None:
        raise RuntimeError("audit store unavailable")


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads share one database
    engine = build_engine(f"sqlite:///{tmp_path / 'mealticket.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def codec(clock):
    return TicketCodec(TICKET_SECRET, clock=clock)


@pytest.fixture
def audit_sink():
    return RecordingSink()


@pytest.fixture
def audit(audit_sink, clock):
    return AuditEmitter(audit_sink, clock=clock)


@pytest.fixture
def service(db, codec, audit, clock):
    return ReservationService(db, codec, audit, clock=clock)


@pytest.fixture
def make_service(session_factory, codec, audit, clock):
    """Build services on their own sessions, one per worker thread."""
    sessions = []

    def _make():
        session = session_factory()
        sessions.append(session)
        return ReservationService(session, codec, audit, clock=clock)

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture
def make_slot(db):
    def _make(starts_in=timedelta(days=1), capacity=30, price="8.50", is_active=True):
        start = NOW + starts_in
        slot = TimeSlot(
            start_time=start,
            end_time=start + timedelta(minutes=20),
            meal_type="lunch",
            price=Decimal(price),
            max_capacity=capacity,
            current_reservations=0,
            is_active=is_active,
        )
        db.add(slot)
        db.commit()
        return slot.id

    return _make


@pytest.fixture
def slot_usage(session_factory):
    """Read a slot's reserved count through a fresh session."""

    def _read(slot_id):
        session = session_factory()
        try:
            return session.get(TimeSlot, slot_id).current_reservations
        finally:
            session.close()

    return _read


@pytest.fixture
def students(db):
    db.add_all([
        User(id=STUDENT.user_id, email="amira@example.tn", full_name="Amira Ben Salah",
             group_name="DSI-21", role="student"),
        User(id=OTHER_STUDENT.user_id, email="youssef@example.tn", full_name="Youssef Trabelsi",
             group_name="RSI-22", role="student"),
    ])
    db.commit()


@pytest.fixture
def confirmed_reservation(service, make_slot):
    """A confirmed one-place reservation for STUDENT, a day ahead."""
    slot_id = make_slot()
    reservation = service.create_reservation(STUDENT, slot_id, 1, "8.50")
    service.confirm_reservation(STUDENT, reservation.id, "PAY-0001")
    return reservation.id, slot_id
