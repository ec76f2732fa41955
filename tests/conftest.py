# tests/conftest.py

from datetime import date, datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from barberqueue.availability import AvailabilityResolver
from barberqueue.clock import FixedClock
from barberqueue.config import ShopSettings
from barberqueue.dayoff import DayOffManager
from barberqueue.db import create_db_and_tables
from barberqueue.lifecycle import AppointmentLifecycle
from barberqueue.models import AddOn, Appointment, Service, User
from barberqueue.notifications import NotificationChannel
from barberqueue.queue import QueuePositionManager
from barberqueue.slots import SlotAllocator

# Monday, before the shop opens
NOW = datetime(2024, 6, 3, 7, 0)
DAY = date(2024, 6, 4)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def settings():
    return ShopSettings(database_url="sqlite://")


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def channel():
    return NotificationChannel()


@pytest.fixture
def sent(channel):
    """Every notification published during the test, in order."""
    received = []
    channel.subscribe(received.append)
    return received


def seed_shop(session: Session) -> SimpleNamespace:
    sam = User(email="sam@shop.test", full_name="Sam", role="barber", average_rating=4.5, total_ratings=12)
    alex = User(email="alex@shop.test", full_name="Alex", role="barber")
    riley = User(email="riley@shop.test", full_name="Riley", role="barber", barber_status="offline")
    carol = User(email="carol@shop.test", full_name="Carol", role="client")
    dave = User(email="dave@shop.test", full_name="Dave", role="client")
    mona = User(email="mona@shop.test", full_name="Mona", role="manager")
    haircut = Service(name="Haircut", duration=30, price=25.0)
    beard = Service(name="Beard trim", duration=15, price=10.0)
    perm = Service(name="Perm", duration=90, price=80.0, is_active=False)
    towel = AddOn(name="Hot towel", duration=15, price=5.0)
    session.add_all([sam, alex, riley, carol, dave, mona, haircut, beard, perm, towel])
    session.commit()
    for row in (sam, alex, riley, carol, dave, mona, haircut, beard, perm, towel):
        session.refresh(row)

    return SimpleNamespace(
        sam=sam.id,
        alex=alex.id,
        riley=riley.id,
        carol=carol.id,
        dave=dave.id,
        mona=mona.id,
        haircut=haircut.id,
        beard=beard.id,
        perm=perm.id,
        towel=towel.id,
    )


@pytest.fixture
def shop(session):
    return seed_shop(session)


@pytest.fixture
def resolver(session, settings, clock):
    return AvailabilityResolver(session, settings, clock)


@pytest.fixture
def allocator(session, settings, clock, channel):
    return SlotAllocator(session, settings, clock, channel)


@pytest.fixture
def queue(session, settings, clock, channel):
    return QueuePositionManager(session, settings, clock, channel)


@pytest.fixture
def day_offs(session, settings, clock, channel):
    return DayOffManager(session, settings, clock, channel)


@pytest.fixture
def lifecycle(session, settings, clock, channel):
    return AppointmentLifecycle(session, settings, clock, channel)


@pytest.fixture
def add_appointment(session, clock):
    """Insert an appointment row directly, bypassing booking rules."""

    def add(barber_id, day=DAY, **fields):
        fields.setdefault("created_at", clock.now())
        appointment = Appointment(barber_id=barber_id, appointment_date=day, **fields)
        session.add(appointment)
        session.commit()
        session.refresh(appointment)
        return appointment

    return add


@pytest.fixture
def add_queued(add_appointment, queue):
    """Create a pending walk-in and give it a queue position."""

    def add(barber_id, day=DAY, urgent=False, **fields):
        fields.setdefault("appointment_type", "queue")
        appointment = add_appointment(barber_id, day, **fields)
        queue.assign(barber_id, day, appointment.id, urgent)
        return appointment

    return add


@pytest.fixture
def queue_order(session):
    """(id, position) pairs of the waiting queue, read fresh from the database."""

    def order(barber_id, day=DAY):
        session.expire_all()
        rows = session.exec(
            select(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(Appointment.appointment_date == day)
            .where(Appointment.appointment_type == "queue")
            .where(Appointment.status == "scheduled")
            .order_by(Appointment.queue_position)
        ).all()
        return [(a.id, a.queue_position) for a in rows]

    return order


@pytest.fixture
def file_engine(tmp_path):
    """A file-backed database that several threads can open sessions on."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'shop.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    create_db_and_tables(engine)
    with Session(engine) as session:
        ids = seed_shop(session)
    yield engine, ids
    engine.dispose()
