# barberqueue/models.py

from typing import Optional, List
from datetime import datetime, date as Date, time
from enum import Enum

from sqlalchemy import DateTime, Index, text
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column


class AppointmentType(str, Enum):
    scheduled = "scheduled"
    queue = "queue"


class AppointmentStatus(str, Enum):
    pending = "pending"
    scheduled = "scheduled"
    confirmed = "confirmed"  # legacy alias of scheduled
    ongoing = "ongoing"
    done = "done"
    cancelled = "cancelled"


class DayOffType(str, Enum):
    day_off = "day_off"
    sick_leave = "sick_leave"
    vacation = "vacation"
    emergency = "emergency"


class BarberStatus(str, Enum):
    available = "available"
    busy = "busy"
    on_break = "break"
    offline = "offline"


ACTIVE_STATUSES = (
    AppointmentStatus.pending.value,
    AppointmentStatus.scheduled.value,
    AppointmentStatus.confirmed.value,
    AppointmentStatus.ongoing.value,
)


class Appointment(SQLModel, table=True):
    __table_args__ = (
        # one live booking per barber start time; queue rows have NULL time
        Index(
            "uq_barber_slot",
            "barber_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            sqlite_where=text("status != 'cancelled' AND appointment_time IS NOT NULL"),
            postgresql_where=text("status != 'cancelled' AND appointment_time IS NOT NULL"),
        ),
        Index("ix_barber_day_queue", "barber_id", "appointment_date", "queue_position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="user.id", index=True)
    customer_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)

    appointment_date: Date = Field(index=True)
    appointment_time: Optional[time] = None
    appointment_type: str = AppointmentType.scheduled.value
    queue_position: Optional[int] = None
    status: str = Field(default=AppointmentStatus.pending.value, index=True)
    is_urgent: bool = False

    total_duration: int = 30
    total_price: float = 0.0
    services: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    add_ons: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    notes: str = ""
    cancellation_reason: Optional[str] = None

    # shop-local wall-clock time, stored naive like the business hours
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime, index=True)
    updated_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    full_name: str = ""
    role: str  # barber, client or manager

    barber_status: str = BarberStatus.available.value
    average_rating: float = 0.0
    total_ratings: int = 0


class BarberDayOff(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="user.id", index=True)
    start_date: Date = Field(index=True)
    end_date: Date = Field(index=True)
    type: str = DayOffType.day_off.value
    reason: str = ""
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    duration: int
    price: float
    is_active: bool = True


class AddOn(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    duration: int
    price: float
    is_active: bool = True
