# barberqueue/schemas.py

from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from datetime import datetime, date, time
from typing import Any, Dict, List, Optional

from .models import DayOffType


class AvailabilityKind(str, Enum):
    available = "available"
    offline = "offline"
    day_off = "day_off"
    outside_hours = "outside_hours"
    at_capacity = "at_capacity"
    currently_busy = "currently_busy"
    not_found = "not_found"


class SlotType(str, Enum):
    available = "available"
    scheduled = "scheduled"
    queue = "queue"
    lunch = "lunch"
    full = "full"


class BookingType(str, Enum):
    scheduled = "scheduled"
    queue = "queue"


class AvailabilityVerdict(BaseModel):
    available: bool
    reason: str
    kind: AvailabilityKind
    barber_name: Optional[str] = None
    day_off_type: Optional[str] = None
    end_date: Optional[date] = None
    next_available_time: Optional[time] = None
    estimated_available_time: Optional[time] = None
    # set when the check could not reach the store and failed open
    degraded: bool = False


class Slot(BaseModel):
    time: time
    type: SlotType
    can_book: bool
    reason: Optional[str] = None
    queue_position: Optional[int] = None


class SlotGridResponse(BaseModel):
    barber_id: int
    date: date
    total_duration: int
    slots: List[Slot]


class AppointmentPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barber_id: int
    customer_id: Optional[int]
    appointment_date: date
    appointment_time: Optional[time]
    appointment_type: str
    queue_position: Optional[int]
    status: str
    is_urgent: bool
    total_duration: int
    total_price: float
    services: List[int]
    add_ons: List[int]
    notes: str
    cancellation_reason: Optional[str] = None


class BookingRequest(BaseModel):
    barber_id: int
    date: date
    time_slot: Optional[time] = None
    total_duration: Optional[int] = None
    customer_id: Optional[int] = None
    services: List[int] = Field(default_factory=list)
    add_ons: List[int] = Field(default_factory=list)
    is_urgent: bool = False
    walk_in: bool = False
    auto_confirm: bool = True
    notes: str = ""


class ClientBookingCreate(BaseModel):
    barber_id: int
    date: date
    time_slot: Optional[time] = None
    services: List[int] = Field(min_length=1)
    add_ons: List[int] = Field(default_factory=list)
    is_urgent: bool = False
    walk_in: bool = False
    notes: str = ""


class BookingResult(BaseModel):
    success: bool
    appointment: AppointmentPublic
    booking_type: BookingType
    message: str


class QueueStatus(BaseModel):
    barber_id: int
    date: date
    total_in_queue: int
    currently_serving: int
    waiting: int


class QueuePositionInfo(BaseModel):
    appointment_id: int
    position: int
    ahead: int
    estimated_wait_minutes: int


class QueueMove(BaseModel):
    new_position: int = Field(ge=1)


class CancelRequest(BaseModel):
    reason: str = "Cancelled"


class AlternativeBarber(BaseModel):
    barber_id: int
    barber_name: str
    available_slots: int
    next_available_slot: time
    next_available_display: str
    queue_length: int
    estimated_wait_minutes: int
    rating: float
    score: float
    recommendation: str


class DayOffCreate(BaseModel):
    start_date: date
    end_date: date
    type: DayOffType = DayOffType.day_off
    reason: str = ""


class DayOffPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barber_id: int
    start_date: date
    end_date: date
    type: str
    reason: str
    is_active: bool


class DayOffResult(BaseModel):
    success: bool
    day_off: DayOffPublic
    cancelled_appointments: List[int]
    message: str


class AvailableDatesResponse(BaseModel):
    barber_id: int
    start_date: date
    end_date: date
    available_dates: List[date]


class NotificationRequest(BaseModel):
    user_id: Optional[int]
    title: str
    message: str
    type: str
    appointment_id: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
