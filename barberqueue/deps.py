# barberqueue/deps.py

from fastapi import Depends, HTTPException
from sqlmodel import Session

from .availability import AvailabilityResolver
from .clock import SystemClock
from .config import shop_settings
from .db import get_session
from .dayoff import DayOffManager
from .lifecycle import AppointmentLifecycle
from .notifications import NotificationChannel
from .queue import QueuePositionManager
from .slots import SlotAllocator

# process-wide; delivery services subscribe at startup
notifications = NotificationChannel()
clock = SystemClock()


def require_role(user: dict, *roles: str):
    if user["role"] not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_clock():
    return clock


def get_notifications() -> NotificationChannel:
    return notifications


def get_resolver(
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
) -> AvailabilityResolver:
    return AvailabilityResolver(session, shop_settings, clock)


def get_allocator(
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
    channel: NotificationChannel = Depends(get_notifications),
) -> SlotAllocator:
    return SlotAllocator(session, shop_settings, clock, channel)


def get_queue(
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
    channel: NotificationChannel = Depends(get_notifications),
) -> QueuePositionManager:
    return QueuePositionManager(session, shop_settings, clock, channel)


def get_day_offs(
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
    channel: NotificationChannel = Depends(get_notifications),
) -> DayOffManager:
    return DayOffManager(session, shop_settings, clock, channel)


def get_lifecycle(
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
    channel: NotificationChannel = Depends(get_notifications),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(session, shop_settings, clock, channel)
