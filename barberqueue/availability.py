# barberqueue/availability.py

import logging
from datetime import date, time
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .clock import SystemClock
from .config import ShopSettings, shop_settings
from .core import overlaps, to_minutes, from_minutes, slot_times
from .models import Appointment, AppointmentStatus, BarberDayOff, BarberStatus, User
from .schemas import AvailabilityKind, AvailabilityVerdict

logger = logging.getLogger(__name__)

CAPACITY_STATUSES = (
    AppointmentStatus.scheduled.value,
    AppointmentStatus.confirmed.value,
    AppointmentStatus.ongoing.value,
)
BUSY_STATUSES = (AppointmentStatus.ongoing.value, AppointmentStatus.confirmed.value)


def get_barber(session: Session, barber_id: int) -> Optional[User]:
    barber = session.get(User, barber_id)
    if barber is None or barber.role != "barber":
        return None
    return barber


def lock_barber(session: Session, barber_id: int) -> Optional[User]:
    """Row-lock the barber for the rest of the transaction.

    Every write to a barber's appointments or day-offs takes this lock first,
    so writers in other processes serialize even when no appointment row
    exists yet to lock.
    """
    barber = session.get(User, barber_id, with_for_update=True)
    if barber is None or barber.role != "barber":
        return None
    return barber


def active_day_off(session: Session, barber_id: int, day: date) -> Optional[BarberDayOff]:
    return session.exec(
        select(BarberDayOff)
        .where(BarberDayOff.barber_id == barber_id)
        .where(BarberDayOff.is_active == True)  # noqa: E712
        .where(BarberDayOff.start_date <= day)
        .where(BarberDayOff.end_date >= day)
        .order_by(BarberDayOff.start_date)
    ).first()


def timed_appointments(
    session: Session, barber_id: int, day: date, statuses: Sequence[str]
) -> List[Appointment]:
    return session.exec(
        select(Appointment)
        .where(Appointment.barber_id == barber_id)
        .where(Appointment.appointment_date == day)
        .where(Appointment.status.in_(statuses))
        .where(Appointment.appointment_time != None)  # noqa: E711
        .order_by(Appointment.appointment_time)
    ).all()


class AvailabilityResolver:
    """Decides whether a barber can take a booking on a date (and optionally a time).

    Checks run in a fixed order and the first failing one wins: existence,
    offline status, day-off window, business hours, capacity, currently busy.
    """

    def __init__(self, session: Session, settings: ShopSettings = shop_settings, clock=None):
        self.session = session
        self.settings = settings
        self.clock = clock or SystemClock()

    def resolve(
        self,
        barber_id: int,
        day: date,
        time_slot: Optional[time] = None,
        duration: Optional[int] = None,
        fail_open: bool = True,
    ) -> AvailabilityVerdict:
        """Return the availability verdict.

        With fail_open (the read path), a store failure yields an "available"
        verdict flagged as degraded. Mutating callers pass fail_open=False so
        the error propagates and their transaction aborts.
        """
        if not fail_open:
            return self._resolve(barber_id, day, time_slot, duration)
        try:
            return self._resolve(barber_id, day, time_slot, duration)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(
                f"Degraded mode: availability check failed for barber {barber_id} on {day}, "
                f"assuming available: {e}"
            )
            return AvailabilityVerdict(
                available=True,
                reason="Availability check failed - assuming available",
                kind=AvailabilityKind.available,
                degraded=True,
            )

    def _resolve(self, barber_id, day, time_slot, duration) -> AvailabilityVerdict:
        # 1) Barber exists
        barber = get_barber(self.session, barber_id)
        if barber is None:
            return AvailabilityVerdict(
                available=False, reason="Barber not found", kind=AvailabilityKind.not_found
            )
        name = barber.full_name

        # 2) Operational status
        if barber.barber_status == BarberStatus.offline.value:
            return AvailabilityVerdict(
                available=False,
                reason="Barber is currently offline",
                kind=AvailabilityKind.offline,
                barber_name=name,
            )

        # 3) Day-off window
        day_off = active_day_off(self.session, barber_id, day)
        if day_off is not None:
            return AvailabilityVerdict(
                available=False,
                reason=(
                    f"Barber is on {day_off.type.replace('_', ' ')} from "
                    f"{day_off.start_date.isoformat()} to {day_off.end_date.isoformat()}"
                ),
                kind=AvailabilityKind.day_off,
                barber_name=name,
                day_off_type=day_off.type,
                end_date=day_off.end_date,
            )

        # 4) Business hours
        hours_reason = self.check_business_hours(day, time_slot)
        if hours_reason is not None:
            return AvailabilityVerdict(
                available=False,
                reason=hours_reason,
                kind=AvailabilityKind.outside_hours,
                barber_name=name,
            )

        # 5) Capacity at the requested time
        if time_slot is not None:
            check_minutes = duration or self.settings.capacity_check_minutes
            booked = timed_appointments(self.session, barber_id, day, CAPACITY_STATUSES)
            if self._conflicts(booked, time_slot, check_minutes):
                return AvailabilityVerdict(
                    available=False,
                    reason="Time slot is already booked",
                    kind=AvailabilityKind.at_capacity,
                    barber_name=name,
                    next_available_time=self._next_free_slot(booked, time_slot, check_minutes),
                )

        # 6) Currently with a customer
        if day == self.clock.today():
            free_at = self._busy_until(barber_id, day)
            if free_at is not None:
                return AvailabilityVerdict(
                    available=False,
                    reason="Barber is currently with a customer",
                    kind=AvailabilityKind.currently_busy,
                    barber_name=name,
                    estimated_available_time=free_at,
                )

        return AvailabilityVerdict(
            available=True,
            reason="Barber is available for booking",
            kind=AvailabilityKind.available,
            barber_name=name,
        )

    def check_business_hours(self, day: date, time_slot: Optional[time] = None) -> Optional[str]:
        if day < self.clock.today():
            return "Cannot book appointments in the past"
        if time_slot is not None:
            if time_slot < self.settings.open_time or time_slot >= self.settings.close_time:
                return (
                    f"Appointments are only available between "
                    f"{self.settings.open_time.strftime('%H:%M')} and {self.settings.close_time.strftime('%H:%M')}"
                )
        return None

    def appointment_span(self, appointment: Appointment):
        start = to_minutes(appointment.appointment_time)
        return start, start + (appointment.total_duration or self.settings.capacity_check_minutes)

    def _conflicts(self, booked: List[Appointment], start_time: time, minutes: int) -> bool:
        start = to_minutes(start_time)
        end = start + minutes
        for appointment in booked:
            appt_start, appt_end = self.appointment_span(appointment)
            if overlaps(start, end, appt_start, appt_end):
                return True
        return False

    def _in_lunch(self, minutes: int) -> bool:
        if self.settings.lunch_start is None:
            return False
        return to_minutes(self.settings.lunch_start) <= minutes < to_minutes(self.settings.lunch_end)

    def _next_free_slot(self, booked, after: time, minutes: int) -> Optional[time]:
        for candidate in slot_times(self.settings.open_time, self.settings.close_time, self.settings.slot_minutes):
            if candidate <= after or self._in_lunch(to_minutes(candidate)):
                continue
            if not self._conflicts(booked, candidate, minutes):
                return candidate
        return None

    def _busy_until(self, barber_id: int, day: date) -> Optional[time]:
        now = to_minutes(self.clock.now().time())
        for appointment in timed_appointments(self.session, barber_id, day, BUSY_STATUSES):
            start, end = self.appointment_span(appointment)
            if start <= now < end:
                return from_minutes(min(end, 24 * 60 - 1))
        return None
