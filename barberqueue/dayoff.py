# barberqueue/dayoff.py

import logging
from datetime import date
from typing import List, Optional

from sqlmodel import Session, select

from .availability import get_barber, lock_barber
from .clock import SystemClock
from .config import ShopSettings, shop_settings
from .core import date_range
from .db import transaction
from .errors import InvalidRange, NotFound, OverlapError, ValidationError
from .locks import barber_key, day_key, locked
from .models import Appointment, AppointmentStatus, BarberDayOff, DayOffType
from .notifications import NotificationChannel, cancelled_barber_unavailable
from .queue import QueuePositionManager
from .schemas import DayOffPublic, DayOffResult

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (
    AppointmentStatus.pending.value,
    AppointmentStatus.scheduled.value,
    AppointmentStatus.confirmed.value,
)


class DayOffManager:
    def __init__(
        self,
        session: Session,
        settings: ShopSettings = shop_settings,
        clock=None,
        notifications: Optional[NotificationChannel] = None,
    ):
        self.session = session
        self.settings = settings
        self.clock = clock or SystemClock()
        self.notifications = notifications or NotificationChannel()
        self.queue = QueuePositionManager(session, settings, self.clock, self.notifications)

    def find_overlap(self, barber_id: int, start_date: date, end_date: date) -> Optional[BarberDayOff]:
        return self.session.exec(
            select(BarberDayOff)
            .where(BarberDayOff.barber_id == barber_id)
            .where(BarberDayOff.is_active == True)  # noqa: E712
            .where(BarberDayOff.start_date <= end_date)
            .where(BarberDayOff.end_date >= start_date)
            .order_by(BarberDayOff.start_date)
            .with_for_update()
        ).first()

    def _check_range(self, start_date: date, end_date: date):
        if start_date > end_date:
            raise InvalidRange("Start date cannot be after end date")
        if (end_date - start_date).days + 1 > self.settings.max_day_off_days:
            raise InvalidRange(f"Date range cannot be longer than {self.settings.max_day_off_days} days")

    def declare_unavailable(
        self,
        barber_id: int,
        start_date: date,
        end_date: date,
        type: str = DayOffType.day_off.value,
        reason: str = "",
    ) -> DayOffResult:
        self._check_range(start_date, end_date)
        try:
            type = DayOffType(type).value
        except ValueError:
            raise ValidationError(f"Unknown unavailability type: {type}")

        days = list(date_range(start_date, end_date))
        keys = [barber_key(barber_id)] + [day_key(barber_id, d) for d in days]

        with locked(*keys):
            with transaction(self.session):
                if lock_barber(self.session, barber_id) is None:
                    raise NotFound("Barber not found")

                overlapping = self.find_overlap(barber_id, start_date, end_date)
                if overlapping is not None:
                    raise OverlapError(
                        f"Overlapping {overlapping.type.replace('_', ' ')} already exists from "
                        f"{overlapping.start_date.isoformat()} to {overlapping.end_date.isoformat()}",
                        conflicting=DayOffPublic.model_validate(overlapping),
                    )

                day_off = BarberDayOff(
                    barber_id=barber_id,
                    start_date=start_date,
                    end_date=end_date,
                    type=type,
                    reason=reason,
                    is_active=True,
                    created_at=self.clock.now(),
                )
                self.session.add(day_off)

                cancelled, pending = self._cascade(barber_id, start_date, end_date, reason)
                self.session.flush()

            self.session.refresh(day_off)

        logger.info(
            f"Barber {barber_id} unavailable ({type}) {start_date} to {end_date}; "
            f"cancelled {len(cancelled)} appointments"
        )
        self.notifications.publish_all(pending)
        return DayOffResult(
            success=True,
            day_off=DayOffPublic.model_validate(day_off),
            cancelled_appointments=[a.id for a in cancelled],
            message="Barber marked as unavailable successfully",
        )

    def _cascade(self, barber_id: int, start_date: date, end_date: date, reason: str):
        """Cancel every open appointment in the window and re-pack the queues it touched."""
        appointments = self.session.exec(
            select(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(Appointment.appointment_date >= start_date)
            .where(Appointment.appointment_date <= end_date)
            .where(Appointment.status.in_(CANCELLABLE_STATUSES))
            .order_by(Appointment.appointment_date, Appointment.id)
            .with_for_update()
        ).all()

        now = self.clock.now()
        cancellation_reason = f"Barber unavailable: {reason}" if reason else "Barber unavailable"
        affected_days = set()
        pending = []
        for appointment in appointments:
            appointment.status = AppointmentStatus.cancelled.value
            appointment.queue_position = None
            appointment.cancellation_reason = cancellation_reason
            appointment.updated_at = now
            self.session.add(appointment)
            affected_days.add(appointment.appointment_date)
            if appointment.customer_id is not None:
                pending.append(cancelled_barber_unavailable(appointment, reason))
        self.session.flush()

        for day in sorted(affected_days):
            pending.extend(self.queue.advance_in_transaction(barber_id, day))
        return appointments, pending

    def revoke(self, day_off_id: int) -> DayOffPublic:
        """Deactivate a window. Cancelled appointments stay cancelled."""
        day_off = self.session.get(BarberDayOff, day_off_id)
        if day_off is None:
            raise NotFound("Day-off not found")

        with locked(barber_key(day_off.barber_id)):
            with transaction(self.session):
                lock_barber(self.session, day_off.barber_id)
                if day_off.is_active:
                    day_off.is_active = False
                    self.session.add(day_off)
            self.session.refresh(day_off)

        logger.info(f"Revoked day-off {day_off_id} for barber {day_off.barber_id}")
        return DayOffPublic.model_validate(day_off)

    def list_day_offs(self, barber_id: int, include_inactive: bool = False) -> List[BarberDayOff]:
        stmt = select(BarberDayOff).where(BarberDayOff.barber_id == barber_id)
        if not include_inactive:
            stmt = stmt.where(BarberDayOff.is_active == True)  # noqa: E712
        return self.session.exec(stmt.order_by(BarberDayOff.start_date)).all()

    def available_dates(self, barber_id: int, start_date: date, end_date: date) -> List[date]:
        self._check_range(start_date, end_date)
        if get_barber(self.session, barber_id) is None:
            raise NotFound("Barber not found")
        windows = [
            w for w in self.list_day_offs(barber_id)
            if w.start_date <= end_date and w.end_date >= start_date
        ]
        return [
            d for d in date_range(start_date, end_date)
            if not any(w.start_date <= d <= w.end_date for w in windows)
        ]
