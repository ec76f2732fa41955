# barberqueue/lifecycle.py

import logging
from typing import Optional

from sqlmodel import Session

from .availability import lock_barber
from .clock import SystemClock
from .config import ShopSettings, shop_settings
from .db import transaction
from .errors import InvalidTransition, NotFound
from .locks import day_key, locked
from .models import Appointment, AppointmentStatus, AppointmentType
from .notifications import NotificationChannel, status_changed
from .queue import QueuePositionManager

logger = logging.getLogger(__name__)

S = AppointmentStatus

ALLOWED = {
    "accept": (S.pending.value,),
    "decline": (S.pending.value,),
    "start": (S.scheduled.value, S.confirmed.value),
    "complete": (S.ongoing.value,),
    "cancel": (S.pending.value, S.scheduled.value, S.confirmed.value, S.ongoing.value),
}


class AppointmentLifecycle:
    """Status transitions that keep the barber's queue consistent.

    pending -> scheduled | cancelled
    scheduled -> ongoing -> done
    any non-terminal -> cancelled
    """

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

    def _load(self, appointment_id: int) -> Appointment:
        appointment = self.session.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        return appointment

    def _transition(self, appointment_id: int, action: str, apply):
        appointment = self._load(appointment_id)
        key = day_key(appointment.barber_id, appointment.appointment_date)
        with locked(key):
            with transaction(self.session):
                lock_barber(self.session, appointment.barber_id)
                self.session.refresh(appointment, with_for_update=True)
                if appointment.status not in ALLOWED[action]:
                    raise InvalidTransition(f"Cannot {action} an appointment that is {appointment.status}")
                pending = apply(appointment) or []
                appointment.updated_at = self.clock.now()
                self.session.add(appointment)
                self.session.flush()
            self.session.refresh(appointment)

        logger.info(f"Appointment {appointment.id} {action}: now {appointment.status}")
        self.notifications.publish_all(pending)
        return appointment

    def accept(self, appointment_id: int) -> Appointment:
        def apply(appointment):
            if appointment.appointment_type == AppointmentType.queue.value:
                self.queue.ensure_capacity(appointment.barber_id, appointment.appointment_date)
                position = self.queue.assign_in_transaction(
                    appointment.barber_id, appointment.appointment_date, appointment.id, appointment.is_urgent
                )
                message = f"Your booking was accepted. You are number {position} in the queue."
            else:
                appointment.status = S.scheduled.value
                message = "Your appointment has been confirmed"
            return [status_changed(appointment, "Appointment Confirmed", message)]

        return self._transition(appointment_id, "accept", apply)

    def decline(self, appointment_id: int, reason: str = "Declined by barber") -> Appointment:
        def apply(appointment):
            appointment.status = S.cancelled.value
            appointment.cancellation_reason = reason
            return [status_changed(appointment, "Appointment Declined", f"Your appointment request was declined. {reason}")]

        return self._transition(appointment_id, "decline", apply)

    def start(self, appointment_id: int) -> Appointment:
        def apply(appointment):
            serving = self.queue.serving(appointment.barber_id, appointment.appointment_date)
            if serving is not None and serving.id != appointment.id:
                raise InvalidTransition(f"Barber is already serving appointment {serving.id}")
            appointment.status = S.ongoing.value
            # leaves the waiting queue; whoever is now first gets told
            return self.queue.advance_in_transaction(
                appointment.barber_id, appointment.appointment_date, appointment.id
            )

        return self._transition(appointment_id, "start", apply)

    def complete(self, appointment_id: int) -> Appointment:
        def apply(appointment):
            appointment.status = S.done.value
            return self.queue.advance_in_transaction(
                appointment.barber_id, appointment.appointment_date, appointment.id
            )

        return self._transition(appointment_id, "complete", apply)

    def cancel(self, appointment_id: int, reason: str = "Cancelled") -> Appointment:
        def apply(appointment):
            appointment.status = S.cancelled.value
            appointment.cancellation_reason = reason
            return self.queue.advance_in_transaction(
                appointment.barber_id, appointment.appointment_date, appointment.id
            )

        return self._transition(appointment_id, "cancel", apply)

