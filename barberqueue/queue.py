# barberqueue/queue.py

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from .availability import lock_barber
from .clock import SystemClock
from .config import ShopSettings, shop_settings
from .db import transaction
from .errors import InvalidTransition, NotFound, QueueFull, ValidationError
from .locks import day_key, locked
from .models import Appointment, AppointmentStatus, AppointmentType
from .notifications import NotificationChannel, next_in_line, position_changed
from .schemas import NotificationRequest, QueuePositionInfo, QueueStatus

logger = logging.getLogger(__name__)

WAITING = AppointmentStatus.scheduled.value


def _queue_order(appointment: Appointment):
    # current position first, then urgency, arrival and id for a total order
    return (
        appointment.queue_position is None,
        appointment.queue_position or 0,
        not appointment.is_urgent,
        appointment.created_at,
        appointment.id,
    )


class QueuePositionManager:
    """Per-(barber, date) walk-in queue ordering.

    Positions are 1-based and dense over queue appointments whose status is
    scheduled. Every mutation runs under the (barber, date) lock inside one
    transaction; the *_in_transaction variants are for callers that already
    hold both.
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

    def waiting(
        self, barber_id: int, day: date, exclude_id: Optional[int] = None, for_update: bool = True
    ) -> List[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(Appointment.appointment_date == day)
            .where(Appointment.appointment_type == AppointmentType.queue.value)
            .where(Appointment.status == WAITING)
        )
        if for_update:
            stmt = stmt.with_for_update()
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        return sorted(self.session.exec(stmt).all(), key=_queue_order)

    def serving(self, barber_id: int, day: date) -> Optional[Appointment]:
        return self.session.exec(
            select(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(Appointment.appointment_date == day)
            .where(Appointment.status == AppointmentStatus.ongoing.value)
        ).first()

    def ensure_capacity(self, barber_id: int, day: date):
        if len(self.waiting(barber_id, day)) >= self.settings.max_queue_size:
            raise QueueFull("The barber's queue is full. Please try another barber or date.")

    # assign

    def assign(self, barber_id: int, day: date, appointment_id: int, is_urgent: bool = False) -> int:
        with locked(day_key(barber_id, day)):
            with transaction(self.session):
                position = self.assign_in_transaction(barber_id, day, appointment_id, is_urgent)
        return position

    def assign_in_transaction(self, barber_id: int, day: date, appointment_id: int, is_urgent: bool = False) -> int:
        lock_barber(self.session, barber_id)
        appointment = self.session.get(Appointment, appointment_id, with_for_update=True)
        if appointment is None:
            raise NotFound("Appointment not found")
        if appointment.barber_id != barber_id or appointment.appointment_date != day:
            raise ValidationError("Appointment does not belong to this barber and date")
        if appointment.appointment_type != AppointmentType.queue.value:
            raise ValidationError("Only queue appointments hold a queue position")
        if appointment.status not in (AppointmentStatus.pending.value, WAITING):
            raise InvalidTransition(f"Cannot queue an appointment that is {appointment.status}")

        # a retried assign keeps the position it already got
        if appointment.status == WAITING and appointment.queue_position is not None:
            return appointment.queue_position

        urgent = is_urgent or appointment.is_urgent
        queued = self.waiting(barber_id, day, exclude_id=appointment.id)
        now = self.clock.now()

        if urgent:
            # right behind the last urgent entry, wherever a manager left it
            position = max((a.queue_position or 0 for a in queued if a.is_urgent), default=0) + 1
            self.session.execute(
                update(Appointment)
                .where(Appointment.barber_id == barber_id)
                .where(Appointment.appointment_date == day)
                .where(Appointment.appointment_type == AppointmentType.queue.value)
                .where(Appointment.status == WAITING)
                .where(Appointment.queue_position >= position)
                .where(Appointment.id != appointment.id)
                .values(queue_position=Appointment.queue_position + 1, updated_at=now)
                .execution_options(synchronize_session="fetch")
            )
        else:
            position = max((a.queue_position or 0 for a in queued), default=0) + 1

        appointment.queue_position = position
        appointment.is_urgent = urgent
        appointment.status = WAITING
        appointment.appointment_time = None
        appointment.updated_at = now
        self.session.add(appointment)
        self.session.flush()

        logger.info(
            f"Queued appointment {appointment.id} at position {position} "
            f"for barber {barber_id} on {day} (urgent={urgent})"
        )
        return position

    # advance / re-pack

    def advance(self, barber_id: int, day: date, appointment_id: int):
        with locked(day_key(barber_id, day)):
            with transaction(self.session):
                pending = self.advance_in_transaction(barber_id, day, appointment_id)
        self.notifications.publish_all(pending)

    def advance_in_transaction(
        self, barber_id: int, day: date, appointment_id: Optional[int] = None
    ) -> List[NotificationRequest]:
        """Drop an appointment from the queue and re-pack the rest from 1.

        Returns the notifications to publish once the transaction commits.
        """
        lock_barber(self.session, barber_id)
        if appointment_id is not None:
            appointment = self.session.get(Appointment, appointment_id, with_for_update=True)
            if appointment is None:
                raise NotFound("Appointment not found")
            if appointment.queue_position is not None:
                appointment.queue_position = None
                appointment.updated_at = self.clock.now()
                self.session.add(appointment)
        return self._repack(self.waiting(barber_id, day, exclude_id=appointment_id))

    def _repack(self, ordered: List[Appointment]) -> List[NotificationRequest]:
        pending = []
        previous_head = next((a.id for a in ordered if a.queue_position == 1), None)
        now = self.clock.now()
        for index, appointment in enumerate(ordered, start=1):
            if appointment.queue_position != index:
                appointment.queue_position = index
                appointment.updated_at = now
                self.session.add(appointment)
        self.session.flush()

        if ordered and ordered[0].id != previous_head:
            head = ordered[0]
            logger.info(f"Appointment {head.id} is next in line for barber {head.barber_id} on {head.appointment_date}")
            pending.append(next_in_line(head))
        return pending

    # reads

    def status(self, barber_id: int, day: date) -> QueueStatus:
        waiting = self.session.exec(
            select(func.count(Appointment.id))
            .where(Appointment.barber_id == barber_id)
            .where(Appointment.appointment_date == day)
            .where(Appointment.appointment_type == AppointmentType.queue.value)
            .where(Appointment.status == WAITING)
        ).one()
        currently_serving = 1 if self.serving(barber_id, day) is not None else 0
        return QueueStatus(
            barber_id=barber_id,
            date=day,
            total_in_queue=waiting + currently_serving,
            currently_serving=currently_serving,
            waiting=waiting,
        )

    def position_of(self, appointment_id: int) -> QueuePositionInfo:
        appointment = self.session.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        if appointment.status != WAITING or appointment.queue_position is None:
            raise ValidationError("Appointment is not waiting in a queue")

        ahead = [
            a for a in self.waiting(appointment.barber_id, appointment.appointment_date, for_update=False)
            if a.queue_position is not None and a.queue_position < appointment.queue_position
        ]
        wait = sum(a.total_duration or self.settings.average_service_minutes for a in ahead)
        ongoing = self.serving(appointment.barber_id, appointment.appointment_date)
        if ongoing is not None:
            wait += ongoing.total_duration or self.settings.average_service_minutes
        return QueuePositionInfo(
            appointment_id=appointment.id,
            position=appointment.queue_position,
            ahead=len(ahead),
            estimated_wait_minutes=wait,
        )

    # manager reorder

    def move(self, appointment_id: int, new_position: int) -> int:
        appointment = self.session.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        barber_id, day = appointment.barber_id, appointment.appointment_date

        with locked(day_key(barber_id, day)):
            with transaction(self.session):
                lock_barber(self.session, barber_id)
                queued = self.waiting(barber_id, day)
                target = next((a for a in queued if a.id == appointment_id), None)
                if target is None:
                    raise ValidationError("Appointment is not waiting in a queue")
                if new_position < 1:
                    raise ValidationError("Queue position must be at least 1")

                queued.remove(target)
                position = min(new_position, len(queued) + 1)
                queued.insert(position - 1, target)
                pending = self._repack(queued)
                if target.queue_position != 1:
                    pending.append(position_changed(target, target.queue_position))

        logger.info(f"Moved appointment {appointment_id} to queue position {position}")
        self.notifications.publish_all(pending)
        return position
