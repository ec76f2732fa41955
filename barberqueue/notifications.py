# barberqueue/notifications.py

import logging
from typing import Callable, List

from .schemas import NotificationRequest

logger = logging.getLogger(__name__)

Subscriber = Callable[[NotificationRequest], None]


class NotificationChannel:
    """Fire-and-forget fan-out of notification requests to subscribers.

    Scheduling code publishes only after its transaction commits. Delivery is
    the subscribers' job; a failing subscriber is logged and skipped.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, request: NotificationRequest):
        logger.info(f"Notification {request.type} for user {request.user_id}: {request.title}")
        for subscriber in list(self._subscribers):
            try:
                subscriber(request)
            except Exception:
                logger.exception(f"Notification subscriber failed for {request.type}")

    def publish_all(self, requests: List[NotificationRequest]):
        for request in requests:
            self.publish(request)


def next_in_line(appointment) -> NotificationRequest:
    return NotificationRequest(
        user_id=appointment.customer_id,
        title="You're next in line",
        message="You're next in line! Please be ready for your appointment.",
        type="queue_next_in_line",
        appointment_id=appointment.id,
        data={"queue_position": 1, "barber_id": appointment.barber_id},
    )


def position_changed(appointment, new_position: int) -> NotificationRequest:
    return NotificationRequest(
        user_id=appointment.customer_id,
        title="Queue Position Updated",
        message=f"Your position in the queue is now {new_position}.",
        type="queue_position_update",
        appointment_id=appointment.id,
        data={"queue_position": new_position, "barber_id": appointment.barber_id},
    )


def cancelled_barber_unavailable(appointment, reason: str) -> NotificationRequest:
    when = appointment.appointment_time.strftime("%H:%M") if appointment.appointment_time else "your queue slot"
    message = (
        f"Your appointment on {appointment.appointment_date.isoformat()} at {when} has been cancelled "
        f"because your barber is unavailable."
    )
    if reason:
        message += f" Reason: {reason}"
    message += " Please reschedule or book with another barber."
    return NotificationRequest(
        user_id=appointment.customer_id,
        title="Appointment Cancelled - Barber Unavailable",
        message=message,
        type="appointment_cancelled_barber_unavailable",
        appointment_id=appointment.id,
        data={"cancellation_reason": reason, "barber_unavailable": True},
    )


def booking_placed(appointment, message: str) -> NotificationRequest:
    return NotificationRequest(
        user_id=appointment.customer_id,
        title="Booking Received",
        message=message,
        type=f"booking_{appointment.appointment_type}",
        appointment_id=appointment.id,
        data={"status": appointment.status, "queue_position": appointment.queue_position},
    )


def status_changed(appointment, title: str, message: str) -> NotificationRequest:
    return NotificationRequest(
        user_id=appointment.customer_id,
        title=title,
        message=message,
        type=f"appointment_{appointment.status}",
        appointment_id=appointment.id,
        data={"status": appointment.status},
    )
