# barberqueue/slots.py

import logging
from datetime import date
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .availability import AvailabilityResolver, lock_barber, timed_appointments
from .clock import SystemClock
from .config import ShopSettings, shop_settings
from .core import format_12h, overlaps, round_up_to_slot, slot_times, to_minutes
from .db import transaction
from .duration import Catalog, DatabaseCatalog, total_duration, total_price, validate_selection
from .errors import BarberUnavailable, DataAccessError, NotFound, SlotConflict, ValidationError
from .locks import day_key, locked
from .models import ACTIVE_STATUSES, Appointment, AppointmentStatus, BarberStatus, User
from .notifications import NotificationChannel, booking_placed
from .queue import QueuePositionManager
from .schemas import (
    AlternativeBarber,
    AppointmentPublic,
    AvailabilityKind,
    BookingRequest,
    BookingResult,
    BookingType,
    Slot,
    SlotType,
)

logger = logging.getLogger(__name__)

# timed appointments that hold their slot on the grid
GRID_STATUSES = (
    AppointmentStatus.pending.value,
    AppointmentStatus.scheduled.value,
    AppointmentStatus.confirmed.value,
    AppointmentStatus.ongoing.value,
)

# day-level verdicts that make every slot unbookable
DAY_BLOCKING_KINDS = (
    AvailabilityKind.not_found,
    AvailabilityKind.offline,
    AvailabilityKind.day_off,
    AvailabilityKind.outside_hours,
)

Span = Tuple[int, int]


def _recommendation(available_slots: int, queue_length: int) -> str:
    if available_slots >= 5:
        return "Excellent availability"
    if available_slots >= 3:
        return "Good availability"
    if available_slots >= 1:
        return "Limited availability"
    if queue_length < 5:
        return "Short queue"
    if queue_length < 10:
        return "Moderate queue"
    return "Long queue"


class SlotAllocator:
    def __init__(
        self,
        session: Session,
        settings: ShopSettings = shop_settings,
        clock=None,
        notifications: Optional[NotificationChannel] = None,
        catalog: Optional[Catalog] = None,
    ):
        self.session = session
        self.settings = settings
        self.clock = clock or SystemClock()
        self.notifications = notifications or NotificationChannel()
        self.catalog = catalog or DatabaseCatalog(session)
        self.resolver = AvailabilityResolver(session, settings, self.clock)
        self.queue = QueuePositionManager(session, settings, self.clock, self.notifications)

    # grid

    def _lunch(self) -> Optional[Span]:
        if self.settings.lunch_start is None:
            return None
        return to_minutes(self.settings.lunch_start), to_minutes(self.settings.lunch_end)

    def _fits(self, start: int, minutes: int, occupied: List[Span]) -> bool:
        end = start + minutes
        if end > to_minutes(self.settings.close_time):
            return False
        lunch = self._lunch()
        if lunch is not None and overlaps(start, end, *lunch):
            return False
        return not any(overlaps(start, end, s, e) for s, e in occupied)

    def _project_queue(self, queued: List[Appointment], busy: List[Span], cursor: int):
        """Lay queued appointments onto the earliest free time, in position order."""
        close = to_minutes(self.settings.close_time)
        lunch = self._lunch()
        projected = []
        for appointment in queued:
            minutes = appointment.total_duration or self.settings.average_service_minutes
            start = cursor
            while start + minutes <= close:
                blockers = list(busy)
                if lunch is not None:
                    blockers.append(lunch)
                clash = next((e for s, e in blockers if overlaps(start, start + minutes, s, e)), None)
                if clash is None:
                    break
                start = clash
            if start + minutes > close:
                logger.warning(f"Queue appointment {appointment.id} cannot fit within working hours")
                break
            projected.append((start, start + minutes, appointment.queue_position))
            cursor = start + minutes
        return projected

    def build_slot_grid(
        self, barber_id: int, day: date, total_duration: int, fail_open: bool = True
    ) -> Iterator[Slot]:
        """Yield the barber's slots for the day, one per grid increment.

        Lazy and side-effect free: call again for a fresh view. Booking passes
        fail_open=False so a store failure aborts instead of reading as free.
        """
        settings = self.settings
        try:
            day_verdict = self.resolver.resolve(barber_id, day, fail_open=fail_open)
            booked = timed_appointments(self.session, barber_id, day, GRID_STATUSES)
            queued = self.queue.waiting(barber_id, day, for_update=False)
        except SQLAlchemyError as e:
            raise DataAccessError("Could not load the barber's day") from e

        busy = [self.resolver.appointment_span(a) for a in booked]
        open_minutes = to_minutes(settings.open_time)
        now_minutes = None
        cursor = open_minutes
        if day == self.clock.today():
            now_minutes = to_minutes(self.clock.now().time())
            cursor = max(cursor, round_up_to_slot(self.clock.now().time(), settings.open_time, settings.slot_minutes))
        projected = self._project_queue(queued, busy, cursor)
        occupied = busy + [(s, e) for s, e, _ in projected]
        lunch = self._lunch()

        for slot_time in slot_times(settings.open_time, settings.close_time, settings.slot_minutes):
            minutes = to_minutes(slot_time)

            if lunch is not None and lunch[0] <= minutes < lunch[1]:
                yield Slot(time=slot_time, type=SlotType.lunch, can_book=False, reason="Lunch break")
                continue

            if any(s <= minutes < e for s, e in busy):
                yield Slot(time=slot_time, type=SlotType.scheduled, can_book=False, reason="Booked")
                continue

            in_queue = next((p for s, e, p in projected if s <= minutes < e), None)
            if in_queue is not None:
                yield Slot(
                    time=slot_time,
                    type=SlotType.queue,
                    can_book=False,
                    reason=f"Queue position {in_queue}",
                    queue_position=in_queue,
                )
                continue

            if not day_verdict.available and day_verdict.kind in DAY_BLOCKING_KINDS:
                yield Slot(time=slot_time, type=SlotType.full, can_book=False, reason=day_verdict.reason)
                continue

            if now_minutes is not None and minutes < now_minutes:
                yield Slot(time=slot_time, type=SlotType.full, can_book=False, reason="Time has passed")
                continue

            verdict = self.resolver.resolve(barber_id, day, slot_time, fail_open=fail_open)
            if not verdict.available:
                free_at = verdict.estimated_available_time
                still_busy = verdict.kind != AvailabilityKind.currently_busy or (
                    free_at is not None and slot_time < free_at
                )
                if still_busy:
                    yield Slot(time=slot_time, type=SlotType.full, can_book=False, reason=verdict.reason)
                    continue

            can_book = self._fits(minutes, total_duration, occupied)
            yield Slot(
                time=slot_time,
                type=SlotType.available,
                can_book=can_book,
                reason="Available" if can_book else "Insufficient time",
            )

    # booking

    def _resolve_duration(self, request: BookingRequest) -> int:
        if request.total_duration is not None:
            if request.total_duration <= 0:
                raise ValidationError("Total duration must be positive")
            return request.total_duration
        return total_duration(request.services, request.add_ons, self.catalog, self.settings)

    def _check_duplicate(self, request: BookingRequest):
        if request.customer_id is None:
            return
        existing = self.session.exec(
            select(Appointment)
            .where(Appointment.customer_id == request.customer_id)
            .where(Appointment.barber_id == request.barber_id)
            .where(Appointment.appointment_date == request.date)
            .where(Appointment.status.in_(ACTIVE_STATUSES))
        ).first()
        if existing is not None:
            raise SlotConflict("You already have an appointment on this date")

    def book_slot(self, request: BookingRequest) -> BookingResult:
        if request.services or request.total_duration is None:
            validate_selection(request.services, request.add_ons, self.settings)
        minutes = self._resolve_duration(request)
        price = total_price(request.services, request.add_ons, self.catalog)

        with locked(day_key(request.barber_id, request.date)):
            with transaction(self.session):
                lock_barber(self.session, request.barber_id)
                verdict = self.resolver.resolve(request.barber_id, request.date, fail_open=False)
                if verdict.kind == AvailabilityKind.not_found:
                    raise NotFound("Barber not found")
                if not verdict.available and verdict.kind != AvailabilityKind.currently_busy:
                    raise BarberUnavailable(verdict.reason, verdict)
                self._check_duplicate(request)

                booking_type = BookingType.queue
                if request.time_slot is not None and not request.walk_in:
                    slot = next(
                        (s for s in self.build_slot_grid(request.barber_id, request.date, minutes, fail_open=False)
                         if s.time == request.time_slot),
                        None,
                    )
                    if slot is not None and slot.can_book:
                        booking_type = BookingType.scheduled
                    elif slot is not None and slot.type in (SlotType.scheduled, SlotType.queue):
                        raise SlotConflict("The selected time slot is no longer available")

                if booking_type == BookingType.queue and request.auto_confirm:
                    self.queue.ensure_capacity(request.barber_id, request.date)

                status = AppointmentStatus.pending.value
                if request.auto_confirm and booking_type == BookingType.scheduled:
                    status = AppointmentStatus.scheduled.value

                now = self.clock.now()
                appointment = Appointment(
                    barber_id=request.barber_id,
                    customer_id=request.customer_id,
                    appointment_date=request.date,
                    appointment_time=request.time_slot if booking_type == BookingType.scheduled else None,
                    appointment_type=booking_type.value,
                    status=status,
                    is_urgent=request.is_urgent,
                    total_duration=minutes,
                    total_price=price,
                    services=list(request.services),
                    add_ons=list(request.add_ons),
                    notes=request.notes,
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(appointment)
                self.session.flush()

                if not request.auto_confirm:
                    message = "Your appointment request has been sent to the barber"
                elif booking_type == BookingType.scheduled:
                    message = f"Appointment scheduled for {format_12h(request.time_slot)}"
                else:
                    position = self.queue.assign_in_transaction(
                        request.barber_id, request.date, appointment.id, request.is_urgent
                    )
                    message = f"Added to queue at position {position}"

            self.session.refresh(appointment)

        logger.info(
            f"Booked appointment {appointment.id} ({booking_type.value}, {appointment.status}) "
            f"for barber {request.barber_id} on {request.date}"
        )
        if appointment.customer_id is not None:
            self.notifications.publish(booking_placed(appointment, message))
        return BookingResult(
            success=True,
            appointment=AppointmentPublic.model_validate(appointment),
            booking_type=booking_type,
            message=message,
        )

    # alternatives

    def find_alternative_barbers(
        self, barber_id: int, day: date, total_duration: int, limit: Optional[int] = None
    ) -> List[AlternativeBarber]:
        """Rank other barbers when this one has nothing bookable. Advisory only."""
        if any(s.can_book for s in self.build_slot_grid(barber_id, day, total_duration)):
            return []

        barbers = self.session.exec(
            select(User)
            .where(User.role == "barber")
            .where(User.id != barber_id)
            .where(User.barber_status != BarberStatus.offline.value)
        ).all()

        open_minutes = to_minutes(self.settings.open_time)
        alternatives = []
        for barber in barbers:
            bookable = [s for s in self.build_slot_grid(barber.id, day, total_duration) if s.can_book]
            if not bookable:
                continue
            queue_length = self.queue.status(barber.id, day).waiting
            first = bookable[0].time
            hours_after_open = (to_minutes(first) - open_minutes) / 60
            rating = barber.average_rating if barber.total_ratings > 0 else 0.0
            score = (
                len(bookable) * 10
                + max(0, 10 - queue_length)
                + rating * 2
                + max(0.0, 10 - hours_after_open)
            )
            alternatives.append(
                AlternativeBarber(
                    barber_id=barber.id,
                    barber_name=barber.full_name,
                    available_slots=len(bookable),
                    next_available_slot=first,
                    next_available_display=format_12h(first),
                    queue_length=queue_length,
                    estimated_wait_minutes=queue_length * total_duration,
                    rating=rating,
                    score=round(score, 2),
                    recommendation=_recommendation(len(bookable), queue_length),
                )
            )

        alternatives.sort(key=lambda a: (-a.score, a.barber_id))
        return alternatives[: limit or self.settings.max_alternatives]
