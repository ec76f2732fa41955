# tests/test_slots.py

from datetime import date, datetime, time

import pytest

from barberqueue.config import ShopSettings
from barberqueue.db import transaction
from barberqueue.errors import BarberUnavailable, NotFound, QueueFull, SlotConflict, ValidationError
from barberqueue.models import Appointment, BarberDayOff
from barberqueue.schemas import AvailabilityKind, BookingRequest, BookingType, SlotType
from barberqueue.slots import SlotAllocator

DAY = date(2024, 6, 4)


def grid(allocator, barber_id, minutes, day=DAY):
    return {s.time: s for s in allocator.build_slot_grid(barber_id, day, minutes)}


def test_grid_covers_business_hours(allocator, shop):
    slots = list(allocator.build_slot_grid(shop.sam, DAY, 30))
    assert len(slots) == 18
    assert slots[0].time == time(8, 0)
    assert slots[-1].time == time(16, 30)


def test_grid_is_restartable(allocator, shop):
    first = list(allocator.build_slot_grid(shop.sam, DAY, 30))
    second = list(allocator.build_slot_grid(shop.sam, DAY, 30))
    assert first == second


def test_45_minute_selection_around_lunch_and_closing(allocator, shop):
    slots = grid(allocator, shop.sam, 45)

    assert slots[time(11, 0)].can_book
    # 11:30 + 45 runs into lunch
    assert slots[time(11, 30)].type == SlotType.available
    assert not slots[time(11, 30)].can_book
    assert slots[time(12, 0)].type == SlotType.lunch
    assert slots[time(12, 30)].type == SlotType.lunch
    assert slots[time(13, 0)].can_book
    assert slots[time(16, 0)].can_book
    # 16:30 + 45 runs past closing
    assert slots[time(16, 30)].type == SlotType.available
    assert not slots[time(16, 30)].can_book


def test_booked_slots_are_labelled(allocator, shop, add_appointment):
    add_appointment(shop.sam, appointment_time=time(9, 0), status="scheduled", total_duration=60)
    slots = grid(allocator, shop.sam, 45)

    assert slots[time(9, 0)].type == SlotType.scheduled
    assert slots[time(9, 30)].type == SlotType.scheduled
    assert not slots[time(8, 30)].can_book
    assert slots[time(8, 0)].can_book
    assert slots[time(10, 0)].can_book


def test_queue_is_projected_onto_free_time(allocator, shop, add_queued, add_appointment):
    add_appointment(shop.sam, appointment_time=time(8, 0), status="scheduled", total_duration=30)
    add_queued(shop.sam, total_duration=30)
    add_queued(shop.sam, total_duration=60)
    slots = grid(allocator, shop.sam, 30)

    assert slots[time(8, 0)].type == SlotType.scheduled
    assert slots[time(8, 30)].type == SlotType.queue
    assert slots[time(8, 30)].queue_position == 1
    assert slots[time(9, 0)].queue_position == 2
    assert slots[time(9, 30)].queue_position == 2
    assert slots[time(10, 0)].can_book


def test_day_off_blocks_every_slot(session, allocator, shop):
    session.add(BarberDayOff(barber_id=shop.sam, start_date=DAY, end_date=DAY, type="sick_leave"))
    session.commit()

    slots = list(allocator.build_slot_grid(shop.sam, DAY, 30))
    assert not any(s.can_book for s in slots)
    assert {s.type for s in slots} == {SlotType.full, SlotType.lunch}


def test_past_slots_today(allocator, shop, clock):
    clock.moment = datetime(2024, 6, 3, 10, 10)
    slots = grid(allocator, shop.sam, 30, clock.today())

    assert slots[time(8, 0)].reason == "Time has passed"
    assert slots[time(10, 0)].reason == "Time has passed"
    assert slots[time(10, 30)].can_book


# booking


def request(shop, **fields):
    fields.setdefault("barber_id", shop.sam)
    fields.setdefault("date", DAY)
    fields.setdefault("customer_id", shop.carol)
    fields.setdefault("services", [shop.haircut])
    return BookingRequest(**fields)


def test_book_open_slot_is_scheduled(allocator, shop, sent):
    result = allocator.book_slot(request(shop, time_slot=time(10, 0), add_ons=[shop.towel]))

    assert result.success
    assert result.booking_type == BookingType.scheduled
    appointment = result.appointment
    assert appointment.status == "scheduled"
    assert appointment.appointment_time == time(10, 0)
    assert appointment.queue_position is None
    assert appointment.total_duration == 45
    assert appointment.total_price == 30.0
    assert [n.type for n in sent] == ["booking_scheduled"]


def test_taken_slot_conflicts(allocator, shop):
    allocator.book_slot(request(shop, time_slot=time(10, 0)))
    with pytest.raises(SlotConflict):
        allocator.book_slot(request(shop, customer_id=shop.dave, time_slot=time(10, 0)))


def test_slot_too_short_falls_back_to_queue(allocator, shop):
    result = allocator.book_slot(
        request(shop, time_slot=time(11, 30), services=[shop.haircut, shop.beard])
    )
    assert result.booking_type == BookingType.queue
    assert result.appointment.appointment_time is None
    assert result.appointment.queue_position == 1
    assert result.appointment.status == "scheduled"


def test_walk_in_goes_to_queue(allocator, shop):
    first = allocator.book_slot(request(shop, walk_in=True, time_slot=time(10, 0)))
    second = allocator.book_slot(request(shop, customer_id=shop.dave, walk_in=True))
    assert first.booking_type == BookingType.queue
    assert first.appointment.appointment_time is None
    assert (first.appointment.queue_position, second.appointment.queue_position) == (1, 2)


def test_urgent_walk_in_jumps_the_queue(allocator, shop, queue_order):
    a = allocator.book_slot(request(shop, customer_id=None, walk_in=True)).appointment
    b = allocator.book_slot(request(shop, customer_id=None, walk_in=True)).appointment
    u = allocator.book_slot(request(shop, customer_id=None, walk_in=True, is_urgent=True)).appointment

    assert u.queue_position == 1
    assert queue_order(shop.sam) == [(u.id, 1), (a.id, 2), (b.id, 3)]


def test_same_customer_cannot_book_twice(allocator, shop):
    allocator.book_slot(request(shop, time_slot=time(10, 0)))
    with pytest.raises(SlotConflict):
        allocator.book_slot(request(shop, time_slot=time(14, 0)))
    with pytest.raises(SlotConflict):
        allocator.book_slot(request(shop, walk_in=True))


def test_queue_capacity(session, clock, channel, shop):
    allocator = SlotAllocator(session, ShopSettings(max_queue_size=2), clock, channel)
    allocator.book_slot(request(shop, customer_id=None, walk_in=True))
    allocator.book_slot(request(shop, customer_id=None, walk_in=True))
    with pytest.raises(QueueFull):
        allocator.book_slot(request(shop, customer_id=None, walk_in=True))
    # scheduled bookings are not limited by the queue
    result = allocator.book_slot(request(shop, customer_id=None, time_slot=time(15, 0)))
    assert result.booking_type == BookingType.scheduled


def test_unavailable_barber_is_rejected(session, allocator, shop):
    session.add(BarberDayOff(barber_id=shop.sam, start_date=DAY, end_date=DAY))
    session.commit()
    with pytest.raises(BarberUnavailable) as excinfo:
        allocator.book_slot(request(shop, time_slot=time(10, 0)))
    assert excinfo.value.verdict.kind == AvailabilityKind.day_off

    with pytest.raises(BarberUnavailable):
        allocator.book_slot(request(shop, barber_id=shop.riley, walk_in=True))


def test_unknown_barber(allocator, shop):
    with pytest.raises(NotFound):
        allocator.book_slot(request(shop, barber_id=9999, walk_in=True))


def test_selection_is_validated(allocator, shop):
    with pytest.raises(ValidationError):
        allocator.book_slot(request(shop, services=[], walk_in=True))
    with pytest.raises(ValidationError):
        allocator.book_slot(request(shop, services=[], total_duration=0, walk_in=True))


def test_explicit_duration_skips_catalog(allocator, shop):
    result = allocator.book_slot(request(shop, services=[], total_duration=50, time_slot=time(9, 0)))
    assert result.appointment.total_duration == 50


def test_without_auto_confirm_bookings_wait_for_the_barber(allocator, shop):
    timed = allocator.book_slot(request(shop, time_slot=time(10, 0), auto_confirm=False)).appointment
    walk_in = allocator.book_slot(
        request(shop, customer_id=shop.dave, walk_in=True, auto_confirm=False)
    ).appointment

    assert timed.status == "pending"
    assert timed.appointment_time == time(10, 0)
    assert walk_in.status == "pending"
    assert walk_in.queue_position is None


def test_pending_request_holds_its_slot(allocator, shop):
    allocator.book_slot(request(shop, time_slot=time(10, 0), auto_confirm=False))
    with pytest.raises(SlotConflict):
        allocator.book_slot(request(shop, customer_id=shop.dave, time_slot=time(10, 0)))


def test_unique_slot_index_rejects_double_booking(session, shop):
    def appointment(status="scheduled"):
        return Appointment(
            barber_id=shop.sam,
            appointment_date=DAY,
            appointment_time=time(10, 0),
            status=status,
        )

    with transaction(session):
        session.add(appointment())
        session.add(appointment(status="cancelled"))

    with pytest.raises(SlotConflict):
        with transaction(session):
            session.add(appointment())
            session.flush()


# alternatives


def test_no_alternatives_when_barber_has_room(allocator, shop):
    assert allocator.find_alternative_barbers(shop.sam, DAY, 30) == []


def test_alternatives_for_unavailable_barber(session, allocator, shop, add_queued):
    session.add(BarberDayOff(barber_id=shop.sam, start_date=DAY, end_date=DAY))
    session.commit()
    add_queued(shop.alex)

    alternatives = allocator.find_alternative_barbers(shop.sam, DAY, 30)

    # riley is offline
    assert [a.barber_id for a in alternatives] == [shop.alex]
    alex = alternatives[0]
    assert alex.barber_name == "Alex"
    assert alex.queue_length == 1
    # the queued walk-in takes 08:00
    assert alex.next_available_slot == time(8, 30)
    assert alex.available_slots == 15
    assert alex.recommendation == "Excellent availability"
    assert alex.score == 15 * 10 + 9 + 0 + 9.5


def test_alternatives_are_ranked_and_limited(session, allocator, shop):
    session.add(BarberDayOff(barber_id=shop.alex, start_date=DAY, end_date=DAY))
    session.commit()

    alternatives = allocator.find_alternative_barbers(shop.alex, DAY, 30, limit=1)
    assert [a.barber_id for a in alternatives] == [shop.sam]
    # 16 open slots, empty queue, rated 4.5, free from opening
    assert alternatives[0].score == 16 * 10 + 10 + 9.0 + 10
