# barberqueue/routers/appointments_routes.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from barberqueue.auth import get_current_user
from barberqueue.db import get_session
from barberqueue.deps import get_allocator, get_lifecycle, get_queue, require_role
from barberqueue.lifecycle import AppointmentLifecycle
from barberqueue.models import Appointment
from barberqueue.queue import QueuePositionManager
from barberqueue.schemas import (
    AppointmentPublic,
    BookingRequest,
    BookingResult,
    CancelRequest,
    ClientBookingCreate,
    QueueMove,
    QueuePositionInfo,
)
from barberqueue.slots import SlotAllocator

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
)


def _load_for(session: Session, appointment_id: int, current_user: dict) -> Appointment:
    """Fetch an appointment the caller is allowed to act on."""
    appointment = session.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")

    role = current_user["role"]
    if role == "manager":
        return appointment
    if role == "barber" and appointment.barber_id == current_user["id"]:
        return appointment
    if role == "client" and appointment.customer_id == current_user["id"]:
        return appointment
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("", response_model=BookingResult, status_code=201)
def book_appointment(
    booking: ClientBookingCreate,
    allocator: SlotAllocator = Depends(get_allocator),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "client")

    request = BookingRequest(
        barber_id=booking.barber_id,
        date=booking.date,
        time_slot=booking.time_slot,
        customer_id=current_user["id"],
        services=booking.services,
        add_ons=booking.add_ons,
        is_urgent=booking.is_urgent,
        walk_in=booking.walk_in,
        notes=booking.notes,
    )
    return allocator.book_slot(request)


@router.patch("/{appointment_id}/accept", response_model=AppointmentPublic)
def accept_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber", "manager")
    _load_for(session, appointment_id, current_user)
    return lifecycle.accept(appointment_id)


@router.patch("/{appointment_id}/decline", response_model=AppointmentPublic)
def decline_appointment(
    appointment_id: int,
    body: Optional[CancelRequest] = None,
    session: Session = Depends(get_session),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber", "manager")
    _load_for(session, appointment_id, current_user)
    if body is None:
        return lifecycle.decline(appointment_id)
    return lifecycle.decline(appointment_id, body.reason)


@router.patch("/{appointment_id}/start", response_model=AppointmentPublic)
def start_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber", "manager")
    _load_for(session, appointment_id, current_user)
    return lifecycle.start(appointment_id)


@router.patch("/{appointment_id}/complete", response_model=AppointmentPublic)
def complete_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber", "manager")
    _load_for(session, appointment_id, current_user)
    return lifecycle.complete(appointment_id)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentPublic)
def cancel_appointment(
    appointment_id: int,
    body: Optional[CancelRequest] = None,
    session: Session = Depends(get_session),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: dict = Depends(get_current_user),
):
    _load_for(session, appointment_id, current_user)
    reason = body.reason if body is not None else f"Cancelled by {current_user['role']}"
    return lifecycle.cancel(appointment_id, reason)


@router.get("/{appointment_id}/queue-position", response_model=QueuePositionInfo)
def appointment_queue_position(
    appointment_id: int,
    session: Session = Depends(get_session),
    queue: QueuePositionManager = Depends(get_queue),
    current_user: dict = Depends(get_current_user),
):
    _load_for(session, appointment_id, current_user)
    return queue.position_of(appointment_id)


@router.patch("/{appointment_id}/queue-position", response_model=QueuePositionInfo)
def move_in_queue(
    appointment_id: int,
    move: QueueMove,
    session: Session = Depends(get_session),
    queue: QueuePositionManager = Depends(get_queue),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber", "manager")
    _load_for(session, appointment_id, current_user)
    queue.move(appointment_id, move.new_position)
    return queue.position_of(appointment_id)
