# barberqueue/routers/barbers_routes.py

from datetime import date, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from barberqueue.auth import get_current_user
from barberqueue.availability import AvailabilityResolver
from barberqueue.dayoff import DayOffManager
from barberqueue.deps import get_allocator, get_day_offs, get_queue, get_resolver, require_role
from barberqueue.duration import total_duration
from barberqueue.queue import QueuePositionManager
from barberqueue.schemas import (
    AlternativeBarber,
    AvailabilityVerdict,
    AvailableDatesResponse,
    DayOffCreate,
    DayOffPublic,
    DayOffResult,
    QueueStatus,
    SlotGridResponse,
)
from barberqueue.slots import SlotAllocator

router = APIRouter(
    prefix="/barbers",
    tags=["barbers"],
)


@router.post("/me/day-offs", response_model=DayOffResult, status_code=201)
def declare_day_off(
    day_off: DayOffCreate,
    manager: DayOffManager = Depends(get_day_offs),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber")
    return manager.declare_unavailable(
        current_user["id"],
        day_off.start_date,
        day_off.end_date,
        day_off.type.value,
        day_off.reason,
    )


@router.get("/me/day-offs", response_model=List[DayOffPublic])
def my_day_offs(
    include_inactive: bool = False,
    manager: DayOffManager = Depends(get_day_offs),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber")
    windows = manager.list_day_offs(current_user["id"], include_inactive=include_inactive)
    return [DayOffPublic.model_validate(w) for w in windows]


@router.patch("/me/day-offs/{day_off_id}/revoke", response_model=DayOffPublic)
def revoke_day_off(
    day_off_id: int,
    manager: DayOffManager = Depends(get_day_offs),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber")
    owned = [w.id for w in manager.list_day_offs(current_user["id"], include_inactive=True)]
    if day_off_id not in owned:
        raise HTTPException(status_code=404, detail="Day-off not found")
    return manager.revoke(day_off_id)


@router.get("/{barber_id}/availability", response_model=AvailabilityVerdict)
def barber_availability(
    barber_id: int,
    date: date,
    time: Optional[time] = None,
    resolver: AvailabilityResolver = Depends(get_resolver),
):
    return resolver.resolve(barber_id, date, time)


@router.get("/{barber_id}/slots", response_model=SlotGridResponse)
def barber_slots(
    barber_id: int,
    date: date,
    duration: Optional[int] = Query(default=None, gt=0),
    services: List[int] = Query(default=[]),
    add_ons: List[int] = Query(default=[]),
    allocator: SlotAllocator = Depends(get_allocator),
):
    if duration is None:
        duration = total_duration(services, add_ons, allocator.catalog, allocator.settings)

    return {
        "barber_id": barber_id,
        "date": date,
        "total_duration": duration,
        "slots": list(allocator.build_slot_grid(barber_id, date, duration)),
    }


@router.get("/{barber_id}/alternatives", response_model=List[AlternativeBarber])
def barber_alternatives(
    barber_id: int,
    date: date,
    duration: int = Query(default=30, gt=0),
    limit: Optional[int] = Query(default=None, ge=1),
    allocator: SlotAllocator = Depends(get_allocator),
):
    return allocator.find_alternative_barbers(barber_id, date, duration, limit)


@router.get("/{barber_id}/queue", response_model=QueueStatus)
def barber_queue(
    barber_id: int,
    date: date,
    queue: QueuePositionManager = Depends(get_queue),
):
    return queue.status(barber_id, date)


@router.get("/{barber_id}/available-dates", response_model=AvailableDatesResponse)
def barber_available_dates(
    barber_id: int,
    start: date,
    end: date,
    manager: DayOffManager = Depends(get_day_offs),
):
    return {
        "barber_id": barber_id,
        "start_date": start,
        "end_date": end,
        "available_dates": manager.available_dates(barber_id, start, end),
    }
