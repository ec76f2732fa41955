# barberqueue/core.py

from datetime import date, datetime, time, timedelta
from typing import Iterator


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """True if [a_start, a_end) overlaps [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def slot_times(open_time: time, close_time: time, slot_minutes: int) -> Iterator[time]:
    current = to_minutes(open_time)
    end = to_minutes(close_time)
    while current < end:
        yield from_minutes(current)
        current += slot_minutes


def round_up_to_slot(t: time, open_time: time, slot_minutes: int) -> int:
    """Minutes of the first grid slot at or after t."""
    start = to_minutes(open_time)
    minutes = to_minutes(t)
    if minutes <= start:
        return start
    steps = -(-(minutes - start) // slot_minutes)
    return start + steps * slot_minutes


def date_range(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def format_12h(t: time) -> str:
    return datetime.combine(date.min, t).strftime("%I:%M %p").lstrip("0")
