# barberqueue/clock.py

from datetime import date, datetime, timedelta


class SystemClock:
    """Naive shop-local wall-clock time, the frame the business hours are given in."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


class FixedClock(SystemClock):
    """Clock pinned to a given moment; advance() moves it forward."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, minutes: int = 0, days: int = 0):
        self.moment = self.moment + timedelta(minutes=minutes, days=days)
