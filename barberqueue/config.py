# barberqueue/config.py

import os
from datetime import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

ENV_PREFIX = "BARBERQUEUE_"


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


class ShopSettings(BaseModel):
    database_url: str = "sqlite:///./barberqueue.db"

    # Business hours (inclusive open, exclusive close)
    open_time: time = time(8, 0)
    close_time: time = time(17, 0)
    lunch_start: Optional[time] = time(12, 0)
    lunch_end: Optional[time] = time(13, 0)
    slot_minutes: int = 30

    # Duration fallbacks
    default_service_minutes: int = 30
    default_addon_minutes: int = 15
    default_total_minutes: int = 30
    # length assumed for the requested slot in capacity checks
    capacity_check_minutes: int = 30

    # Queue
    max_queue_size: int = 15
    average_service_minutes: int = 35

    # Selection limits
    min_services: int = 1
    max_services: int = 5
    max_addons: int = 8

    # Alternative barber search
    max_alternatives: int = 5

    # Longest day-off window or date range, in days
    max_day_off_days: int = 366

    secret_key: str = "change-me-later"
    token_algorithm: str = "HS256"

    @model_validator(mode="after")
    def check_hours(self):
        if self.open_time >= self.close_time:
            raise ValueError("open_time must be before close_time")
        if (self.lunch_start is None) != (self.lunch_end is None):
            raise ValueError("lunch_start and lunch_end must be set together")
        if self.lunch_start is not None and self.lunch_start >= self.lunch_end:
            raise ValueError("lunch_start must be before lunch_end")
        if self.slot_minutes <= 0 or 60 % self.slot_minutes != 0:
            raise ValueError("slot_minutes must divide an hour")
        if self.max_day_off_days < 1:
            raise ValueError("max_day_off_days must be at least 1")
        return self

    @classmethod
    def from_env(cls) -> "ShopSettings":
        lunch_start = _env("LUNCH_START", "12:00")
        lunch_end = _env("LUNCH_END", "13:00")
        return cls(
            database_url=_env("DATABASE_URL", "sqlite:///./barberqueue.db"),
            open_time=time.fromisoformat(_env("OPEN_TIME", "08:00")),
            close_time=time.fromisoformat(_env("CLOSE_TIME", "17:00")),
            # an empty value disables the lunch window
            lunch_start=time.fromisoformat(lunch_start) if lunch_start else None,
            lunch_end=time.fromisoformat(lunch_end) if lunch_end else None,
            slot_minutes=int(_env("SLOT_MINUTES", "30")),
            default_service_minutes=int(_env("DEFAULT_SERVICE_MINUTES", "30")),
            default_addon_minutes=int(_env("DEFAULT_ADDON_MINUTES", "15")),
            default_total_minutes=int(_env("DEFAULT_TOTAL_MINUTES", "30")),
            capacity_check_minutes=int(_env("CAPACITY_CHECK_MINUTES", "30")),
            max_queue_size=int(_env("MAX_QUEUE_SIZE", "15")),
            average_service_minutes=int(_env("AVERAGE_SERVICE_MINUTES", "35")),
            max_services=int(_env("MAX_SERVICES", "5")),
            max_addons=int(_env("MAX_ADDONS", "8")),
            max_day_off_days=int(_env("MAX_DAY_OFF_DAYS", "366")),
            secret_key=_env("SECRET_KEY", "change-me-later"),
        )


shop_settings = ShopSettings.from_env()
