# barberqueue/duration.py

from typing import Iterable, Optional, Protocol, Sequence

from sqlmodel import Session

from .config import ShopSettings, shop_settings
from .errors import ValidationError
from .models import AddOn, Service


class CatalogEntry(Protocol):
    duration: int
    price: float


class Catalog(Protocol):
    def service(self, service_id: int) -> Optional[CatalogEntry]: ...

    def add_on(self, add_on_id: int) -> Optional[CatalogEntry]: ...


class DatabaseCatalog:
    """Catalog lookups against the Service and AddOn tables (active rows only)."""

    def __init__(self, session: Session):
        self.session = session

    def service(self, service_id: int) -> Optional[Service]:
        entry = self.session.get(Service, service_id)
        if entry is None or not entry.is_active:
            return None
        return entry

    def add_on(self, add_on_id: int) -> Optional[AddOn]:
        entry = self.session.get(AddOn, add_on_id)
        if entry is None or not entry.is_active:
            return None
        return entry


def total_duration(
    service_ids: Iterable[int],
    add_on_ids: Iterable[int],
    catalog: Catalog,
    settings: ShopSettings = shop_settings,
) -> int:
    total = 0
    for service_id in service_ids:
        entry = catalog.service(service_id)
        total += entry.duration if entry is not None else settings.default_service_minutes
    for add_on_id in add_on_ids:
        entry = catalog.add_on(add_on_id)
        total += entry.duration if entry is not None else settings.default_addon_minutes

    if total == 0:
        return settings.default_total_minutes
    return total


def total_price(service_ids: Iterable[int], add_on_ids: Iterable[int], catalog: Catalog) -> float:
    total = 0.0
    for service_id in service_ids:
        entry = catalog.service(service_id)
        if entry is not None:
            total += entry.price
    for add_on_id in add_on_ids:
        entry = catalog.add_on(add_on_id)
        if entry is not None:
            total += entry.price
    return round(total, 2)


def validate_selection(
    service_ids: Sequence[int],
    add_on_ids: Sequence[int],
    settings: ShopSettings = shop_settings,
):
    if len(service_ids) < settings.min_services:
        raise ValidationError("Please select at least one service")
    if len(service_ids) > settings.max_services:
        raise ValidationError(f"Cannot select more than {settings.max_services} services")
    if len(add_on_ids) > settings.max_addons:
        raise ValidationError(f"Cannot select more than {settings.max_addons} add-ons")
