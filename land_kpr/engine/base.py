"""Shared helpers for domain services."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from land_kpr.exceptions import ValidationError
from land_kpr.models import codec
from land_kpr.store.entity_store import WritableStore, utc_now

Clock = Callable[[], datetime]

# Payments compare against remaining balances with this slack.
MONEY_TOLERANCE = Decimal("0.000001")


def new_id(prefix: str, now: datetime) -> str:
    """Generate an identifier like ``bk_20260105T101500_1f2e3d4c5b6a``."""
    return f"{prefix}_{now.strftime('%Y%m%dT%H%M%S')}_{uuid.uuid4().hex[:12]}"


def clean(value: Any) -> str:
    """Strip strings; anything else becomes ``""``."""
    return value.strip() if isinstance(value, str) else ""


def require_text(value: Any, message: str) -> str:
    value = clean(value)
    if not value:
        raise ValidationError(message)
    return value


def require_date(value: Any, message: str) -> date:
    try:
        return codec.parse_date(value)
    except ValueError:
        raise ValidationError(message) from None


def money(value: Any, field: str) -> Decimal:
    """Convert an input amount to Decimal, raising ValidationError when invalid."""
    try:
        return codec.to_decimal(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number") from None


class Service:
    """Base for services writing through a ``WritableStore``.

    Parameters
    ----------
    store : WritableStore
        Store the service reads and writes.
    clock : Clock | None
        Returns the current UTC time; injectable for tests.
    """

    def __init__(self, store: WritableStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = clock or utc_now

    def now(self) -> datetime:
        return self.clock().replace(microsecond=0)

    def today(self) -> date:
        return self.clock().date()
