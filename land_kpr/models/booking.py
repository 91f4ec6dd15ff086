"""Booking model for zone reservations."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from land_kpr.models.enums import BookingStatus


@dataclass
class Booking:
    """Reservation of a zone for an inclusive date range."""

    booking_id: str
    site_id: str
    subsite_id: str
    zone_id: str
    customer_name: str
    status: BookingStatus
    start_date: date
    end_date: date
    customer_phone: str = ""
    customer_email: str = ""
    price: Decimal = Decimal("0")
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def overlaps(self, start: date, end: date) -> bool:
        """Return True if ``[start, end]`` intersects this booking (inclusive)."""
        return start <= self.end_date and end >= self.start_date
