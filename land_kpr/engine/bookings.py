"""Zone bookings: validation, overlap detection and status flow."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from land_kpr.engine.base import Service, clean, money, new_id, require_date, require_text
from land_kpr.exceptions import (
    BookingOverlapError,
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    ReferentialIntegrityError,
    ValidationError,
)
from land_kpr.models import Booking, BookingStatus
from land_kpr.models.codec import encode_booking
from land_kpr.store.collections import BOOKINGS, SITES, SUBSITES, ZONES

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}

# Guests never see contact details
GUEST_HIDDEN_FIELDS = ("customer_phone", "customer_email")


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    """Same-state moves are allowed; otherwise consult the transition table."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive range intersection."""
    return a_start <= b_end and a_end >= b_start


def find_overlaps(
    bookings: Any, zone_id: str, start: date, end: date, ignore_id: str | None = None
) -> list[Booking]:
    """Non-cancelled bookings of ``zone_id`` intersecting ``[start, end]``."""
    return sorted(
        (
            b
            for b in bookings
            if b.booking_id != ignore_id
            and b.zone_id == zone_id
            and b.status != BookingStatus.CANCELLED
            and b.overlaps(start, end)
        ),
        key=lambda b: (b.start_date, b.booking_id),
    )


def parse_range(start: Any, end: Any) -> tuple[date, date]:
    start_date = require_date(start, "invalid start_date (YYYY-MM-DD)")
    end_date = require_date(end, "invalid end_date (YYYY-MM-DD)")
    if end_date < start_date:
        raise ValidationError("end_date must be >= start_date")
    return start_date, end_date


def parse_status(value: Any, default: BookingStatus) -> BookingStatus:
    value = clean(value)
    if not value:
        return default
    try:
        return BookingStatus(value)
    except ValueError:
        raise ValidationError("invalid status") from None


def booking_view(booking: Booking, is_admin: bool = False) -> dict[str, Any]:
    """JSON-ready booking, with contact details only for admins."""
    view = encode_booking(booking)
    if not is_admin:
        for key in GUEST_HIDDEN_FIELDS:
            view.pop(key, None)
    return view


@dataclass
class Availability:
    """Result of an availability query for one zone and date range."""

    zone_id: str
    start_date: date
    end_date: date
    available: bool
    conflicts: list[Booking] = field(default_factory=list)


class BookingService(Service):
    """Create, update and cancel zone bookings.

    Non-cancelled bookings of one zone never overlap (inclusive bounds).
    Status moves pending -> confirmed -> cancelled or pending -> cancelled.
    """

    def _validate_chain(self, ws, site_id: str, subsite_id: str, zone_id: str) -> None:
        zone = ws.entity(ZONES, zone_id)
        if zone is None:
            raise ReferentialIntegrityError("zone_id not found")
        if zone.subsite_id != subsite_id:
            raise ReferentialIntegrityError("zone_id does not belong to subsite_id")
        subsite = ws.entity(SUBSITES, subsite_id)
        if subsite is None:
            raise ReferentialIntegrityError("subsite_id not found")
        if subsite.site_id != site_id:
            raise ReferentialIntegrityError("subsite_id does not belong to site_id")
        if site_id not in ws.collection(SITES):
            raise ReferentialIntegrityError("site_id not found")

    def _check_overlap(
        self, ws, zone_id: str, start: date, end: date, ignore_id: str | None
    ) -> None:
        conflicts = find_overlaps(ws.entities(BOOKINGS).values(), zone_id, start, end, ignore_id)
        if conflicts:
            logger.info(
                "Booking overlap in zone %s for %s..%s with %s",
                zone_id,
                start,
                end,
                conflicts[0].booking_id,
            )
            raise BookingOverlapError("date range overlaps existing booking")

    def create_booking(
        self,
        site_id: str,
        subsite_id: str,
        zone_id: str,
        customer_name: str,
        start_date: str,
        end_date: str,
        status: str | None = None,
        customer_phone: str = "",
        customer_email: str = "",
        price: Any = 0,
        notes: str = "",
        booking_id: str | None = None,
    ) -> Booking:
        """Create a booking after validating input, containment and overlap.

        Raises
        ------
        ValidationError
            Missing ids or customer name, bad dates or status.
        ReferentialIntegrityError
            Broken site -> subsite -> zone chain.
        BookingOverlapError
            Range intersects another non-cancelled booking of the zone.
        """
        site_id, subsite_id, zone_id = clean(site_id), clean(subsite_id), clean(zone_id)
        if not (site_id and subsite_id and zone_id):
            raise ValidationError("site_id, subsite_id, zone_id are required")
        customer_name = require_text(customer_name, "customer_name is required")
        if not clean(start_date) or not clean(end_date):
            raise ValidationError("start_date and end_date are required")
        start, end = parse_range(start_date, end_date)
        booking_status = parse_status(status, BookingStatus.PENDING)
        amount = money(price, "price")

        with self.store.write_set(SITES, SUBSITES, ZONES, BOOKINGS) as ws:
            self._validate_chain(ws, site_id, subsite_id, zone_id)
            now = self.now()
            booking_id = clean(booking_id) or new_id("booking", now)
            if booking_id in ws.collection(BOOKINGS):
                raise DuplicateEntityError("id already exists")
            if booking_status != BookingStatus.CANCELLED:
                self._check_overlap(ws, zone_id, start, end, None)

            booking = Booking(
                booking_id=booking_id,
                site_id=site_id,
                subsite_id=subsite_id,
                zone_id=zone_id,
                customer_name=customer_name,
                customer_phone=clean(customer_phone),
                customer_email=clean(customer_email),
                status=booking_status,
                start_date=start,
                end_date=end,
                price=amount,
                notes=clean(notes),
                created_at=now,
                updated_at=now,
            )
            ws.put(BOOKINGS, booking)
            ws.commit(now)

        logger.info("Created booking %s for zone %s (%s..%s)", booking_id, zone_id, start, end)
        return booking

    def update_booking(
        self,
        booking_id: str,
        site_id: str | None = None,
        subsite_id: str | None = None,
        zone_id: str | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        customer_email: str | None = None,
        status: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        price: Any = None,
        notes: str | None = None,
    ) -> Booking:
        """Update a booking. Empty fields keep their current value.

        A zero ``price`` keeps the current price. The overlap check is
        repeated unless the new status is cancelled.
        """
        booking_id = require_text(booking_id, "invalid id")
        with self.store.write_set(SITES, SUBSITES, ZONES, BOOKINGS) as ws:
            current = ws.entity(BOOKINGS, booking_id)
            if current is None:
                raise EntityNotFoundError("booking not found")
            if current.status == BookingStatus.CANCELLED:
                raise InvalidStateTransitionError("cannot update cancelled booking")

            new_site = clean(site_id) or current.site_id
            new_subsite = clean(subsite_id) or current.subsite_id
            new_zone = clean(zone_id) or current.zone_id
            start, end = parse_range(
                clean(start_date) or current.start_date,
                clean(end_date) or current.end_date,
            )
            self._validate_chain(ws, new_site, new_subsite, new_zone)

            new_status = parse_status(status, current.status)
            if not can_transition(current.status, new_status):
                raise InvalidStateTransitionError("invalid status transition")
            if new_status != BookingStatus.CANCELLED:
                self._check_overlap(ws, new_zone, start, end, booking_id)

            current.site_id = new_site
            current.subsite_id = new_subsite
            current.zone_id = new_zone
            current.start_date = start
            current.end_date = end
            current.status = new_status
            if clean(customer_name):
                current.customer_name = clean(customer_name)
            if clean(customer_phone):
                current.customer_phone = clean(customer_phone)
            if clean(customer_email):
                current.customer_email = clean(customer_email)
            if clean(notes):
                current.notes = clean(notes)
            if price is not None:
                amount = money(price, "price")
                if amount != 0:
                    current.price = amount

            now = self.now()
            current.updated_at = now
            ws.put(BOOKINGS, current)
            ws.commit(now)

        logger.info("Updated booking %s (status %s)", booking_id, current.status.value)
        return current

    def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a booking; cancelling twice is a no-op success."""
        booking_id = require_text(booking_id, "invalid id")
        with self.store.write_set(BOOKINGS) as ws:
            booking = ws.entity(BOOKINGS, booking_id)
            if booking is None:
                raise EntityNotFoundError("booking not found")
            if booking.status == BookingStatus.CANCELLED:
                return booking
            now = self.now()
            booking.status = BookingStatus.CANCELLED
            booking.updated_at = now
            ws.put(BOOKINGS, booking)
            ws.commit(now)
        logger.info("Cancelled booking %s", booking_id)
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.store.get_entities(BOOKINGS).get(clean(booking_id))
        if booking is None:
            raise EntityNotFoundError("booking not found")
        return booking

    def availability(self, zone_id: str, start_date: str, end_date: str) -> Availability:
        """Check whether ``zone_id`` is free for the inclusive date range."""
        zone_id = clean(zone_id)
        if not zone_id or not clean(start_date) or not clean(end_date):
            raise ValidationError("zone_id, from, to are required")
        start = require_date(start_date, "invalid from date (YYYY-MM-DD)")
        end = require_date(end_date, "invalid to date (YYYY-MM-DD)")
        if end < start:
            raise ValidationError("to must be >= from")

        conflicts = find_overlaps(self.store.get_entities(BOOKINGS).values(), zone_id, start, end)
        return Availability(
            zone_id=zone_id,
            start_date=start,
            end_date=end,
            available=not conflicts,
            conflicts=conflicts,
        )

    def list_bookings(self, zone_id: str, is_admin: bool = False) -> list[dict[str, Any]]:
        """Bookings of ``zone_id`` ordered by start date; contacts are admin-only."""
        zone_id = require_text(zone_id, "zone_id is required")
        bookings = [b for b in self.store.get_entities(BOOKINGS).values() if b.zone_id == zone_id]
        bookings.sort(key=lambda b: (b.start_date, b.booking_id))
        return [booking_view(b, is_admin) for b in bookings]
