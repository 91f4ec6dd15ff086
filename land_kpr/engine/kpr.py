"""KPR application lifecycle: creation, edits and status transitions."""

import logging
from typing import Any, Mapping

from land_kpr.engine.base import Service, clean, money, new_id, require_text
from land_kpr.exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)
from land_kpr.models import BookingStatus, KprApplication, KprCustomer, KprPrice, KprStatus
from land_kpr.models.codec import encode_kpr, to_int
from land_kpr.store.collections import BOOKINGS, KPR_APPLICATIONS

logger = logging.getLogger(__name__)

# (from, to) pairs a caller may request; ``completed`` is derived by payments.
TRANSITIONS: frozenset[tuple[KprStatus, KprStatus]] = frozenset(
    {
        (KprStatus.DRAFT, KprStatus.SUBMITTED),
        (KprStatus.SUBMITTED, KprStatus.APPROVED),
        (KprStatus.SUBMITTED, KprStatus.REJECTED),
        (KprStatus.DRAFT, KprStatus.CANCELLED),
        (KprStatus.SUBMITTED, KprStatus.CANCELLED),
    }
)

EDITABLE_STATUSES = frozenset({KprStatus.DRAFT, KprStatus.SUBMITTED})

CUSTOMER_FIELDS = ("name", "phone", "email", "nik", "address")
PRICE_FIELDS = (
    "land_price",
    "dp_amount",
    "loan_amount",
    "interest_rate",
    "admin_fee",
    "other_fee",
    "total",
)


def is_allowed(current: KprStatus, target: KprStatus) -> bool:
    return (current, target) in TRANSITIONS


def validate_for_approval(kpr: KprApplication) -> None:
    """Raise ValidationError unless ``kpr`` carries enough data to approve."""
    if not kpr.customer.name.strip():
        raise ValidationError("customer.name is required")
    if kpr.price.loan_amount <= 0:
        raise ValidationError("price.loan_amount must be > 0")
    if kpr.price.tenor_months <= 0:
        raise ValidationError("price.tenor_months must be > 0")


def parse_price(data: Mapping[str, Any], dp_paid: Any) -> KprPrice:
    """Build a full price block from ``data``; missing fields become zero."""
    amounts = {}
    for name in PRICE_FIELDS:
        amount = money(data.get(name), f"price.{name}")
        if amount < 0:
            raise ValidationError(f"price.{name} must be >= 0")
        amounts[name] = amount
    try:
        tenor = to_int(data.get("tenor_months"))
    except (TypeError, ValueError):
        raise ValidationError("price.tenor_months must be a whole number") from None
    if tenor < 0:
        raise ValidationError("price.tenor_months must be >= 0")
    return KprPrice(tenor_months=tenor, dp_paid=dp_paid, **amounts)


def kpr_view(kpr: KprApplication, is_admin: bool = False) -> dict[str, Any]:
    """JSON-ready KPR. Guests get no NIK, address or price."""
    view = encode_kpr(kpr)
    if not is_admin:
        view["customer"] = {key: view["customer"][key] for key in ("name", "phone", "email")}
        view.pop("price", None)
    return view


class KprService(Service):
    """Financing application lifecycle.

    Transitions: draft -> submitted -> approved | rejected, and
    draft | submitted -> cancelled. Every transition re-reads the stored
    status under the KPR collection lock.
    """

    def create_kpr(self, booking_id: str, notes: str = "") -> KprApplication:
        """Open a draft KPR for a confirmed booking.

        Raises
        ------
        EntityNotFoundError
            If the booking does not exist.
        InvalidStateTransitionError
            If the booking is not confirmed.
        DuplicateEntityError
            If a non-cancelled KPR already exists for the booking.
        """
        booking_id = require_text(booking_id, "booking_id is required")
        with self.store.write_set(BOOKINGS, KPR_APPLICATIONS) as ws:
            booking = ws.entity(BOOKINGS, booking_id)
            if booking is None:
                raise EntityNotFoundError("booking not found")
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidStateTransitionError("booking not confirmed")

            for record in ws.records(KPR_APPLICATIONS).values():
                if not isinstance(record, dict) or clean(record.get("booking_id")) != booking_id:
                    continue
                if clean(record.get("status")) != KprStatus.CANCELLED.value:
                    raise DuplicateEntityError("kpr already exists for booking")

            now = self.now()
            kpr = KprApplication(
                kpr_id=new_id("kpr", now),
                booking_id=booking_id,
                site_id=booking.site_id,
                subsite_id=booking.subsite_id,
                zone_id=booking.zone_id,
                status=KprStatus.DRAFT,
                customer=KprCustomer(),
                price=KprPrice(),
                notes=clean(notes),
                created_at=now,
                updated_at=now,
            )
            ws.put(KPR_APPLICATIONS, kpr)
            ws.commit(now)

        logger.info("Created KPR %s for booking %s", kpr.kpr_id, booking_id)
        return kpr

    def update_kpr(
        self,
        kpr_id: str,
        notes: str | None = None,
        customer: Mapping[str, Any] | None = None,
        price: Mapping[str, Any] | None = None,
    ) -> KprApplication:
        """Edit a draft or submitted KPR.

        Non-empty customer fields replace the stored ones. A price block
        replaces every price field except ``dp_paid``.
        """
        kpr_id = require_text(kpr_id, "invalid id")
        with self.store.write_set(KPR_APPLICATIONS) as ws:
            kpr = ws.entity(KPR_APPLICATIONS, kpr_id)
            if kpr is None:
                raise EntityNotFoundError("kpr not found")
            if kpr.status not in EDITABLE_STATUSES:
                raise InvalidStateTransitionError("updates allowed only for draft/submitted")

            if clean(notes):
                kpr.notes = clean(notes)
            if customer is not None:
                for name in CUSTOMER_FIELDS:
                    value = clean(customer.get(name))
                    if value:
                        setattr(kpr.customer, name, value)
            if price is not None:
                kpr.price = parse_price(price, dp_paid=kpr.price.dp_paid)

            now = self.now()
            kpr.updated_at = now
            ws.put(KPR_APPLICATIONS, kpr)
            ws.commit(now)
        return kpr

    def request_transition(self, kpr_id: str, to_status: str | KprStatus) -> KprApplication:
        """Move a KPR to ``to_status`` if the transition table allows it."""
        kpr_id = require_text(kpr_id, "invalid id")
        try:
            target = KprStatus(to_status)
        except ValueError:
            raise ValidationError("invalid status") from None

        with self.store.write_set(KPR_APPLICATIONS) as ws:
            kpr = ws.entity(KPR_APPLICATIONS, kpr_id)
            if kpr is None:
                raise EntityNotFoundError("kpr not found")
            if not is_allowed(kpr.status, target):
                if target == KprStatus.CANCELLED:
                    raise InvalidStateTransitionError("cancel allowed only for draft/submitted")
                raise InvalidStateTransitionError("invalid status transition")
            if target == KprStatus.APPROVED:
                validate_for_approval(kpr)

            previous = kpr.status
            now = self.now()
            kpr.status = target
            kpr.updated_at = now
            if target == KprStatus.APPROVED:
                kpr.approved_at = now
            ws.put(KPR_APPLICATIONS, kpr)
            ws.commit(now)

        logger.info("KPR %s moved %s -> %s", kpr_id, previous.value, target.value)
        return kpr

    def submit(self, kpr_id: str) -> KprApplication:
        return self.request_transition(kpr_id, KprStatus.SUBMITTED)

    def approve(self, kpr_id: str) -> KprApplication:
        return self.request_transition(kpr_id, KprStatus.APPROVED)

    def reject(self, kpr_id: str) -> KprApplication:
        return self.request_transition(kpr_id, KprStatus.REJECTED)

    def cancel(self, kpr_id: str) -> KprApplication:
        return self.request_transition(kpr_id, KprStatus.CANCELLED)

    def get_kpr(self, kpr_id: str) -> KprApplication:
        kpr = self.store.get_entities(KPR_APPLICATIONS).get(clean(kpr_id))
        if kpr is None:
            raise EntityNotFoundError("kpr not found")
        return kpr

    def get_kpr_by_booking(self, booking_id: str, is_admin: bool = False) -> dict[str, Any]:
        """Guest-safe view of the KPR for ``booking_id``.

        The active (non-cancelled) application wins; otherwise the most
        recently created one is returned.
        """
        booking_id = require_text(booking_id, "booking_id is required")
        candidates = [
            k
            for k in self.store.get_entities(KPR_APPLICATIONS).values()
            if k.booking_id == booking_id
        ]
        if not candidates:
            raise EntityNotFoundError("kpr not found")
        candidates.sort(
            key=lambda k: (
                k.status != KprStatus.CANCELLED,
                k.created_at.timestamp() if k.created_at else 0,
                k.kpr_id,
            )
        )
        return kpr_view(candidates[-1], is_admin)
