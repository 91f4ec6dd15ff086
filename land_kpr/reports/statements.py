"""KPR statements, zone summaries and the portfolio overview.

Reports read the current snapshot only; they never take write locks.
"""

from collections import Counter
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from land_kpr.config import PenaltyPolicy
from land_kpr.engine.base import MONEY_TOLERANCE, require_date, require_text
from land_kpr.engine.installments import find_plan
from land_kpr.engine.payments import sort_payments
from land_kpr.engine.penalties import overdue_lines
from land_kpr.exceptions import EntityNotFoundError
from land_kpr.models import BookingStatus, InstallmentPlan, KprApplication, Payment, PaymentType
from land_kpr.models.codec import encode_line, serialize_value
from land_kpr.store.collections import (
    BOOKINGS,
    INSTALLMENT_PLANS,
    KPR_APPLICATIONS,
    PAYMENTS,
    SITES,
    SUBSITES,
    ZONES,
)
from land_kpr.store.entity_store import ReadableStore, utc_now

ZERO = Decimal("0")


def principal_paid(plan: InstallmentPlan | None) -> Decimal:
    if plan is None:
        return ZERO
    return sum((line.paid_amount for line in plan.schedule), ZERO)


def principal_outstanding(kpr: KprApplication, plan: InstallmentPlan | None) -> Decimal:
    """Loan amount not yet covered by installment payments (never negative)."""
    return max(kpr.price.loan_amount - principal_paid(plan), ZERO)


def payment_view(payment: Payment, is_admin: bool) -> dict[str, Any]:
    view = {
        "id": payment.payment_id,
        "type": payment.payment_type,
        "installment_no": payment.installment_no,
        "amount": payment.amount,
        "paid_at": payment.paid_at,
        "method": payment.method,
        "notes": payment.notes,
    }
    if payment.bucket:
        view["bucket"] = payment.bucket
    if is_admin and payment.reference:
        view["reference"] = payment.reference
    return view


def _id_name(entity: Any, id_attr: str) -> dict[str, str]:
    if entity is None:
        return {"id": "", "name": ""}
    return {"id": getattr(entity, id_attr), "name": entity.name}


class ReportService:
    """Aggregations over a ``ReadableStore``.

    Parameters
    ----------
    store : ReadableStore
        Source of the current snapshot.
    policy : PenaltyPolicy | None
        Penalty constants used for late-fee figures.
    clock : Callable[[], datetime] | None
        Returns the current UTC time.
    """

    def __init__(
        self,
        store: ReadableStore,
        policy: PenaltyPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or PenaltyPolicy()
        self.clock = clock or utc_now

    def _as_of(self, as_of: Any) -> date:
        if as_of is None or (isinstance(as_of, str) and not as_of.strip()):
            return self.clock().astimezone(timezone.utc).date()
        return require_date(as_of, "invalid as_of (use YYYY-MM-DD)")

    def kpr_statement(
        self, kpr_id: str, as_of: str | date | None = None, is_admin: bool = False
    ) -> dict[str, Any]:
        """Full statement of one KPR: terms, progress, overdue lines and payments.

        NIK, address and payment references are included only for admins.
        """
        kpr_id = require_text(kpr_id, "kpr_id is required")
        as_of_date = self._as_of(as_of)

        kpr = self.store.get_entities(KPR_APPLICATIONS).get(kpr_id)
        if kpr is None:
            raise EntityNotFoundError("kpr not found")
        plan = find_plan(self.store.get_entities(INSTALLMENT_PLANS), kpr_id)
        if plan is None:
            raise EntityNotFoundError("installment plan not found for kpr")

        payments = sort_payments(
            [p for p in self.store.get_entities(PAYMENTS).values() if p.kpr_id == kpr_id]
        )
        booking = self.store.get_entities(BOOKINGS).get(kpr.booking_id)
        site = self.store.get_entities(SITES).get(kpr.site_id)
        subsite = self.store.get_entities(SUBSITES).get(kpr.subsite_id)
        zone = self.store.get_entities(ZONES).get(kpr.zone_id)

        customer = {
            "name": kpr.customer.name,
            "phone": kpr.customer.phone,
            "email": kpr.customer.email,
        }
        if is_admin:
            if kpr.customer.nik:
                customer["nik"] = kpr.customer.nik
            if kpr.customer.address:
                customer["address"] = kpr.customer.address

        monthly = plan.monthly_amount
        if monthly <= 0 and kpr.price.tenor_months > 0:
            monthly = kpr.price.loan_amount / kpr.price.tenor_months

        overdue = overdue_lines(plan, as_of_date, self.policy)
        paid_lines = sum(1 for line in plan.schedule if abs(line.remaining) < MONEY_TOLERANCE)
        late_fees_charged = sum(
            (p.amount for p in payments if p.payment_type == PaymentType.PENALTY), ZERO
        )

        statement = {
            "kpr_id": kpr.kpr_id,
            "booking_id": kpr.booking_id,
            "customer": customer,
            "site": _id_name(site, "site_id"),
            "subsite": _id_name(subsite, "subsite_id"),
            "zone": _id_name(zone, "zone_id"),
            "booking": None,
            "price": {
                "land_price": kpr.price.land_price,
                "dp_amount": kpr.price.dp_amount,
                "dp_paid": kpr.price.dp_paid,
                "loan_amount": kpr.price.loan_amount,
                "tenor_months": kpr.price.tenor_months,
                "monthly_amount": monthly,
            },
            "progress": {
                "dp_remaining": max(kpr.price.dp_amount - kpr.price.dp_paid, ZERO),
                "installments_paid_count": paid_lines,
                "installments_total": len(plan.schedule),
                "principal_paid": principal_paid(plan),
                "principal_remaining": principal_outstanding(kpr, plan),
                "overall_status": kpr.status,
            },
            "as_of": as_of_date,
            "late_fees_due": sum((line.penalty_due for line in overdue), ZERO),
            "late_fees_charged": late_fees_charged,
            "overdue_installments": [
                {
                    "no": line.installment_no,
                    "due_date": line.due_date,
                    "amount": line.amount,
                    "paid_amount": line.paid_amount,
                    "status": line.status,
                    "days_overdue": line.days_overdue,
                    "months_overdue": line.months_overdue,
                    "penalty_due": line.penalty_due,
                }
                for line in overdue
            ],
            "schedule": [encode_line(line) for line in plan.schedule],
            "payments": [payment_view(p, is_admin) for p in payments],
            "generated_at": self.clock(),
        }
        if booking is not None:
            statement["booking"] = {
                "id": booking.booking_id,
                "status": booking.status,
                "start_date": booking.start_date,
                "end_date": booking.end_date,
                "created_at": booking.created_at,
                "updated_at": booking.updated_at,
            }
        return serialize_value(statement)

    def zone_summary(self, zone_id: str) -> dict[str, Any]:
        """Booking counts and collected/outstanding money for one zone."""
        zone_id = require_text(zone_id, "zone_id is required")
        bookings = [b for b in self.store.get_entities(BOOKINGS).values() if b.zone_id == zone_id]
        booking_ids = {b.booking_id for b in bookings}
        kprs = [
            k for k in self.store.get_entities(KPR_APPLICATIONS).values()
            if k.booking_id in booking_ids
        ]
        plans = self.store.get_entities(INSTALLMENT_PLANS)

        return serialize_value(
            {
                "zone_id": zone_id,
                "counts": {
                    "bookings_total": len(bookings),
                    "bookings_confirmed": sum(
                        1 for b in bookings if b.status == BookingStatus.CONFIRMED
                    ),
                },
                "money": self._money(kprs, plans),
                "generated_at": self.clock(),
            }
        )

    def portfolio(self) -> dict[str, Any]:
        """Counts by status and money totals across every booking and KPR."""
        bookings = self.store.get_entities(BOOKINGS).values()
        kprs = list(self.store.get_entities(KPR_APPLICATIONS).values())
        plans = self.store.get_entities(INSTALLMENT_PLANS)

        return serialize_value(
            {
                "counts": {
                    "bookings_by_status": dict(Counter(b.status.value for b in bookings)),
                    "kpr_by_status": dict(Counter(k.status.value for k in kprs)),
                },
                "money": self._money(kprs, plans),
                "generated_at": self.clock(),
            }
        )

    def _money(
        self, kprs: list[KprApplication], plans: dict[str, InstallmentPlan]
    ) -> dict[str, Decimal]:
        dp_collected = ZERO
        paid = ZERO
        outstanding = ZERO
        for kpr in kprs:
            plan = find_plan(plans, kpr.kpr_id)
            dp_collected += kpr.price.dp_paid
            paid += principal_paid(plan)
            outstanding += principal_outstanding(kpr, plan)
        return {
            "dp_collected": dp_collected,
            "principal_paid": paid,
            "principal_outstanding": outstanding,
        }
