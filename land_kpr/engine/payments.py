"""Payment ledger: down payments and installment payments."""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from land_kpr.engine.base import (
    MONEY_TOLERANCE,
    Service,
    clean,
    money,
    new_id,
    require_date,
    require_text,
)
from land_kpr.engine.installments import find_plan
from land_kpr.engine.reconcile import diff_kpr, ledger_totals
from land_kpr.exceptions import (
    EntityNotFoundError,
    InvalidStateTransitionError,
    OverpaymentError,
    ValidationError,
)
from land_kpr.models import InstallmentPlan, InstallmentStatus, KprStatus, Payment, PaymentType
from land_kpr.models.installment import InstallmentLine
from land_kpr.store.collections import INSTALLMENT_PLANS, KPR_APPLICATIONS, PAYMENTS

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = frozenset({KprStatus.APPROVED, KprStatus.COMPLETED})


def settle(due: Decimal, paid: Decimal, amount: Decimal, what: str) -> Decimal:
    """Return the new paid total after paying ``amount`` toward ``due``.

    Raises OverpaymentError when nothing remains or ``amount`` exceeds the
    remainder by more than the tolerance. The result never exceeds ``due``.
    """
    remaining = due - paid
    if remaining <= 0:
        raise OverpaymentError(f"{what} already fully paid")
    if amount > remaining + MONEY_TOLERANCE:
        raise OverpaymentError(f"overpayment: exceeds remaining {what}")
    return min(paid + amount, due)


def is_settled(line: InstallmentLine) -> bool:
    return abs(line.remaining) < MONEY_TOLERANCE


def all_paid(plan: InstallmentPlan) -> bool:
    return bool(plan.schedule) and all(is_settled(line) for line in plan.schedule)


def parse_installment_no(value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValidationError(f"installment_no must be >= {minimum}")
    return value


class PaymentService(Service):
    """Applies payments against a KPR's down payment or installment schedule.

    Payments are append-only; ``dp_paid``, line ``paid_amount``/``status``
    and KPR completion are derived from them.
    """

    def apply_payment(
        self,
        kpr_id: str,
        installment_no: int,
        amount: Any,
        method: str,
        paid_at: str | date | None = None,
        booking_id: str | None = None,
        reference: str = "",
        notes: str = "",
    ) -> Payment:
        """Record a payment and update derived state.

        ``installment_no`` 0 pays the down payment; 1..N pays that line.

        Raises
        ------
        ValidationError
            Bad input, ``booking_id`` mismatch or installment out of range.
        EntityNotFoundError
            Unknown KPR or missing installment plan.
        InvalidStateTransitionError
            KPR not approved or completed.
        OverpaymentError
            Nothing left to pay or the amount exceeds the remainder.
        """
        kpr_id = require_text(kpr_id, "kpr_id is required")
        installment_no = parse_installment_no(installment_no, 0)
        amount = money(amount, "amount")
        if amount <= 0:
            raise ValidationError("amount must be > 0")
        method = require_text(method, "method is required")
        if paid_at is None or (isinstance(paid_at, str) and not paid_at.strip()):
            paid_on = self.today()
        else:
            paid_on = require_date(paid_at, "paid_at must be YYYY-MM-DD")

        with self.store.write_set(KPR_APPLICATIONS, INSTALLMENT_PLANS, PAYMENTS) as ws:
            kpr = ws.entity(KPR_APPLICATIONS, kpr_id)
            if kpr is None:
                raise EntityNotFoundError("kpr not found")
            if kpr.status not in PAYABLE_STATUSES:
                raise InvalidStateTransitionError(
                    "payments allowed only for approved/completed kpr"
                )
            if clean(booking_id) and clean(booking_id) != kpr.booking_id:
                raise ValidationError("booking_id mismatch")
            plan = find_plan(ws.entities(INSTALLMENT_PLANS), kpr_id)
            if plan is None:
                raise EntityNotFoundError("installment plan not found for kpr")

            # Balances come from the ledger; an interrupted earlier commit
            # may have left the derived fields behind it.
            ledger = [p for p in ws.entities(PAYMENTS).values() if p.kpr_id == kpr_id]
            dp_totals, line_totals = ledger_totals(ledger)
            drift = diff_kpr(kpr, plan, dp_totals.get(kpr_id, Decimal("0")), line_totals)
            for diff in drift:
                logger.warning(
                    "Replayed ledger for KPR %s: %s stored=%s expected=%s",
                    kpr_id,
                    diff.field,
                    diff.stored,
                    diff.expected,
                    extra={"extra": {"collection": diff.collection, "id": diff.item_id}},
                )

            now = self.now()
            plan_changed = any(d.collection == INSTALLMENT_PLANS for d in drift)
            if installment_no == 0:
                kpr.price.dp_paid = settle(kpr.price.dp_amount, kpr.price.dp_paid, amount, "dp")
                payment_type = PaymentType.DP
            else:
                line = plan.line(installment_no)
                if line is None:
                    raise ValidationError("installment_no out of range")
                line.paid_amount = settle(line.amount, line.paid_amount, amount, "installment")
                line.status = (
                    InstallmentStatus.PAID if is_settled(line) else InstallmentStatus.PARTIAL
                )
                plan_changed = True
                payment_type = PaymentType.INSTALLMENT
                if all_paid(plan) and kpr.status != KprStatus.COMPLETED:
                    kpr.status = KprStatus.COMPLETED
                    logger.info("KPR %s completed", kpr_id)

            payment = Payment(
                payment_id=new_id("payment", now),
                payment_type=payment_type,
                kpr_id=kpr_id,
                booking_id=kpr.booking_id,
                installment_no=installment_no,
                amount=amount,
                paid_at=paid_on,
                method=method,
                reference=clean(reference),
                notes=clean(notes),
                created_at=now,
            )
            # Ledger first: a crash after this point is repaired by replay
            ws.put(PAYMENTS, payment)
            if plan_changed:
                plan.updated_at = now
                ws.put(INSTALLMENT_PLANS, plan)
            kpr.updated_at = now
            ws.put(KPR_APPLICATIONS, kpr)
            ws.commit(now)

        logger.info(
            "Recorded %s payment %s of %s for KPR %s",
            payment_type.value,
            payment.payment_id,
            amount,
            kpr_id,
            extra={"extra": {"collection": PAYMENTS, "id": payment.payment_id}},
        )
        return payment

    def list_payments(
        self, kpr_id: str | None = None, booking_id: str | None = None
    ) -> list[Payment]:
        """Payments filtered by KPR and/or booking, oldest first."""
        kpr_id, booking_id = clean(kpr_id), clean(booking_id)
        if not kpr_id and not booking_id:
            raise ValidationError("kpr_id or booking_id is required")
        payments = [
            p
            for p in self.store.get_entities(PAYMENTS).values()
            if (not kpr_id or p.kpr_id == kpr_id) and (not booking_id or p.booking_id == booking_id)
        ]
        return sort_payments(payments)


def sort_payments(payments: list[Payment]) -> list[Payment]:
    return sorted(
        payments,
        key=lambda p: (p.created_at.timestamp() if p.created_at else 0, p.payment_id),
    )
