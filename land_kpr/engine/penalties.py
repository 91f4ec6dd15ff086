"""Late-payment penalties for overdue installments."""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from land_kpr.config import PenaltyPolicy
from land_kpr.engine.base import Clock, Service, clean, new_id, require_date, require_text
from land_kpr.engine.installments import find_plan
from land_kpr.engine.payments import is_settled, parse_installment_no
from land_kpr.exceptions import (
    ConflictError,
    DuplicateEntityError,
    EntityNotFoundError,
    ValidationError,
)
from land_kpr.models import InstallmentPlan, InstallmentStatus, Payment, PaymentType
from land_kpr.models.codec import to_int
from land_kpr.store.collections import INSTALLMENT_PLANS, KPR_APPLICATIONS, PAYMENTS
from land_kpr.store.entity_store import WritableStore

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "internal"


def months_overdue(due: date, as_of: date) -> int:
    """Calendar months overdue, counting the due month itself.

    Due 2026-03-05 and as-of 2026-03-06 is one month overdue.
    """
    if as_of <= due:
        return 0
    months = (as_of.year - due.year) * 12 + (as_of.month - due.month) + 1
    return max(months, 0)


def days_overdue(due: date, as_of: date) -> int:
    if as_of <= due:
        return 0
    return (as_of - due).days


def penalty_for_installment(
    amount: Decimal, months: int, policy: PenaltyPolicy | None = None
) -> Decimal:
    """Flat fee per overdue month, capped at a share of the installment amount."""
    policy = policy or PenaltyPolicy()
    if months <= 0:
        return Decimal("0")
    raw = months * policy.flat_per_month
    cap = (amount * policy.cap_pct).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    cap = max(cap, Decimal("0"))
    return min(raw, cap)


def month_bucket(as_of: date) -> str:
    """Duplicate-charge bucket, ``YYYY-MM``."""
    return f"{as_of.year:04d}-{as_of.month:02d}"


@dataclass
class PenaltyLine:
    installment_no: int
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    status: InstallmentStatus
    days_overdue: int
    months_overdue: int
    penalty_due: Decimal


@dataclass
class PenaltyPreview:
    kpr_id: str
    as_of: date
    bucket: str
    total_penalty: Decimal
    lines: list[PenaltyLine] = field(default_factory=list)


def overdue_lines(
    plan: InstallmentPlan, as_of: date, policy: PenaltyPolicy | None = None
) -> list[PenaltyLine]:
    """Unpaid or partial lines of ``plan`` past due on ``as_of`` with a penalty."""
    lines = []
    for line in plan.schedule:
        if line.status == InstallmentStatus.PAID or is_settled(line):
            continue
        months = months_overdue(line.due_date, as_of)
        penalty = penalty_for_installment(line.amount, months, policy)
        if penalty <= 0:
            continue
        lines.append(
            PenaltyLine(
                installment_no=line.no,
                due_date=line.due_date,
                amount=line.amount,
                paid_amount=line.paid_amount,
                status=line.status,
                days_overdue=days_overdue(line.due_date, as_of),
                months_overdue=months,
                penalty_due=penalty,
            )
        )
    return lines


class PenaltyService(Service):
    """Previews and charges penalties; charges are ``penalty`` payments."""

    def __init__(
        self,
        store: WritableStore,
        policy: PenaltyPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(store, clock)
        self.policy = policy or PenaltyPolicy()

    def _as_of(self, as_of: Any) -> date:
        if as_of is None or (isinstance(as_of, str) and not as_of.strip()):
            return self.today()
        return require_date(as_of, "invalid as_of (use YYYY-MM-DD)")

    def preview_penalties(self, kpr_id: str, as_of: str | date | None = None) -> PenaltyPreview:
        kpr_id = require_text(kpr_id, "kpr_id is required")
        as_of_date = self._as_of(as_of)
        if kpr_id not in self.store.get_entities(KPR_APPLICATIONS):
            raise EntityNotFoundError("kpr not found")
        plan = find_plan(self.store.get_entities(INSTALLMENT_PLANS), kpr_id)
        if plan is None:
            raise EntityNotFoundError("installment plan not found")

        lines = overdue_lines(plan, as_of_date, self.policy)
        return PenaltyPreview(
            kpr_id=kpr_id,
            as_of=as_of_date,
            bucket=month_bucket(as_of_date),
            total_penalty=sum((line.penalty_due for line in lines), Decimal("0")),
            lines=lines,
        )

    def charge_penalty(
        self,
        kpr_id: str,
        installment_no: int,
        as_of: str | date | None = None,
        method: str = DEFAULT_METHOD,
        notes: str = "",
        reference: str = "",
    ) -> Payment:
        """Charge the penalty of one overdue line for the ``as_of`` month.

        Raises
        ------
        ConflictError
            Line already paid, not overdue yet, or zero penalty.
        DuplicateEntityError
            A penalty for the same line and month bucket already exists.
        """
        kpr_id = require_text(kpr_id, "kpr_id is required")
        installment_no = parse_installment_no(installment_no, 1)
        as_of_date = self._as_of(as_of)
        bucket = month_bucket(as_of_date)

        with self.store.write_set(KPR_APPLICATIONS, INSTALLMENT_PLANS, PAYMENTS) as ws:
            kpr = ws.entity(KPR_APPLICATIONS, kpr_id)
            if kpr is None:
                raise EntityNotFoundError("kpr not found")
            plan = find_plan(ws.entities(INSTALLMENT_PLANS), kpr_id)
            if plan is None:
                raise EntityNotFoundError("installment plan not found")
            line = plan.line(installment_no)
            if line is None:
                raise ValidationError("installment not found")
            if line.status == InstallmentStatus.PAID or is_settled(line):
                raise ConflictError("installment already paid")
            if as_of_date <= line.due_date:
                raise ConflictError("not overdue yet")
            penalty = penalty_for_installment(
                line.amount, months_overdue(line.due_date, as_of_date), self.policy
            )
            if penalty <= 0:
                raise ConflictError("penalty is zero")

            for record in ws.records(PAYMENTS).values():
                if not isinstance(record, dict):
                    continue
                if (
                    clean(record.get("type")) == PaymentType.PENALTY.value
                    and clean(record.get("kpr_id")) == kpr_id
                    and _installment_no(record) == installment_no
                    and clean(record.get("bucket")) == bucket
                ):
                    raise DuplicateEntityError("penalty already charged for this month")

            now = self.now()
            payment = Payment(
                payment_id=new_id("penalty", now),
                payment_type=PaymentType.PENALTY,
                kpr_id=kpr_id,
                booking_id=kpr.booking_id,
                installment_no=installment_no,
                amount=penalty,
                paid_at=now.date(),
                method=clean(method) or DEFAULT_METHOD,
                reference=clean(reference),
                notes=clean(notes),
                created_at=now,
                bucket=bucket,
            )
            ws.put(PAYMENTS, payment)
            ws.commit(now)

        logger.info(
            "Charged penalty %s on KPR %s line %d for %s", penalty, kpr_id, installment_no, bucket
        )
        return payment


def _installment_no(record: dict) -> int | None:
    try:
        return to_int(record.get("installment_no"))
    except (TypeError, ValueError):
        return None
