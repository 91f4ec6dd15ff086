"""Flat installment schedule generation."""

import calendar
import logging
from datetime import date, datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Any

from land_kpr.engine.base import Service, clean, new_id, require_text
from land_kpr.exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)
from land_kpr.models import InstallmentLine, InstallmentPlan, InstallmentStatus, KprStatus
from land_kpr.store.collections import INSTALLMENT_PLANS, KPR_APPLICATIONS

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DUE_DAY = 5


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def first_due_date(approved_at: datetime | None, now: datetime) -> date:
    """Day 5 of the month after ``approved_at`` (UTC), or after ``now`` if unknown."""
    base = approved_at or now
    if base.tzinfo is not None:
        base = base.astimezone(timezone.utc)
    return add_months(date(base.year, base.month, DUE_DAY), 1)


def build_schedule(
    loan_amount: Decimal,
    tenor_months: int,
    approved_at: datetime | None,
    now: datetime | None = None,
) -> list[InstallmentLine]:
    """Build a flat schedule of ``tenor_months`` lines summing to ``loan_amount``.

    Every line gets ``loan_amount / tenor_months`` truncated to cents; the
    final line absorbs the residual.

    Parameters
    ----------
    loan_amount : Decimal
        Principal to spread over the schedule.
    tenor_months : int
        Number of monthly lines.
    approved_at : datetime | None
        Approval time; the first line falls due on day 5 of the next month.
    now : datetime | None
        Fallback when ``approved_at`` is missing.

    Returns
    -------
    list[InstallmentLine]
        Lines numbered 1..tenor_months in due-date order.
    """
    if loan_amount <= 0:
        raise ValidationError("price.loan_amount must be > 0")
    if tenor_months <= 0:
        raise ValidationError("price.tenor_months must be > 0")

    regular = (loan_amount / tenor_months).quantize(CENT, rounding=ROUND_DOWN)
    if regular <= 0:
        raise ValidationError("price.loan_amount too small for tenor_months")
    final = loan_amount - regular * (tenor_months - 1)
    first_due = first_due_date(approved_at, now or datetime.now(timezone.utc))

    return [
        InstallmentLine(
            no=no,
            due_date=add_months(first_due, no - 1),
            amount=final if no == tenor_months else regular,
            paid_amount=Decimal("0"),
            status=InstallmentStatus.UNPAID,
        )
        for no in range(1, tenor_months + 1)
    ]


def plan_id_for(records: dict[str, Any], kpr_id: str) -> str | None:
    """Id of the stored plan record belonging to ``kpr_id``, if any."""
    for item_id, record in records.items():
        if isinstance(record, dict) and clean(record.get("kpr_id")) == kpr_id:
            return item_id
    return None


def find_plan(plans: dict[str, InstallmentPlan], kpr_id: str) -> InstallmentPlan | None:
    for plan in plans.values():
        if plan.kpr_id == kpr_id:
            return plan
    return None


class InstallmentService(Service):
    """Generates and reads installment plans for approved KPRs."""

    def generate_plan(self, kpr_id: str) -> InstallmentPlan:
        """Create the single installment plan of an approved KPR.

        Raises
        ------
        EntityNotFoundError
            If the KPR does not exist.
        InvalidStateTransitionError
            If the KPR is not approved.
        DuplicateEntityError
            If a plan already exists for the KPR.
        ValidationError
            If the loan amount or tenor is not positive.
        """
        kpr_id = require_text(kpr_id, "kpr_id is required")
        with self.store.write_set(KPR_APPLICATIONS, INSTALLMENT_PLANS) as ws:
            kpr = ws.entity(KPR_APPLICATIONS, kpr_id)
            if kpr is None:
                raise EntityNotFoundError("kpr not found")
            if kpr.status != KprStatus.APPROVED:
                raise InvalidStateTransitionError(
                    "installments can be generated only when approved"
                )
            if plan_id_for(ws.records(INSTALLMENT_PLANS), kpr_id) is not None:
                raise DuplicateEntityError("installment plan already exists")

            now = self.now()
            schedule = build_schedule(
                kpr.price.loan_amount, kpr.price.tenor_months, kpr.approved_at, now
            )
            plan = InstallmentPlan(
                plan_id=new_id("plan", now),
                kpr_id=kpr_id,
                loan_amount=kpr.price.loan_amount,
                tenor_months=kpr.price.tenor_months,
                monthly_amount=schedule[0].amount,
                schedule=schedule,
                created_at=now,
                updated_at=now,
            )
            ws.put(INSTALLMENT_PLANS, plan)
            ws.commit(now)

        logger.info(
            "Generated %d-month plan %s for KPR %s", plan.tenor_months, plan.plan_id, kpr_id
        )
        return plan

    def get_plan(self, kpr_id: str) -> InstallmentPlan:
        kpr_id = require_text(kpr_id, "kpr_id is required")
        plan = find_plan(self.store.get_entities(INSTALLMENT_PLANS), kpr_id)
        if plan is None:
            raise EntityNotFoundError("installment plan not found")
        return plan
