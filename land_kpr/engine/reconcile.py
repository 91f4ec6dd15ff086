"""Ledger replay: re-derive payment-driven state from the payments collection.

A payment touches three files in order: payments, installment plan, KPR.
A crash between those writes leaves the ledger ahead of the derived state.
Replaying the ledger restores ``dp_paid``, line ``paid_amount``/``status``
and KPR completion.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from land_kpr.engine.base import MONEY_TOLERANCE, Service
from land_kpr.engine.installments import find_plan
from land_kpr.models import (
    InstallmentPlan,
    InstallmentStatus,
    KprApplication,
    KprStatus,
    Payment,
    PaymentType,
)
from land_kpr.store.collections import INSTALLMENT_PLANS, KPR_APPLICATIONS, PAYMENTS

logger = logging.getLogger(__name__)


@dataclass
class Discrepancy:
    """One derived field that disagrees with the payment ledger."""

    collection: str
    item_id: str
    field: str
    stored: Any
    expected: Any


def ledger_totals(
    payments: Any,
) -> tuple[dict[str, Decimal], dict[tuple[str, int], Decimal]]:
    """Sum down payments per KPR and installment payments per (KPR, line)."""
    dp: dict[str, Decimal] = defaultdict(Decimal)
    lines: dict[tuple[str, int], Decimal] = defaultdict(Decimal)
    for payment in payments:
        if payment.payment_type == PaymentType.DP:
            dp[payment.kpr_id] += payment.amount
        elif payment.payment_type == PaymentType.INSTALLMENT:
            lines[(payment.kpr_id, payment.installment_no)] += payment.amount
    return dp, lines


def _derived_status(amount: Decimal, paid: Decimal) -> InstallmentStatus:
    if paid <= 0:
        return InstallmentStatus.UNPAID
    if abs(amount - paid) < MONEY_TOLERANCE:
        return InstallmentStatus.PAID
    return InstallmentStatus.PARTIAL


def diff_kpr(
    kpr: KprApplication,
    plan: InstallmentPlan | None,
    dp_total: Decimal,
    line_totals: dict[tuple[str, int], Decimal],
) -> list[Discrepancy]:
    """Compare one KPR and its plan to the ledger; fix them in place.

    Returns the discrepancies found. The passed objects are updated to the
    ledger-derived values so callers can persist them.
    """
    found = []
    dp_due = kpr.price.dp_amount
    if dp_total > dp_due + MONEY_TOLERANCE:
        logger.warning(
            "Ledger over-collected dp of KPR %s: paid=%s due=%s", kpr.kpr_id, dp_total, dp_due
        )
    # settle() clamps payments within tolerance of the remainder
    if dp_due < dp_total < dp_due + MONEY_TOLERANCE:
        dp_total = dp_due
    if kpr.price.dp_paid != dp_total:
        found.append(
            Discrepancy(KPR_APPLICATIONS, kpr.kpr_id, "price.dp_paid", kpr.price.dp_paid, dp_total)
        )
        kpr.price.dp_paid = dp_total

    if plan is None:
        return found

    for line in plan.schedule:
        line_total = line_totals.get((kpr.kpr_id, line.no), Decimal("0"))
        if line_total > line.amount + MONEY_TOLERANCE:
            logger.warning(
                "Ledger over-collected line %d of KPR %s: paid=%s due=%s",
                line.no,
                kpr.kpr_id,
                line_total,
                line.amount,
            )
        expected_paid = min(line_total, line.amount)
        expected_status = _derived_status(line.amount, expected_paid)
        if line.paid_amount != expected_paid:
            found.append(
                Discrepancy(
                    INSTALLMENT_PLANS,
                    plan.plan_id,
                    f"schedule[{line.no}].paid_amount",
                    line.paid_amount,
                    expected_paid,
                )
            )
            line.paid_amount = expected_paid
        if line.status != expected_status:
            found.append(
                Discrepancy(
                    INSTALLMENT_PLANS,
                    plan.plan_id,
                    f"schedule[{line.no}].status",
                    line.status.value,
                    expected_status.value,
                )
            )
            line.status = expected_status

    fully_paid = bool(plan.schedule) and all(
        line.status == InstallmentStatus.PAID for line in plan.schedule
    )
    if kpr.status == KprStatus.APPROVED and fully_paid:
        found.append(
            Discrepancy(
                KPR_APPLICATIONS,
                kpr.kpr_id,
                "status",
                kpr.status.value,
                KprStatus.COMPLETED.value,
            )
        )
        kpr.status = KprStatus.COMPLETED
    return found


class LedgerReconciler(Service):
    """Detects and repairs drift between payments and derived state."""

    def _scan(
        self, kprs: dict[str, KprApplication], plans: dict[str, InstallmentPlan], payments: Any
    ) -> tuple[list[Discrepancy], set[str], set[str]]:
        dp_totals, line_totals = ledger_totals(payments)
        found: list[Discrepancy] = []
        touched_kprs: set[str] = set()
        touched_plans: set[str] = set()
        for kpr in kprs.values():
            plan = find_plan(plans, kpr.kpr_id)
            diffs = diff_kpr(kpr, plan, dp_totals.get(kpr.kpr_id, Decimal("0")), line_totals)
            for diff in diffs:
                if diff.collection == KPR_APPLICATIONS:
                    touched_kprs.add(diff.item_id)
                else:
                    touched_plans.add(diff.item_id)
            found.extend(diffs)
        return found, touched_kprs, touched_plans

    def find_discrepancies(self) -> list[Discrepancy]:
        """Report drift against the current snapshot without writing."""
        payments: list[Payment] = list(self.store.get_entities(PAYMENTS).values())
        found, _, _ = self._scan(
            self.store.get_entities(KPR_APPLICATIONS),
            self.store.get_entities(INSTALLMENT_PLANS),
            payments,
        )
        return found

    def repair(self) -> list[Discrepancy]:
        """Rewrite plans and KPRs to match the ledger; returns what was fixed."""
        with self.store.write_set(KPR_APPLICATIONS, INSTALLMENT_PLANS, PAYMENTS) as ws:
            kprs = ws.entities(KPR_APPLICATIONS)
            plans = ws.entities(INSTALLMENT_PLANS)
            found, touched_kprs, touched_plans = self._scan(
                kprs, plans, ws.entities(PAYMENTS).values()
            )
            if not found:
                return []

            for diff in found:
                logger.warning(
                    "Ledger drift in %s %s: %s stored=%s expected=%s",
                    diff.collection,
                    diff.item_id,
                    diff.field,
                    diff.stored,
                    diff.expected,
                    extra={"extra": {"collection": diff.collection, "id": diff.item_id}},
                )

            now = self.now()
            for plan_id in sorted(touched_plans):
                plans[plan_id].updated_at = now
                ws.put(INSTALLMENT_PLANS, plans[plan_id])
            for kpr_id in sorted(touched_kprs):
                kprs[kpr_id].updated_at = now
                ws.put(KPR_APPLICATIONS, kprs[kpr_id])
            ws.commit(now)

        logger.info("Repaired %d ledger discrepancies", len(found))
        return found
