"""Tests for late-payment penalties."""

from datetime import date
from decimal import Decimal

import pytest

from land_kpr.config import PenaltyPolicy
from land_kpr.core import LandKprCore
from land_kpr.engine.penalties import (
    days_overdue,
    month_bucket,
    months_overdue,
    penalty_for_installment,
)
from land_kpr.exceptions import (
    ConflictError,
    DuplicateEntityError,
    EntityNotFoundError,
    ValidationError,
)
from land_kpr.models import PaymentType


class TestPenaltyMath:
    """Tests for the pure penalty helpers."""

    @pytest.mark.parametrize(
        "due, as_of, expected",
        [
            (date(2025, 2, 5), date(2025, 2, 5), 0),
            (date(2025, 2, 5), date(2025, 2, 6), 1),
            (date(2025, 2, 5), date(2025, 3, 1), 2),
            (date(2025, 2, 5), date(2025, 4, 6), 3),
            (date(2025, 11, 5), date(2026, 1, 6), 3),
            (date(2025, 2, 5), date(2025, 1, 1), 0),
        ],
    )
    def test_months_overdue(self, due: date, as_of: date, expected: int) -> None:
        assert months_overdue(due, as_of) == expected

    def test_days_overdue(self) -> None:
        assert days_overdue(date(2025, 2, 5), date(2025, 4, 6)) == 60
        assert days_overdue(date(2025, 2, 5), date(2025, 2, 1)) == 0

    def test_capped_penalty(self) -> None:
        assert penalty_for_installment(Decimal("1000000"), 3) == Decimal("100000")

    def test_flat_penalty_below_cap(self) -> None:
        assert penalty_for_installment(Decimal("1000000"), 1) == Decimal("50000")

    def test_cap_rounds_half_up(self) -> None:
        assert penalty_for_installment(Decimal("5"), 1) == Decimal("1")

    def test_custom_policy(self) -> None:
        policy = PenaltyPolicy(flat_per_month=Decimal("10000"), cap_pct=Decimal("0.5"))

        assert penalty_for_installment(Decimal("1000000"), 3, policy) == Decimal("30000")

    def test_not_overdue_is_zero(self) -> None:
        assert penalty_for_installment(Decimal("1000000"), 0) == Decimal("0")

    def test_bucket(self) -> None:
        assert month_bucket(date(2025, 4, 6)) == "2025-04"


class TestPreview:
    """Tests for PenaltyService.preview_penalties."""

    def test_preview(self, core: LandKprCore, plan) -> None:
        preview = core.penalties.preview_penalties(plan.kpr_id, "2025-04-06")

        assert preview.bucket == "2025-04"
        assert [line.installment_no for line in preview.lines] == [1, 2, 3]
        first = preview.lines[0]
        assert first.due_date == date(2025, 2, 5)
        assert first.months_overdue == 3
        assert first.penalty_due == Decimal("100000")
        # line 2 due 2025-03-05: 2 months, line 3 due 2025-04-05: 1 month
        assert preview.total_penalty == Decimal("100000") + Decimal("100000") + Decimal("50000")

    def test_paid_lines_excluded(self, core: LandKprCore, plan) -> None:
        core.payments.apply_payment(plan.kpr_id, 1, 1000000, "transfer")

        preview = core.penalties.preview_penalties(plan.kpr_id, "2025-04-06")

        assert [line.installment_no for line in preview.lines] == [2, 3]

    def test_nothing_overdue(self, core: LandKprCore, plan) -> None:
        preview = core.penalties.preview_penalties(plan.kpr_id)

        assert preview.as_of == date(2025, 1, 20)
        assert preview.lines == []
        assert preview.total_penalty == Decimal("0")

    def test_bad_as_of(self, core: LandKprCore, plan) -> None:
        with pytest.raises(ValidationError, match="invalid as_of"):
            core.penalties.preview_penalties(plan.kpr_id, "April")

    def test_requires_plan(self, core: LandKprCore, approved_kpr) -> None:
        with pytest.raises(EntityNotFoundError, match="installment plan not found"):
            core.penalties.preview_penalties(approved_kpr.kpr_id, "2025-04-06")


class TestCharge:
    """Tests for PenaltyService.charge_penalty."""

    def test_charge(self, core: LandKprCore, plan, clock) -> None:
        payment = core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

        assert payment.payment_type == PaymentType.PENALTY
        assert payment.amount == Decimal("100000")
        assert payment.bucket == "2025-04"
        assert payment.method == "internal"
        assert payment.paid_at == clock().date()
        assert payment.payment_id.startswith("penalty_")

    def test_charge_twice_same_month(self, core: LandKprCore, plan) -> None:
        core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

        with pytest.raises(DuplicateEntityError, match="penalty already charged for this month"):
            core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-28")

        assert len(core.payments.list_payments(kpr_id=plan.kpr_id)) == 1

    def test_next_month_is_new_bucket(self, core: LandKprCore, plan) -> None:
        core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

        again = core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-05-06")

        assert again.bucket == "2025-05"

    def test_penalty_does_not_touch_schedule(self, core: LandKprCore, plan) -> None:
        core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

        line = core.installments.get_plan(plan.kpr_id).line(1)
        assert line.paid_amount == Decimal("0")
        assert core.kpr.get_kpr(plan.kpr_id).price.dp_paid == Decimal("0")

    def test_not_overdue_yet(self, core: LandKprCore, plan) -> None:
        with pytest.raises(ConflictError, match="not overdue yet"):
            core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-02-05")

    def test_already_paid(self, core: LandKprCore, plan) -> None:
        core.payments.apply_payment(plan.kpr_id, 1, 1000000, "transfer")

        with pytest.raises(ConflictError, match="installment already paid"):
            core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

    def test_zero_penalty(self, core: LandKprCore, plan) -> None:
        core.penalties.policy = PenaltyPolicy(flat_per_month=Decimal("0"))

        with pytest.raises(ConflictError, match="penalty is zero"):
            core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

    def test_unknown_line(self, core: LandKprCore, plan) -> None:
        with pytest.raises(ValidationError, match="installment not found"):
            core.penalties.charge_penalty(plan.kpr_id, 99, as_of="2025-04-06")

    def test_line_zero_rejected(self, core: LandKprCore, plan) -> None:
        with pytest.raises(ValidationError, match="installment_no must be >= 1"):
            core.penalties.charge_penalty(plan.kpr_id, 0, as_of="2025-04-06")

    def test_penalties_ignored_by_reconcile(self, core: LandKprCore, plan) -> None:
        core.penalties.charge_penalty(plan.kpr_id, 1, as_of="2025-04-06")

        assert core.reconciler.find_discrepancies() == []
