"""Tests for ledger replay after an interrupted payment."""

import logging
from decimal import Decimal

import pytest

from land_kpr.config import LandKprConfig, StorageConfig
from land_kpr.core import LandKprCore
from land_kpr.engine.reconcile import diff_kpr, ledger_totals
from land_kpr.exceptions import OverpaymentError, PartialCommitError, RenameFailedError
from land_kpr.models import InstallmentStatus, KprStatus


def crash_after_ledger(core: LandKprCore, monkeypatch: pytest.MonkeyPatch) -> None:
    """Let the payments file through, then fail every later write."""
    real_write = core.store.write_collection

    def write(name, collection):
        if name != "payments":
            raise RenameFailedError(f"rename {name}.json: simulated crash")
        return real_write(name, collection)

    monkeypatch.setattr(core.store, "write_collection", write)


class TestFindDiscrepancies:
    """Tests for detecting drift."""

    def test_clean_store(self, core: LandKprCore, plan) -> None:
        core.payments.apply_payment(plan.kpr_id, 0, 5000000, "transfer")
        core.payments.apply_payment(plan.kpr_id, 1, 400000, "transfer")

        assert core.reconciler.find_discrepancies() == []

    def test_drift_after_partial_commit(
        self, core: LandKprCore, plan, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        crash_after_ledger(core, monkeypatch)

        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 1, 400000, "transfer")
        monkeypatch.undo()

        found = core.reconciler.find_discrepancies()

        fields = {(d.collection, d.field) for d in found}
        assert ("installment_plans", "schedule[1].paid_amount") in fields
        assert ("installment_plans", "schedule[1].status") in fields
        # find only reports
        assert core.installments.get_plan(plan.kpr_id).line(1).paid_amount == Decimal("0")


class TestRepair:
    """Tests for repairing drift."""

    def test_repair_restores_derived_state(
        self,
        core: LandKprCore,
        plan,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 0, 3000000, "transfer")
        monkeypatch.undo()

        with caplog.at_level(logging.WARNING):
            fixed = core.reconciler.repair()

        assert [d.field for d in fixed] == ["price.dp_paid"]
        assert "Ledger drift" in caplog.text
        assert core.kpr.get_kpr(plan.kpr_id).price.dp_paid == Decimal("3000000")
        assert core.reconciler.repair() == []

    def test_repair_promotes_completion(
        self, core: LandKprCore, plan, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        for line in plan.schedule[:-1]:
            core.payments.apply_payment(plan.kpr_id, line.no, line.amount, "transfer")
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 12, 1000000, "transfer")
        monkeypatch.undo()
        assert core.kpr.get_kpr(plan.kpr_id).status == KprStatus.APPROVED

        core.reconciler.repair()

        assert core.kpr.get_kpr(plan.kpr_id).status == KprStatus.COMPLETED
        assert core.installments.get_plan(plan.kpr_id).line(12).status == InstallmentStatus.PAID

    def test_open_replays_ledger(
        self, core: LandKprCore, plan, monkeypatch: pytest.MonkeyPatch, clock
    ) -> None:
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 2, 250000, "transfer")
        monkeypatch.undo()

        reopened = LandKprCore.open(core.config, clock=clock)

        line = reopened.installments.get_plan(plan.kpr_id).line(2)
        assert line.paid_amount == Decimal("250000")
        assert line.status == InstallmentStatus.PARTIAL

    def test_open_without_reconcile(
        self, core: LandKprCore, plan, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 2, 250000, "transfer")
        monkeypatch.undo()

        config = LandKprConfig(
            storage=StorageConfig(directory=core.config.storage.directory, reconcile_on_load=False)
        )
        reopened = LandKprCore.open(config)

        assert reopened.installments.get_plan(plan.kpr_id).line(2).paid_amount == Decimal("0")
        assert len(reopened.reconciler.find_discrepancies()) == 2


class TestPaymentAfterPartialCommit:
    """Tests for payments that follow an interrupted payment."""

    def test_same_line_cannot_be_paid_twice(
        self, core: LandKprCore, plan, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 1, 1000000, "transfer")
        monkeypatch.undo()

        with pytest.raises(OverpaymentError, match="already fully paid"):
            core.payments.apply_payment(plan.kpr_id, 1, 1000000, "transfer")

        ledger = core.payments.list_payments(kpr_id=plan.kpr_id)
        assert sum(p.amount for p in ledger if p.installment_no == 1) == Decimal("1000000")

    def test_next_payment_replays_ledger(
        self,
        core: LandKprCore,
        plan,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 1, 400000, "transfer")
        monkeypatch.undo()

        with caplog.at_level(logging.WARNING):
            core.payments.apply_payment(plan.kpr_id, 1, 600000, "transfer")

        assert "Replayed ledger" in caplog.text
        line = core.installments.get_plan(plan.kpr_id).line(1)
        assert line.paid_amount == Decimal("1000000")
        assert line.status == InstallmentStatus.PAID
        assert core.reconciler.find_discrepancies() == []

    def test_dp_replayed_before_line_payment(
        self, core: LandKprCore, plan, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        crash_after_ledger(core, monkeypatch)
        with pytest.raises(PartialCommitError):
            core.payments.apply_payment(plan.kpr_id, 0, 5000000, "transfer")
        monkeypatch.undo()

        core.payments.apply_payment(plan.kpr_id, 3, 1000000, "transfer")

        assert core.kpr.get_kpr(plan.kpr_id).price.dp_paid == Decimal("5000000")
        with pytest.raises(OverpaymentError):
            core.payments.apply_payment(plan.kpr_id, 0, 1, "transfer")


class TestOverCollectedLedger:
    """Tests for ledgers holding more than is due."""

    def test_excess_is_reported(
        self, core: LandKprCore, plan, caplog: pytest.LogCaptureFixture
    ) -> None:
        kpr = core.kpr.get_kpr(plan.kpr_id)
        stored = core.installments.get_plan(plan.kpr_id)
        _, line_totals = ledger_totals([])
        line_totals[(plan.kpr_id, 1)] = Decimal("2000000")

        with caplog.at_level(logging.WARNING):
            diff_kpr(kpr, stored, Decimal("6000000"), line_totals)

        assert "over-collected dp" in caplog.text
        assert "over-collected line 1" in caplog.text
        assert stored.line(1).paid_amount == Decimal("1000000")
