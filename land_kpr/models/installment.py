"""Installment plan models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from land_kpr.models.enums import InstallmentStatus, ScheduleFormula


@dataclass
class InstallmentLine:
    """One monthly line (angsuran) of an installment schedule."""

    no: int  # 1, 2, 3, ...
    due_date: date
    amount: Decimal
    paid_amount: Decimal = Decimal("0")
    status: InstallmentStatus = InstallmentStatus.UNPAID

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.paid_amount


@dataclass
class InstallmentPlan:
    """Flat installment schedule generated for an approved KPR."""

    plan_id: str
    kpr_id: str
    loan_amount: Decimal
    tenor_months: int
    monthly_amount: Decimal
    schedule: list[InstallmentLine] = field(default_factory=list)
    formula: ScheduleFormula = ScheduleFormula.FLAT
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def line(self, no: int) -> InstallmentLine | None:
        """Return the schedule line numbered ``no``."""
        for item in self.schedule:
            if item.no == no:
                return item
        return None
