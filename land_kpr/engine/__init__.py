"""Domain services enforcing booking and financing invariants."""

from land_kpr.engine.bookings import Availability, BookingService
from land_kpr.engine.hierarchy import HierarchyService
from land_kpr.engine.installments import InstallmentService, build_schedule
from land_kpr.engine.kpr import KprService
from land_kpr.engine.payments import PaymentService
from land_kpr.engine.penalties import (
    PenaltyLine,
    PenaltyPreview,
    PenaltyService,
    days_overdue,
    month_bucket,
    months_overdue,
    penalty_for_installment,
)
from land_kpr.engine.reconcile import Discrepancy, LedgerReconciler

__all__ = [
    "Availability",
    "BookingService",
    "Discrepancy",
    "HierarchyService",
    "InstallmentService",
    "KprService",
    "LedgerReconciler",
    "PaymentService",
    "PenaltyLine",
    "PenaltyPreview",
    "PenaltyService",
    "build_schedule",
    "days_overdue",
    "month_bucket",
    "months_overdue",
    "penalty_for_installment",
]
