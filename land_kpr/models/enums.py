"""Enumeration types for booking and KPR entities."""

from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class KprStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class InstallmentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentType(str, Enum):
    DP = "dp"
    INSTALLMENT = "installment"
    PENALTY = "penalty"


class ScheduleFormula(str, Enum):
    FLAT = "flat"
