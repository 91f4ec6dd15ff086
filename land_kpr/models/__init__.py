"""Domain models for land booking and KPR financing."""

from land_kpr.models.booking import Booking
from land_kpr.models.enums import (
    BookingStatus,
    InstallmentStatus,
    KprStatus,
    PaymentType,
    ScheduleFormula,
)
from land_kpr.models.installment import InstallmentLine, InstallmentPlan
from land_kpr.models.kpr import KprApplication, KprCustomer, KprPrice
from land_kpr.models.payment import Payment
from land_kpr.models.site import Site, Subsite, Zone

__all__ = [
    "Booking",
    "BookingStatus",
    "InstallmentLine",
    "InstallmentPlan",
    "InstallmentStatus",
    "KprApplication",
    "KprCustomer",
    "KprPrice",
    "KprStatus",
    "Payment",
    "PaymentType",
    "ScheduleFormula",
    "Site",
    "Subsite",
    "Zone",
]
