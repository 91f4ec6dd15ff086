"""KPR (mortgage financing) application models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from land_kpr.models.enums import KprStatus


@dataclass
class KprCustomer:
    """Applicant identity. NIK and address are admin-only on read views."""

    name: str = ""
    phone: str = ""
    email: str = ""
    nik: str = ""  # Nomor Induk Kependudukan (national ID)
    address: str = ""


@dataclass
class KprPrice:
    """Financing terms. ``dp_paid`` is derived from the payment ledger."""

    land_price: Decimal = Decimal("0")
    dp_amount: Decimal = Decimal("0")
    dp_paid: Decimal = Decimal("0")
    loan_amount: Decimal = Decimal("0")
    tenor_months: int = 0
    interest_rate: Decimal = Decimal("0")
    admin_fee: Decimal = Decimal("0")
    other_fee: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


@dataclass
class KprApplication:
    """Financing application tied to a confirmed booking."""

    kpr_id: str
    booking_id: str
    site_id: str
    subsite_id: str
    zone_id: str
    status: KprStatus
    customer: KprCustomer = field(default_factory=KprCustomer)
    price: KprPrice = field(default_factory=KprPrice)
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    approved_at: datetime | None = None
