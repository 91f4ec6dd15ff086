"""Payment ledger model."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from land_kpr.models.enums import PaymentType


@dataclass
class Payment:
    """Append-only ledger entry for a down payment, installment or penalty."""

    payment_id: str
    payment_type: PaymentType
    kpr_id: str
    booking_id: str
    installment_no: int  # 0 for down payment
    amount: Decimal
    paid_at: date
    method: str
    reference: str = ""
    notes: str = ""
    created_at: datetime | None = None
    bucket: str | None = None  # "YYYY-MM", penalties only
