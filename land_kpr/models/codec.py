"""Record codec between stored JSON objects and typed entities.

Decoders raise ``KeyError``, ``TypeError`` or ``ValueError`` when a record
cannot be represented by its entity type; callers on read paths skip such
records. Encoders return plain JSON-ready dicts in the on-disk field layout.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

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

WIRE_TIMESTAMP = "%Y-%m-%dT%H:%M:%SZ"
DATE_FORMAT = "%Y-%m-%d"


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def format_timestamp(value: datetime) -> str:
    """Format ``value`` as a UTC wire timestamp (``YYYY-MM-DDTHH:MM:SSZ``)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(WIRE_TIMESTAMP)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a wire timestamp leniently.

    Returns None for empty, missing or unparseable values. ISO-8601 strings
    with an explicit offset are accepted and converted to UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.strptime(text, WIRE_TIMESTAMP).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Any) -> date:
    """Parse a ``YYYY-MM-DD`` calendar date.

    Raises
    ------
    ValueError
        If ``value`` is not a string in that exact format.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"expected YYYY-MM-DD string, got {type(value).__name__}")
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON number (or numeric string) to Decimal.

    None is treated as zero. Booleans, NaN and infinities are rejected.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"invalid number: {value!r}") from exc
    else:
        raise TypeError(f"expected number, got {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"non-finite number: {value!r}")
    return result


def to_int(value: Any) -> int:
    """Convert a JSON number to int; None is zero, fractions are rejected."""
    if value is None:
        return 0
    number = to_decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"expected whole number, got {value!r}")
    return int(number)


def text(data: dict, key: str) -> str:
    """Return ``data[key]`` stripped when it is a string, else ``""``."""
    value = data.get(key)
    if isinstance(value, str):
        return value.strip()
    return ""


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output.

    Integral Decimals become ints so whole-rupiah amounts stay integers on
    disk.
    """
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return format_timestamp(value)
    elif isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def _require_dict(data: Any) -> dict:
    if not isinstance(data, dict):
        raise TypeError(f"expected JSON object, got {type(data).__name__}")
    return data


def _nested(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    return _require_dict(value)


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------


def decode_site(item_id: str, data: Any) -> Site:
    data = _require_dict(data)
    return Site(site_id=item_id, name=text(data, "name"))


def decode_subsite(item_id: str, data: Any) -> Subsite:
    data = _require_dict(data)
    return Subsite(subsite_id=item_id, site_id=text(data, "site_id"), name=text(data, "name"))


def decode_zone(item_id: str, data: Any) -> Zone:
    data = _require_dict(data)
    return Zone(zone_id=item_id, subsite_id=text(data, "subsite_id"), name=text(data, "name"))


def decode_booking(item_id: str, data: Any) -> Booking:
    """Decode a booking record; dates and status must be valid."""
    data = _require_dict(data)
    return Booking(
        booking_id=item_id,
        site_id=text(data, "site_id"),
        subsite_id=text(data, "subsite_id"),
        zone_id=text(data, "zone_id"),
        customer_name=text(data, "customer_name"),
        status=BookingStatus(text(data, "status")),
        start_date=parse_date(data.get("start_date")),
        end_date=parse_date(data.get("end_date")),
        customer_phone=text(data, "customer_phone"),
        customer_email=text(data, "customer_email"),
        price=to_decimal(data.get("price")),
        notes=text(data, "notes"),
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
    )


def decode_customer(data: Any) -> KprCustomer:
    data = _require_dict(data)
    return KprCustomer(
        name=text(data, "name"),
        phone=text(data, "phone"),
        email=text(data, "email"),
        nik=text(data, "nik"),
        address=text(data, "address"),
    )


def decode_price(data: Any) -> KprPrice:
    data = _require_dict(data)
    return KprPrice(
        land_price=to_decimal(data.get("land_price")),
        dp_amount=to_decimal(data.get("dp_amount")),
        dp_paid=to_decimal(data.get("dp_paid")),
        loan_amount=to_decimal(data.get("loan_amount")),
        tenor_months=to_int(data.get("tenor_months")),
        interest_rate=to_decimal(data.get("interest_rate")),
        admin_fee=to_decimal(data.get("admin_fee")),
        other_fee=to_decimal(data.get("other_fee")),
        total=to_decimal(data.get("total")),
    )


def decode_kpr(item_id: str, data: Any) -> KprApplication:
    """Decode a KPR application; missing customer/price objects decode as empty."""
    data = _require_dict(data)
    return KprApplication(
        kpr_id=item_id,
        booking_id=text(data, "booking_id"),
        site_id=text(data, "site_id"),
        subsite_id=text(data, "subsite_id"),
        zone_id=text(data, "zone_id"),
        status=KprStatus(text(data, "status")),
        customer=decode_customer(_nested(data, "customer")),
        price=decode_price(_nested(data, "price")),
        notes=text(data, "notes"),
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
        approved_at=parse_timestamp(data.get("approved_at")),
    )


def decode_line(data: Any) -> InstallmentLine:
    """Decode one schedule line, deriving its status when absent."""
    data = _require_dict(data)
    amount = to_decimal(data.get("amount"))
    paid = to_decimal(data.get("paid_amount"))
    raw_status = text(data, "status")
    if raw_status:
        status = InstallmentStatus(raw_status)
    else:
        status = line_status(amount, paid)
    return InstallmentLine(
        no=to_int(data["no"]),
        due_date=parse_date(data.get("due_date")),
        amount=amount,
        paid_amount=paid,
        status=status,
    )


def decode_plan(item_id: str, data: Any) -> InstallmentPlan:
    """Decode an installment plan; schedule lines are ordered by ``no``."""
    data = _require_dict(data)
    raw_schedule = data.get("schedule") or []
    if not isinstance(raw_schedule, list):
        raise TypeError("schedule must be a list")
    schedule = sorted((decode_line(line) for line in raw_schedule), key=lambda line: line.no)
    return InstallmentPlan(
        plan_id=item_id,
        kpr_id=text(data, "kpr_id"),
        loan_amount=to_decimal(data.get("loan_amount")),
        tenor_months=to_int(data.get("tenor_months")),
        monthly_amount=to_decimal(data.get("monthly_amount")),
        schedule=schedule,
        formula=ScheduleFormula(text(data, "formula") or ScheduleFormula.FLAT.value),
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
    )


def decode_payment(item_id: str, data: Any) -> Payment:
    data = _require_dict(data)
    return Payment(
        payment_id=item_id,
        payment_type=PaymentType(text(data, "type")),
        kpr_id=text(data, "kpr_id"),
        booking_id=text(data, "booking_id"),
        installment_no=to_int(data.get("installment_no")),
        amount=to_decimal(data.get("amount")),
        paid_at=parse_date(data.get("paid_at")),
        method=text(data, "method"),
        reference=text(data, "reference"),
        notes=text(data, "notes"),
        created_at=parse_timestamp(data.get("created_at")),
        bucket=text(data, "bucket") or None,
    )


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------


def encode_site(site: Site) -> dict:
    return {"id": site.site_id, "name": site.name}


def encode_subsite(subsite: Subsite) -> dict:
    return {"id": subsite.subsite_id, "site_id": subsite.site_id, "name": subsite.name}


def encode_zone(zone: Zone) -> dict:
    return {"id": zone.zone_id, "subsite_id": zone.subsite_id, "name": zone.name}


def encode_booking(booking: Booking) -> dict:
    return serialize_value(
        {
            "id": booking.booking_id,
            "site_id": booking.site_id,
            "subsite_id": booking.subsite_id,
            "zone_id": booking.zone_id,
            "customer_name": booking.customer_name,
            "customer_phone": booking.customer_phone,
            "customer_email": booking.customer_email,
            "status": booking.status,
            "start_date": booking.start_date,
            "end_date": booking.end_date,
            "price": booking.price,
            "notes": booking.notes,
            "created_at": booking.created_at,
            "updated_at": booking.updated_at,
        }
    )


def encode_kpr(kpr: KprApplication) -> dict:
    customer = kpr.customer
    price = kpr.price
    return serialize_value(
        {
            "id": kpr.kpr_id,
            "booking_id": kpr.booking_id,
            "site_id": kpr.site_id,
            "subsite_id": kpr.subsite_id,
            "zone_id": kpr.zone_id,
            "customer": {
                "name": customer.name,
                "phone": customer.phone,
                "email": customer.email,
                "nik": customer.nik,
                "address": customer.address,
            },
            "price": {
                "land_price": price.land_price,
                "dp_amount": price.dp_amount,
                "dp_paid": price.dp_paid,
                "loan_amount": price.loan_amount,
                "tenor_months": price.tenor_months,
                "interest_rate": price.interest_rate,
                "admin_fee": price.admin_fee,
                "other_fee": price.other_fee,
                "total": price.total,
            },
            "status": kpr.status,
            "notes": kpr.notes,
            "created_at": kpr.created_at,
            "updated_at": kpr.updated_at,
            "approved_at": kpr.approved_at,
        }
    )


def encode_line(line: InstallmentLine) -> dict:
    return serialize_value(
        {
            "no": line.no,
            "due_date": line.due_date,
            "amount": line.amount,
            "paid_amount": line.paid_amount,
            "status": line.status,
        }
    )


def encode_plan(plan: InstallmentPlan) -> dict:
    return serialize_value(
        {
            "id": plan.plan_id,
            "kpr_id": plan.kpr_id,
            "formula": plan.formula,
            "loan_amount": plan.loan_amount,
            "tenor_months": plan.tenor_months,
            "monthly_amount": plan.monthly_amount,
            "schedule": [encode_line(line) for line in plan.schedule],
            "created_at": plan.created_at,
            "updated_at": plan.updated_at,
        }
    )


def encode_payment(payment: Payment) -> dict:
    record = {
        "id": payment.payment_id,
        "type": payment.payment_type,
        "kpr_id": payment.kpr_id,
        "booking_id": payment.booking_id,
        "installment_no": payment.installment_no,
        "amount": payment.amount,
        "paid_at": payment.paid_at,
        "method": payment.method,
        "reference": payment.reference,
        "notes": payment.notes,
        "created_at": payment.created_at,
    }
    if payment.bucket:
        record["bucket"] = payment.bucket
    return serialize_value(record)


_ENCODERS = {
    Site: encode_site,
    Subsite: encode_subsite,
    Zone: encode_zone,
    Booking: encode_booking,
    KprApplication: encode_kpr,
    InstallmentPlan: encode_plan,
    Payment: encode_payment,
}


def to_record(entity: Any) -> dict:
    """Encode any stored entity into its on-disk record."""
    encoder = _ENCODERS.get(type(entity))
    if encoder is None:
        raise TypeError(f"no record encoder for {type(entity).__name__}")
    return encoder(entity)


def line_status(amount: Decimal, paid: Decimal) -> InstallmentStatus:
    """Derive a line status from its amount and paid amount."""
    if paid <= 0:
        return InstallmentStatus.UNPAID
    if paid >= amount:
        return InstallmentStatus.PAID
    return InstallmentStatus.PARTIAL
