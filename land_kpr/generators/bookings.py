"""Booking request generator producing non-overlapping ranges per zone."""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterator

from land_kpr.generators.base import BaseGenerator
from land_kpr.models import BookingStatus


@dataclass
class BookingRequest:
    """Arguments for ``BookingService.create_booking``."""

    site_id: str
    subsite_id: str
    zone_id: str
    customer_name: str
    customer_phone: str
    customer_email: str
    start_date: str
    end_date: str
    status: str
    price: Decimal
    notes: str = ""

    def as_kwargs(self) -> dict[str, Any]:
        return asdict(self)


class BookingRequestGenerator(BaseGenerator):
    """Generate booking requests for one zone."""

    STATUSES = [BookingStatus.PENDING, BookingStatus.CONFIRMED]
    STATUS_WEIGHTS = [0.3, 0.7]

    def generate_for_zone(
        self,
        site_id: str,
        subsite_id: str,
        zone_id: str,
        count: int,
        start: date,
    ) -> Iterator[BookingRequest]:
        """Yield ``count`` requests whose date ranges never overlap.

        Each range starts at least one day after the previous one ends.
        """
        cursor = start
        for _ in range(count):
            length = random.randint(1, 14)
            end = cursor + timedelta(days=length - 1)
            yield BookingRequest(
                site_id=site_id,
                subsite_id=subsite_id,
                zone_id=zone_id,
                customer_name=self.fake.name(),
                customer_phone=self.fake.phone_number(),
                customer_email=self.fake.email(),
                start_date=cursor.isoformat(),
                end_date=end.isoformat(),
                status=random.choices(self.STATUSES, weights=self.STATUS_WEIGHTS)[0].value,
                price=Decimal(random.randint(150, 900) * 1_000_000),
                notes=self.fake.sentence(nb_words=6),
            )
            cursor = end + timedelta(days=random.randint(1, 10))
