"""KPR applicant and financing-terms generator."""

from __future__ import annotations

import random
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from land_kpr.generators.base import BaseGenerator


class KprApplicantGenerator(BaseGenerator):
    """Generate applicant identities and price terms for KPR updates."""

    TENORS = [12, 24, 36, 60, 120, 180]
    DP_SHARES = [Decimal("0.10"), Decimal("0.15"), Decimal("0.20"), Decimal("0.30")]

    def generate_nik(self) -> str:
        """16-digit Indonesian national ID number (NIK)."""
        return self.fake.numerify("################")

    def generate_customer(self) -> dict[str, Any]:
        """Customer block accepted by ``KprService.update_kpr``."""
        return {
            "name": self.fake.name(),
            "phone": self.fake.phone_number(),
            "email": self.fake.email(),
            "nik": self.generate_nik(),
            "address": self.fake.address().replace("\n", ", "),
        }

    def generate_price(self, land_price: Decimal | None = None) -> dict[str, Any]:
        """Price block accepted by ``KprService.update_kpr``.

        Parameters
        ----------
        land_price : Decimal | None
            Plot price; random when omitted.
        """
        if land_price is None or land_price <= 0:
            land_price = Decimal(random.randint(150, 900) * 1_000_000)
        dp_amount = (land_price * random.choice(self.DP_SHARES)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        admin_fee = Decimal(random.choice([500_000, 1_000_000, 2_500_000]))
        other_fee = Decimal(random.randint(0, 5) * 100_000)
        return {
            "land_price": land_price,
            "dp_amount": dp_amount,
            "loan_amount": land_price - dp_amount,
            "tenor_months": random.choice(self.TENORS),
            "interest_rate": Decimal(str(round(random.uniform(0.05, 0.11), 4))),
            "admin_fee": admin_fee,
            "other_fee": other_fee,
            "total": land_price + admin_fee + other_fee,
        }
