"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from land_kpr.config import LandKprConfig, StorageConfig
from land_kpr.core import LandKprCore
from land_kpr.store import EntityStore, init_storage


class FakeClock:
    """Settable UTC clock injected into services."""

    def __init__(self, current: datetime) -> None:
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at 2025-01-20 08:00 UTC."""
    return FakeClock(datetime(2025, 1, 20, 8, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Initialised, empty storage directory."""
    directory = tmp_path / "storage"
    init_storage(directory)
    return directory


@pytest.fixture
def store(storage_dir: Path) -> EntityStore:
    """Loaded entity store over ``storage_dir``."""
    return EntityStore.open(storage_dir)


@pytest.fixture
def core(storage_dir: Path, clock: FakeClock) -> LandKprCore:
    """Core facade over an empty storage directory."""
    config = LandKprConfig(storage=StorageConfig(directory=storage_dir))
    return LandKprCore.open(config, clock=clock)


@pytest.fixture
def catalog(core: LandKprCore) -> dict[str, str]:
    """One site with one subsite holding zones Z1 and Z2."""
    core.hierarchy.create_site("Griya Asri", site_id="S1")
    core.hierarchy.create_subsite("S1", "Blok A", subsite_id="SS1")
    core.hierarchy.create_zone("SS1", "Kavling A-01", zone_id="Z1")
    core.hierarchy.create_zone("SS1", "Kavling A-02", zone_id="Z2")
    return {"site_id": "S1", "subsite_id": "SS1", "zone_id": "Z1"}


@pytest.fixture
def confirmed_booking(core: LandKprCore, catalog: dict[str, str]):
    """Confirmed booking of zone Z1."""
    return core.bookings.create_booking(
        customer_name="Budi Santoso",
        start_date="2025-01-10",
        end_date="2025-01-15",
        status="confirmed",
        price=Decimal("17000000"),
        **catalog,
    )


@pytest.fixture
def approved_kpr(core: LandKprCore, confirmed_booking):
    """Approved KPR: dp 5,000,000, loan 12,000,000 over 12 months."""
    kpr = core.kpr.create_kpr(confirmed_booking.booking_id)
    core.kpr.update_kpr(
        kpr.kpr_id,
        customer={
            "name": "Budi Santoso",
            "phone": "0812000111",
            "email": "budi@example.com",
            "nik": "3171234567890001",
            "address": "Jl. Melati 5, Jakarta",
        },
        price={
            "land_price": 17000000,
            "dp_amount": 5000000,
            "loan_amount": 12000000,
            "tenor_months": 12,
            "total": 17000000,
        },
    )
    core.kpr.submit(kpr.kpr_id)
    return core.kpr.approve(kpr.kpr_id)


@pytest.fixture
def plan(core: LandKprCore, approved_kpr):
    """Installment plan generated for ``approved_kpr``."""
    return core.installments.generate_plan(approved_kpr.kpr_id)
