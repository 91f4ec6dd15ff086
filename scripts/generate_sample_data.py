#!/usr/bin/env python3
"""Generate a sample storage directory.

Initialises the collection files, then drives the real services to create
a site catalogue, bookings, KPR applications, installment plans and a few
payments, so the result satisfies every invariant the core enforces.
"""

import argparse
import random
import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from land_kpr.config import LandKprConfig, StorageConfig
from land_kpr.core import LandKprCore
from land_kpr.exceptions import LandKprError
from land_kpr.generators import (
    BookingRequestGenerator,
    KprApplicantGenerator,
    SiteCatalog,
    SiteCatalogGenerator,
)
from land_kpr.logging import setup_logging
from land_kpr.models import BookingStatus
from land_kpr.store import init_storage


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--output-dir", type=Path, default=project_root / "local" / "storage")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--sites", type=int, default=2)
    parser.add_argument("--subsites", type=int, default=2, help="Subsites per site")
    parser.add_argument("--zones", type=int, default=3, help="Zones per subsite")
    parser.add_argument("--bookings", type=int, default=2, help="Bookings per zone")
    parser.add_argument(
        "--kpr-ratio", type=float, default=0.5, help="Share of confirmed bookings financed"
    )
    parser.add_argument("--paid-months", type=int, default=3, help="Installments paid per KPR")
    parser.add_argument("--start-date", type=date.fromisoformat, default=date(2025, 1, 1))
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args(argv)


def build_catalog(core: LandKprCore, args: argparse.Namespace) -> SiteCatalog:
    """Create sites, subsites and zones through the hierarchy service."""
    print("\n1. Generating site catalogue...")
    catalog = SiteCatalogGenerator(seed=args.seed).generate(
        sites=args.sites,
        subsites_per_site=args.subsites,
        zones_per_subsite=args.zones,
    )
    for site in catalog.sites:
        core.hierarchy.create_site(site.name, site_id=site.site_id)
    for subsite in catalog.subsites:
        core.hierarchy.create_subsite(subsite.site_id, subsite.name, subsite_id=subsite.subsite_id)
    for zone in catalog.zones:
        core.hierarchy.create_zone(zone.subsite_id, zone.name, zone_id=zone.zone_id)
    print(
        f"Created {len(catalog.sites)} sites, {len(catalog.subsites)} subsites, "
        f"{len(catalog.zones)} zones"
    )
    return catalog


def build_bookings(core: LandKprCore, catalog: SiteCatalog, args: argparse.Namespace) -> list:
    print("\n2. Generating bookings...")
    generator = BookingRequestGenerator(seed=args.seed)
    site_of = {s.subsite_id: s.site_id for s in catalog.subsites}
    bookings = []
    for zone in catalog.zones:
        requests = generator.generate_for_zone(
            site_of[zone.subsite_id], zone.subsite_id, zone.zone_id, args.bookings, args.start_date
        )
        for request in requests:
            bookings.append(core.bookings.create_booking(**request.as_kwargs()))
    print(f"Created {len(bookings)} bookings")
    return bookings


def build_financing(core: LandKprCore, bookings: list, args: argparse.Namespace) -> dict[str, int]:
    print("\n3. Generating KPR applications, plans and payments...")
    applicants = KprApplicantGenerator(seed=args.seed)
    counts = {"kpr": 0, "plans": 0, "payments": 0}
    confirmed = [b for b in bookings if b.status == BookingStatus.CONFIRMED]
    for booking in confirmed:
        if random.random() >= args.kpr_ratio:
            continue
        kpr = core.kpr.create_kpr(booking.booking_id, notes="sample data")
        counts["kpr"] += 1
        core.kpr.update_kpr(
            kpr.kpr_id,
            customer=applicants.generate_customer(),
            price=applicants.generate_price(booking.price),
        )
        core.kpr.submit(kpr.kpr_id)
        approved = core.kpr.approve(kpr.kpr_id)
        plan = core.installments.generate_plan(kpr.kpr_id)
        counts["plans"] += 1

        core.payments.apply_payment(
            kpr.kpr_id, 0, approved.price.dp_amount, "transfer", reference=f"DP-{kpr.kpr_id}"
        )
        counts["payments"] += 1
        for line in plan.schedule[: args.paid_months]:
            core.payments.apply_payment(
                kpr.kpr_id,
                line.no,
                line.amount,
                "transfer",
                paid_at=line.due_date,
                reference=f"ANG-{kpr.kpr_id}-{line.no}",
            )
            counts["payments"] += 1
    print(f"Created {counts['kpr']} KPRs, {counts['plans']} plans, {counts['payments']} payments")
    return counts


def main(argv: list[str] | None = None) -> int:
    """Generate a populated storage directory."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    print("=" * 60)
    print("Generating Sample Storage")
    print("=" * 60)

    init_storage(args.output_dir)
    config = LandKprConfig(storage=StorageConfig(directory=args.output_dir, max_backups=1))
    try:
        core = LandKprCore.open(config)
        catalog = build_catalog(core, args)
        bookings = build_bookings(core, catalog, args)
        build_financing(core, bookings, args)
    except LandKprError as exc:
        print(f"Generation failed: {exc}", file=sys.stderr)
        return 1

    portfolio = core.reports.portfolio()
    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    for name, counts in portfolio["counts"].items():
        print(f"{name}: {counts}")
    for name, value in portfolio["money"].items():
        print(f"{name + ':':24}{value}")
    print(f"\nStorage written to: {args.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
