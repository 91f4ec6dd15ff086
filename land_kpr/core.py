"""Facade wiring one entity store to every domain service."""

import logging
from dataclasses import dataclass

from land_kpr.auth import is_admin
from land_kpr.config import LandKprConfig
from land_kpr.engine.base import Clock
from land_kpr.engine.bookings import BookingService
from land_kpr.engine.hierarchy import HierarchyService
from land_kpr.engine.installments import InstallmentService
from land_kpr.engine.kpr import KprService
from land_kpr.engine.payments import PaymentService
from land_kpr.engine.penalties import PenaltyService
from land_kpr.engine.reconcile import LedgerReconciler
from land_kpr.reports.statements import ReportService
from land_kpr.store.entity_store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class LandKprCore:
    """All services sharing one store and one set of collection locks."""

    config: LandKprConfig
    store: EntityStore
    hierarchy: HierarchyService
    bookings: BookingService
    kpr: KprService
    installments: InstallmentService
    payments: PaymentService
    penalties: PenaltyService
    reconciler: LedgerReconciler
    reports: ReportService

    @classmethod
    def open(cls, config: LandKprConfig, clock: Clock | None = None) -> "LandKprCore":
        """Load the storage directory and build the services.

        When ``config.storage.reconcile_on_load`` is set, derived payment
        state is replayed from the ledger before the core is returned.
        """
        store = EntityStore.open(
            config.storage.directory, max_backups=config.storage.max_backups
        )
        core = cls(
            config=config,
            store=store,
            hierarchy=HierarchyService(store, clock),
            bookings=BookingService(store, clock),
            kpr=KprService(store, clock),
            installments=InstallmentService(store, clock),
            payments=PaymentService(store, clock),
            penalties=PenaltyService(store, config.penalty, clock),
            reconciler=LedgerReconciler(store, clock),
            reports=ReportService(store, config.penalty, clock),
        )
        if config.storage.reconcile_on_load:
            repaired = core.reconciler.repair()
            if repaired:
                logger.warning("Repaired %d ledger discrepancies on load", len(repaired))
        return core

    def is_admin(self, token: str | None) -> bool:
        """Check ``token`` against the configured admin token."""
        return is_admin(token, self.config.auth.admin_token)
