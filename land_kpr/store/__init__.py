"""JSON-file entity store: loading, atomic persistence and write locking."""

from land_kpr.store.collections import (
    BOOKINGS,
    DOMAINS,
    INSTALLMENT_PLANS,
    KPR_APPLICATIONS,
    LOCK_ORDER,
    PAYMENTS,
    REQUIRED_COLLECTIONS,
    SITES,
    SUBSITES,
    USERS,
    ZONES,
    RawCollection,
    Snapshot,
)
from land_kpr.store.entity_store import (
    EntityStore,
    ReadableStore,
    WritableStore,
    WriteSet,
)
from land_kpr.store.guard import MutationGuard
from land_kpr.store.loader import init_storage, load
from land_kpr.store.persistence import write_collection

__all__ = [
    "BOOKINGS",
    "DOMAINS",
    "INSTALLMENT_PLANS",
    "KPR_APPLICATIONS",
    "LOCK_ORDER",
    "PAYMENTS",
    "REQUIRED_COLLECTIONS",
    "SITES",
    "SUBSITES",
    "USERS",
    "ZONES",
    "EntityStore",
    "MutationGuard",
    "RawCollection",
    "ReadableStore",
    "Snapshot",
    "WritableStore",
    "WriteSet",
    "init_storage",
    "load",
    "write_collection",
]
