"""Collection names, global lock order and the raw collection container."""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Mapping

from land_kpr.models import codec

USERS = "users"
DOMAINS = "domains"
SITES = "sites"
SUBSITES = "subsites"
ZONES = "zones"
BOOKINGS = "bookings"
KPR_APPLICATIONS = "kpr_applications"
INSTALLMENT_PLANS = "installment_plans"
PAYMENTS = "payments"

# Locks are always taken in this order and released in reverse.
LOCK_ORDER: tuple[str, ...] = (
    USERS,
    DOMAINS,
    SITES,
    SUBSITES,
    ZONES,
    BOOKINGS,
    KPR_APPLICATIONS,
    INSTALLMENT_PLANS,
    PAYMENTS,
)

REQUIRED_COLLECTIONS: tuple[str, ...] = LOCK_ORDER

# Optional; validated when present, ignored when absent.
SUPPORT_TICKETS_PATH = ("support", "tickets.json")

DECODERS: dict[str, Callable[[str, Any], Any]] = {
    SITES: codec.decode_site,
    SUBSITES: codec.decode_subsite,
    ZONES: codec.decode_zone,
    BOOKINGS: codec.decode_booking,
    KPR_APPLICATIONS: codec.decode_kpr,
    INSTALLMENT_PLANS: codec.decode_plan,
    PAYMENTS: codec.decode_payment,
}


def file_name(name: str) -> str:
    """Return the file name backing collection ``name``."""
    return f"{name}.json"


def empty_meta() -> dict[str, Any]:
    return {"version": 1, "updated_at": None}


@dataclass
class RawCollection:
    """A collection as stored: ``meta`` plus items held as encoded JSON text.

    Items stay encoded so that a record only ever gets decoded by the reader
    asking for it, and records nobody touched are written back byte for byte.
    """

    meta: dict[str, Any] = field(default_factory=empty_meta)
    items: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_document(cls, meta: dict[str, Any], items: dict[str, Any]) -> "RawCollection":
        encoded = {
            item_id: json.dumps(value, ensure_ascii=False, sort_keys=True)
            for item_id, value in items.items()
        }
        return cls(meta=copy.deepcopy(meta), items=encoded)

    def copy(self) -> "RawCollection":
        return RawCollection(meta=copy.deepcopy(self.meta), items=dict(self.items))

    def __contains__(self, item_id: str) -> bool:
        return item_id in self.items

    def __len__(self) -> int:
        return len(self.items)

    def get(self, item_id: str) -> Any | None:
        """Return a freshly decoded copy of one item, or None when absent."""
        encoded = self.items.get(item_id)
        if encoded is None:
            return None
        return json.loads(encoded)

    def put(self, item_id: str, record: Any) -> None:
        self.items[item_id] = json.dumps(record, ensure_ascii=False, sort_keys=True)

    def delete(self, item_id: str) -> bool:
        return self.items.pop(item_id, None) is not None

    def touch(self, when: datetime) -> None:
        """Stamp ``meta.updated_at``; ``meta.version`` is preserved."""
        self.meta.setdefault("version", 1)
        self.meta["updated_at"] = codec.format_timestamp(when)

    def to_document(self) -> dict[str, Any]:
        """Return the full ``{meta, items}`` JSON document."""
        return {
            "meta": self.meta,
            "items": {item_id: json.loads(encoded) for item_id, encoded in self.items.items()},
        }


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of every collection as of one load."""

    collections: Mapping[str, Mapping[str, str]]
    metas: Mapping[str, Mapping[str, Any]]
    loaded_at: datetime
    support_tickets: Mapping[str, str] | None = None

    @classmethod
    def build(
        cls,
        raw: dict[str, RawCollection],
        loaded_at: datetime,
        support_tickets: RawCollection | None = None,
    ) -> "Snapshot":
        return cls(
            collections=MappingProxyType(
                {name: MappingProxyType(dict(coll.items)) for name, coll in raw.items()}
            ),
            metas=MappingProxyType(
                {name: MappingProxyType(copy.deepcopy(coll.meta)) for name, coll in raw.items()}
            ),
            loaded_at=loaded_at,
            support_tickets=(
                MappingProxyType(dict(support_tickets.items))
                if support_tickets is not None
                else None
            ),
        )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.collections)

    def items(self, name: str) -> Mapping[str, str]:
        """Return the encoded items of collection ``name``."""
        return self.collections[name]

    def raw(self, name: str) -> RawCollection:
        """Return a fresh mutable copy of collection ``name``."""
        return RawCollection(
            meta=copy.deepcopy(dict(self.metas[name])),
            items=dict(self.collections[name]),
        )
