"""In-memory entity store backed by one JSON file per collection.

The store keeps an immutable ``Snapshot`` of every collection. Readers work
lock-free against the current snapshot and always receive freshly decoded
copies. Writers go through ``write_set``, which holds the guard's locks,
hands out working copies and, on commit, persists the changed collections
and reloads the full snapshot from disk.
"""

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol

from land_kpr.exceptions import (
    PartialCommitError,
    PersistenceError,
    ReloadError,
    StorageLoadError,
    StorageUnavailableError,
)
from land_kpr.models import codec
from land_kpr.store import loader, persistence
from land_kpr.store.collections import DECODERS, RawCollection, Snapshot
from land_kpr.store.guard import MutationGuard

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def decode_entities(name: str, items: Any) -> dict[str, Any]:
    """Decode encoded ``items`` of collection ``name`` into typed entities.

    Records that are not valid JSON or do not fit the entity type are
    skipped with a warning.
    """
    decoder = DECODERS.get(name)
    if decoder is None:
        raise KeyError(f"collection {name} has no entity type")
    entities = {}
    for item_id, encoded in items.items():
        try:
            entities[item_id] = decoder(item_id, json.loads(encoded))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping undecodable %s record %s: %s", name, item_id, exc)
    return entities


def decode_items(name: str, items: Any) -> dict[str, Any]:
    """Decode encoded ``items`` into plain JSON values, skipping invalid JSON."""
    values = {}
    for item_id, encoded in items.items():
        try:
            values[item_id] = json.loads(encoded)
        except ValueError as exc:
            logger.warning("Skipping invalid JSON in %s record %s: %s", name, item_id, exc)
    return values


class ReadableStore(Protocol):
    """Read capability: lock-free access to the current snapshot."""

    def storage_ready(self) -> bool: ...

    def get_items(self, name: str) -> dict[str, Any]: ...

    def get_entities(self, name: str) -> dict[str, Any]: ...

    def current_snapshot(self) -> Snapshot: ...


class WritableStore(ReadableStore, Protocol):
    """Write capability: working copies, locks, persistence and reload."""

    @property
    def storage_dir(self) -> Path: ...

    def loaded(self) -> dict[str, RawCollection]: ...

    def lock_for_file(self, name: str) -> threading.Lock: ...

    def reload_core(self) -> Snapshot: ...

    def write_set(self, *names: str) -> Any: ...


class WriteSet:
    """Working copies of a group of collections held under the guard's locks.

    Obtain one through ``EntityStore.write_set``; changes become durable only
    through ``commit``.
    """

    def __init__(self, store: "EntityStore", snapshot: Snapshot, names: tuple[str, ...]) -> None:
        self._store = store
        self._snapshot = snapshot
        self._names = names
        self._working: dict[str, RawCollection] = {}
        self._dirty: list[str] = []
        self.committed = False

    def _check(self, name: str) -> None:
        if name not in self._names:
            raise KeyError(f"collection {name} is not part of this write set")

    def collection(self, name: str) -> RawCollection:
        """Return the working copy of collection ``name``."""
        self._check(name)
        if name not in self._working:
            self._working[name] = self._snapshot.raw(name)
        return self._working[name]

    def get(self, name: str, item_id: str) -> Any | None:
        return self.collection(name).get(item_id)

    def records(self, name: str) -> dict[str, Any]:
        """Plain JSON records of ``name`` as currently staged."""
        return decode_items(name, self.collection(name).items)

    def entities(self, name: str) -> dict[str, Any]:
        """Typed entities of ``name`` as currently staged."""
        return decode_entities(name, self.collection(name).items)

    def entity(self, name: str, item_id: str) -> Any | None:
        """Typed entity ``item_id`` of ``name``; None when absent or undecodable."""
        coll = self.collection(name)
        if item_id not in coll:
            return None
        return decode_entities(name, {item_id: coll.items[item_id]}).get(item_id)

    def put(self, name: str, record: Any) -> None:
        """Stage ``record`` (an entity or a JSON dict carrying ``id``)."""
        if is_dataclass(record):
            record = codec.to_record(record)
        self.collection(name).put(record["id"], record)
        self._mark(name)

    def delete(self, name: str, item_id: str) -> bool:
        removed = self.collection(name).delete(item_id)
        if removed:
            self._mark(name)
        return removed

    def _mark(self, name: str) -> None:
        if name not in self._dirty:
            self._dirty.append(name)

    @property
    def dirty(self) -> tuple[str, ...]:
        return tuple(self._dirty)

    def commit(self, now: datetime | None = None) -> list[str]:
        """Persist every changed collection in staging order, then reload.

        Returns
        -------
        list[str]
            Names of the collections written.

        Raises
        ------
        PersistenceError
            If the first write fails; nothing was written.
        PartialCommitError
            If a later write fails after earlier collections were written.
            The snapshot is reloaded once from disk before raising.
        ReloadError
            If every write succeeded but the reload did not.
        """
        now = now or utc_now()
        written: list[str] = []
        for name in self._dirty:
            coll = self._working[name]
            coll.touch(now)
            try:
                self._store.write_collection(name, coll)
            except PersistenceError as exc:
                if not written:
                    raise
                logger.error(
                    "Commit failed on %s after writing %s", name, ", ".join(written)
                )
                try:
                    self._store.reload()
                except ReloadError as reload_exc:
                    logger.error("Reload after partial commit failed: %s", reload_exc)
                raise PartialCommitError(
                    f"commit failed on {name} after writing {', '.join(written)}",
                    written=written,
                    failed=name,
                ) from exc
            written.append(name)

        self.committed = True
        if written:
            self._store.reload()
        return written


class EntityStore:
    """Snapshot-based store over a storage directory.

    Parameters
    ----------
    directory : str | Path
        Storage directory holding one ``<collection>.json`` file each.
    max_backups : int | None
        Backups retained per collection; None keeps all.
    guard : MutationGuard | None
        Lock set shared by writers (a fresh one by default).
    """

    def __init__(
        self,
        directory: str | Path,
        max_backups: int | None = None,
        guard: MutationGuard | None = None,
    ) -> None:
        self._directory = Path(directory)
        self.max_backups = max_backups
        self.guard = guard or MutationGuard()
        self._snapshot: Snapshot | None = None
        self._swap_lock = threading.Lock()

    @classmethod
    def open(cls, directory: str | Path, **kwargs: Any) -> "EntityStore":
        """Create a store and load it; raises ``StorageLoadError`` subclasses."""
        store = cls(directory, **kwargs)
        store.load()
        return store

    @property
    def storage_dir(self) -> Path:
        return self._directory

    def _swap(self, snapshot: Snapshot) -> None:
        with self._swap_lock:
            self._snapshot = snapshot

    def load(self) -> Snapshot:
        """Load the directory and install the snapshot."""
        snapshot = loader.load(self._directory)
        self._swap(snapshot)
        logger.info("Storage loaded from %s", self._directory)
        return snapshot

    def reload(self) -> Snapshot:
        """Re-read every collection and swap the snapshot.

        On failure the previous snapshot stays installed.
        """
        try:
            snapshot = loader.load(self._directory)
        except StorageLoadError as exc:
            logger.error("Reload of %s failed: %s", self._directory, exc)
            raise ReloadError(f"reload {self._directory}: {exc}") from exc
        self._swap(snapshot)
        logger.info("Storage reloaded from %s", self._directory)
        return snapshot

    def reload_core(self) -> Snapshot:
        return self.reload()

    def storage_ready(self) -> bool:
        with self._swap_lock:
            return self._snapshot is not None

    def current_snapshot(self) -> Snapshot:
        with self._swap_lock:
            snapshot = self._snapshot
        if snapshot is None:
            raise StorageUnavailableError("storage not ready")
        return snapshot

    def loaded(self) -> dict[str, RawCollection]:
        """Fresh mutable copies of every collection."""
        snapshot = self.current_snapshot()
        return {name: snapshot.raw(name) for name in snapshot.names}

    def get_items(self, name: str) -> dict[str, Any]:
        """Freshly decoded JSON values of collection ``name``."""
        return decode_items(name, self.current_snapshot().items(name))

    def get_entities(self, name: str) -> dict[str, Any]:
        """Typed entities of collection ``name``; undecodable records are skipped."""
        return decode_entities(name, self.current_snapshot().items(name))

    def lock_for_file(self, name: str) -> threading.Lock:
        return self.guard.lock_for(name)

    def write_collection(self, name: str, collection: RawCollection) -> Path:
        return persistence.write_collection(
            self._directory, name, collection, max_backups=self.max_backups
        )

    @contextmanager
    def write_set(self, *names: str) -> Iterator[WriteSet]:
        """Hold the locks for ``names`` and yield working copies of them."""
        with self.guard.hold(*names):
            snapshot = self.current_snapshot()
            yield WriteSet(self, snapshot, tuple(dict.fromkeys(names)))
