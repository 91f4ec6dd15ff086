"""Per-collection mutation locks acquired in one global order."""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

from land_kpr.exceptions import LockOrderError
from land_kpr.store.collections import LOCK_ORDER


class MutationGuard:
    """Serializes writers per collection.

    Every multi-collection writer acquires its locks up front, in the order
    of ``order``, and releases them in reverse. A thread that already holds a
    lock may only nest acquisitions of strictly higher-ranked collections;
    anything else raises ``LockOrderError`` immediately.
    """

    def __init__(self, order: Iterable[str] = LOCK_ORDER) -> None:
        self._order = tuple(order)
        self._rank = {name: index for index, name in enumerate(self._order)}
        self._locks = {name: threading.Lock() for name in self._order}
        self._local = threading.local()

    @property
    def order(self) -> tuple[str, ...]:
        return self._order

    def lock_for(self, name: str) -> threading.Lock:
        """Return the raw lock for collection ``name``."""
        try:
            return self._locks[name]
        except KeyError:
            raise LockOrderError(f"unknown collection: {name}") from None

    def held(self) -> tuple[str, ...]:
        """Collections locked by the calling thread, in acquisition order."""
        return tuple(self._order[rank] for rank in self._held_ranks())

    def _held_ranks(self) -> list[int]:
        ranks = getattr(self._local, "ranks", None)
        if ranks is None:
            ranks = []
            self._local.ranks = ranks
        return ranks

    @contextmanager
    def hold(self, *names: str) -> Iterator[tuple[str, ...]]:
        """Hold the locks for ``names`` for the duration of the block.

        Duplicates are ignored; the caller's argument order does not matter.
        """
        for name in names:
            if name not in self._rank:
                raise LockOrderError(f"unknown collection: {name}")
        ranks = sorted({self._rank[name] for name in names})

        held = self._held_ranks()
        if held and ranks and ranks[0] <= held[-1]:
            raise LockOrderError(
                f"cannot lock {self._order[ranks[0]]} while holding {self._order[held[-1]]}"
            )

        acquired: list[int] = []
        try:
            for rank in ranks:
                self._locks[self._order[rank]].acquire()
                acquired.append(rank)
                held.append(rank)
            yield tuple(self._order[rank] for rank in ranks)
        finally:
            for rank in reversed(acquired):
                held.pop()
                self._locks[self._order[rank]].release()
