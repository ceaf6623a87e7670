"""Bounded cache of decoded ledger transactions keyed by signature."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from cachetools import FIFOCache

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True, slots=True)
class CachedTransaction:
    """Mints seen in a transaction's post-execution token balances."""

    mints: Tuple[str, ...]
    block_time: Optional[int] = None


class TransactionCache:
    """FIFO-evicting signature cache.

    Once ``capacity`` entries are stored, inserting a new signature evicts the
    entry that was inserted first. Reads do not refresh an entry's position.
    The cache lives for the process (or engine) lifetime and is never
    persisted.

    No lock is taken: callers share it between tasks on a single event loop,
    and every mutation is a single synchronous call.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._data: FIFOCache = FIFOCache(maxsize=capacity)
        self.hits = 0
        self.misses = 0

    def get(self, signature: str) -> CachedTransaction | None:
        value = self._data.get(signature)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def put(self, signature: str, value: CachedTransaction) -> None:
        # re-putting a signature counts as a fresh insertion
        self._data.pop(signature, None)
        self._data[signature] = value

    def __contains__(self, signature: object) -> bool:
        return signature in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data.keys()))

    def clear(self) -> None:
        self._data.clear()
        self.hits = 0
        self.misses = 0


__all__ = ["CachedTransaction", "DEFAULT_CAPACITY", "TransactionCache"]
