"""In-memory TTL store for resolution results.

Entries carry a ``found`` flag so a cached "resolved to nothing" (negative
entry, short TTL) can be told apart from a cached value (positive entry, long
TTL). Expired entries are evicted lazily by the read that notices them.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, NamedTuple


@dataclass(frozen=True)
class CacheEntry:
    value: str
    found: bool
    expires_at: float


class CacheLookup(NamedTuple):
    value: str
    found: bool
    present: bool


_ABSENT = CacheLookup("", False, False)


class ResultCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheLookup:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _ABSENT
            if now >= entry.expires_at:
                del self._entries[key]
                return _ABSENT
        return CacheLookup(entry.value, entry.found, True)

    def set(self, key: str, value: str, found: bool, ttl: float) -> None:
        entry = CacheEntry(value=value or "", found=bool(found), expires_at=self._clock() + float(ttl))
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
