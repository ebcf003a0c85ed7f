"""Concurrency primitives for background resolution fetches.

* ``InFlightRegistry``: at most one outstanding fetch per cache key.
* ``PageLiveness``: the dashboard listing currently on screen; queued fetches
  for any other listing are abandoned before they reach a connector.
* ``FetchPool`` / ``FetchPools``: fixed-size worker pools. A worker slot is the
  pool token, so a pool never runs more fetches than its capacity. Sources in
  the slow set get their own, smaller pool.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, Optional, Set

LOGGER = logging.getLogger(__name__)


class InFlightRegistry:
    def __init__(self):
        self._cond = threading.Condition()
        self._keys: Set[str] = set()

    def try_mark(self, key: str) -> bool:
        """Mark ``key`` in flight. Returns False if it already was."""
        with self._cond:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def clear(self, key: str) -> None:
        with self._cond:
            self._keys.discard(key)
            if not self._keys:
                self._cond.notify_all()

    def __contains__(self, key: str) -> bool:
        with self._cond:
            return key in self._keys

    def __len__(self) -> int:
        with self._cond:
            return len(self._keys)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: not self._keys, timeout=timeout)


class PageLiveness:
    def __init__(self):
        self._lock = threading.Lock()
        self._active_page = ""

    def set_active(self, page_key: Optional[str]) -> None:
        with self._lock:
            self._active_page = (page_key or "").strip()

    @property
    def active_page(self) -> str:
        with self._lock:
            return self._active_page

    def is_active(self, page_key: Optional[str]) -> bool:
        trimmed = (page_key or "").strip()
        return bool(trimmed) and trimmed == self.active_page

    def is_stale(self, page_key: Optional[str]) -> bool:
        """True when a fetch queued for ``page_key`` should be abandoned.

        Fetches queued without a page key are never stale.
        """
        if not (page_key or "").strip():
            return False
        return not self.is_active(page_key)


class FetchPool:
    def __init__(self, name: str, capacity: int):
        if capacity < 1:
            raise ValueError("pool capacity must be at least 1")
        self.name = name
        self.capacity = capacity
        self._executor = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix=f"fetch-{name}")
        self._lock = threading.Lock()
        self._queued = 0
        self._active = 0

    def submit(self, fn: Callable, *args) -> Future:
        with self._lock:
            self._queued += 1
        try:
            future = self._executor.submit(self._run, fn, *args)
        except RuntimeError:
            with self._lock:
                self._queued -= 1
            raise
        future.add_done_callback(self._release_if_cancelled)
        return future

    def _release_if_cancelled(self, future: Future) -> None:
        # A cancelled future never reaches _run.
        if future.cancelled():
            with self._lock:
                self._queued -= 1

    def _run(self, fn: Callable, *args):
        with self._lock:
            self._queued -= 1
            self._active += 1
        try:
            return fn(*args)
        finally:
            with self._lock:
                self._active -= 1

    def stats(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "capacity": self.capacity,
                "active": self._active,
                "queued": self._queued,
            }

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)


class FetchPools:
    def __init__(self, default_capacity: int, slow_capacity: int, slow_sources: Iterable[str] = ()):
        self.default = FetchPool("default", default_capacity)
        self.slow = FetchPool("slow", slow_capacity)
        self.slow_sources = frozenset(
            key.strip().lower() for key in slow_sources if key and key.strip()
        )
        if slow_capacity >= default_capacity:
            LOGGER.warning(
                "slow pool capacity (%s) is not smaller than the default pool (%s)",
                slow_capacity,
                default_capacity,
            )

    def is_slow_source(self, source_key: Optional[str]) -> bool:
        return (source_key or "").strip().lower() in self.slow_sources

    def select(self, source_key: Optional[str]) -> FetchPool:
        return self.slow if self.is_slow_source(source_key) else self.default

    def stats(self) -> list:
        return [self.default.stats(), self.slow.stats()]

    def shutdown(self, wait: bool = True) -> None:
        self.default.shutdown(wait=wait)
        self.slow.shutdown(wait=wait)
