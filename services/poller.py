"""Recurring latest-chapter poller.

One asyncio task runs a cycle immediately and then once per interval. A cycle
lists the eligible trackers and, one at a time, resolves each through its
source connector, persists the polling state and optionally notifies about a
new chapter. Failures are contained to the tracker they happen on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import config
from utils.time import ensure_utc, now_utc

from .notification_service import build_chapter_message

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30 * 60
DEFAULT_STOP_WAIT_SECONDS = 3.0


def is_new_chapter(previous: Optional[float], current: Optional[float]) -> bool:
    if current is None:
        return False
    if previous is None:
        return True
    return current > previous


@dataclass
class CycleSummary:
    listed: int = 0
    checked: int = 0
    advanced: int = 0
    notified: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self):
        return {
            "listed": self.listed,
            "checked": self.checked,
            "advanced": self.advanced,
            "notified": self.notified,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class Poller:
    def __init__(
        self,
        store,
        registry,
        notifier=None,
        *,
        interval_seconds: Optional[float] = None,
        notify_enabled: bool = False,
        notify_statuses: Iterable[str] = ("reading",),
        status_filter: Optional[Iterable[str]] = None,
        resolve_timeout: float = 15.0,
        notify_timeout: float = 5.0,
        clock=now_utc,
    ):
        if not interval_seconds or interval_seconds <= 0:
            interval_seconds = DEFAULT_INTERVAL_SECONDS
        self.store = store
        self.registry = registry
        self.notifier = notifier
        self.interval_seconds = float(interval_seconds)
        self.notify_enabled = bool(notify_enabled)
        self.notify_statuses = frozenset(s.strip().lower() for s in notify_statuses or () if s and s.strip())
        self.status_filter = [s.strip().lower() for s in status_filter or () if s and s.strip()]
        self.resolve_timeout = resolve_timeout
        self.notify_timeout = notify_timeout
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @classmethod
    def from_config(cls, store, registry, notifier=None):
        return cls(
            store,
            registry,
            notifier,
            interval_seconds=config.POLLING_MINUTES * 60,
            notify_enabled=config.NOTIFY_ENABLED,
            notify_statuses=config.NOTIFY_STATUSES,
            status_filter=config.POLL_STATUS_FILTER,
            resolve_timeout=config.POLL_RESOLVE_TIMEOUT_SECONDS,
            notify_timeout=config.NOTIFY_TIMEOUT_SECONDS,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the polling loop on the running event loop.

        Calling ``start`` again while the loop is alive returns the same task.
        """
        if self.running:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        return self._task

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def stop_wait(self, timeout: float = DEFAULT_STOP_WAIT_SECONDS) -> bool:
        """Request a stop and wait up to ``timeout`` seconds for the loop to exit.

        Returns False when the loop is still running after the timeout.
        """
        self.stop()
        task = self._task
        if task is None or task.done():
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            LOGGER.warning("poller did not stop within %.1fs", timeout)
            return False
        return True

    async def _loop(self):
        LOGGER.info("poller started interval=%ss", int(self.interval_seconds))
        while not self._stop_requested():
            try:
                await self.run_once()
            except Exception:
                LOGGER.exception("poll cycle failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        LOGGER.info("poller stopped")

    async def run_once(self) -> CycleSummary:
        """Run one polling cycle. Only a failure to list trackers propagates."""
        trackers = self.store.list_for_polling(self.status_filter or None)
        summary = CycleSummary(listed=len(trackers))

        for tracker in trackers:
            if self._stop_requested():
                LOGGER.info("poll cycle interrupted by stop request")
                break
            await self._poll_tracker(tracker, summary)

        LOGGER.info("poll cycle finished %s", summary.as_dict())
        return summary

    async def _poll_tracker(self, tracker, summary: CycleSummary) -> None:
        connector = self.registry.get(tracker.source_key)
        if connector is None:
            LOGGER.debug("tracker=%s skipped: no connector for source=%s", tracker.id, tracker.source_key)
            summary.skipped += 1
            return

        try:
            metadata = await asyncio.wait_for(connector.resolve(tracker.source_url), timeout=self.resolve_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("tracker=%s resolve timed out after %ss", tracker.id, self.resolve_timeout)
            summary.failed += 1
            return
        except Exception as exc:
            LOGGER.warning("tracker=%s resolve failed: %s", tracker.id, exc)
            summary.failed += 1
            return

        now = self._clock()
        previous = tracker.latest_known_chapter
        reported = metadata.latest_chapter if metadata is not None else None
        latest = reported if reported is not None else previous
        advanced = is_new_chapter(previous, latest)

        release_at = ensure_utc(metadata.last_updated_at) if metadata is not None else None
        if advanced and release_at is None:
            release_at = now

        try:
            self.store.update_polling_state(tracker.id, latest, release_at, now)
        except Exception as exc:
            LOGGER.warning("tracker=%s polling state update failed: %s", tracker.id, exc)
            summary.failed += 1
            return
        summary.checked += 1
        if advanced:
            summary.advanced += 1

        if self._should_notify(tracker, reported, advanced):
            if await self._notify(tracker, previous, latest):
                summary.notified += 1

    def _should_notify(self, tracker, reported, advanced) -> bool:
        if not self.notify_enabled or self.notifier is None:
            return False
        if (tracker.status or "").strip().lower() not in self.notify_statuses:
            return False
        return reported is not None and advanced

    async def _notify(self, tracker, previous, current) -> bool:
        message = build_chapter_message(tracker, previous, current)
        try:
            await asyncio.wait_for(self.notifier.notify(message), timeout=self.notify_timeout)
        except Exception as exc:
            LOGGER.warning("tracker=%s notification failed: %r", tracker.id, exc)
            return False
        return True
