"""Non-blocking cover / chapter-link resolution for dashboard rendering.

Render code calls ``resolve_or_queue_cover`` and ``resolve_or_queue_chapter_url``.
Both answer from the result caches immediately. On a miss they queue at most one
background fetch per cache key and hand back a fallback value with
``pending=True``; the next render picks up whatever the fetch cached.

Background fetches run on worker threads from ``FetchPools``; connectors are
coroutines, so each fetch drives its own short-lived event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Optional, Tuple

import config
from connectors.base_connector import format_chapter_number, supports_chapter_urls
from connectors.registry import infer_source_key_from_url

from .fetch_pool import FetchPools, InFlightRegistry, PageLiveness
from .result_cache import ResultCache

LOGGER = logging.getLogger(__name__)


def build_cover_cache_key(source_key, source_url, source_item_id=None) -> str:
    base = (source_key or "").strip().lower() + "|"
    item_id = (source_item_id or "").strip()
    if item_id:
        return base + "item:" + item_id.lower()
    url = (source_url or "").strip()
    if url:
        return base + "url:" + url.lower()
    return base + "missing"


def build_chapter_url_cache_key(source_key, source_url, chapter) -> str:
    return "|".join(
        (
            (source_key or "").strip().lower(),
            (source_url or "").strip().lower(),
            format_chapter_number(chapter),
        )
    )


@dataclass
class ResolutionSettings:
    pool_size: int = 8
    slow_pool_size: int = 3
    slow_sources: tuple = ("mangafire",)
    timeout: float = 8.0
    slow_timeout: float = 15.0
    hit_ttl: float = 12 * 60 * 60
    miss_ttl: float = 2 * 60
    slow_miss_ttl: float = 25
    unsupported_ttl: float = 30 * 60
    domain_fallback: bool = True

    @classmethod
    def from_config(cls):
        return cls(
            pool_size=config.RESOLVER_POOL_SIZE,
            slow_pool_size=config.RESOLVER_SLOW_POOL_SIZE,
            slow_sources=tuple(config.RESOLVER_SLOW_SOURCES),
            timeout=config.RESOLVER_TIMEOUT_SECONDS,
            slow_timeout=config.RESOLVER_SLOW_TIMEOUT_SECONDS,
            hit_ttl=config.CACHE_HIT_TTL_SECONDS,
            miss_ttl=config.CACHE_MISS_TTL_SECONDS,
            slow_miss_ttl=config.CACHE_SLOW_MISS_TTL_SECONDS,
            unsupported_ttl=config.CACHE_UNSUPPORTED_TTL_SECONDS,
            domain_fallback=config.COVER_DOMAIN_FALLBACK_ENABLED,
        )


@dataclass
class ResolutionState:
    """Shared mutable state, owned by one ``ResolutionService`` per process."""

    cover_cache: ResultCache = field(default_factory=ResultCache)
    chapter_url_cache: ResultCache = field(default_factory=ResultCache)
    cover_in_flight: InFlightRegistry = field(default_factory=InFlightRegistry)
    chapter_url_in_flight: InFlightRegistry = field(default_factory=InFlightRegistry)
    page_liveness: PageLiveness = field(default_factory=PageLiveness)


class ResolutionService:
    def __init__(self, registry, settings: Optional[ResolutionSettings] = None, state: Optional[ResolutionState] = None):
        self.registry = registry
        self.settings = settings or ResolutionSettings.from_config()
        self.state = state or ResolutionState()
        self.pools = FetchPools(
            self.settings.pool_size,
            self.settings.slow_pool_size,
            self.settings.slow_sources,
        )

    # --- dashboard touch points ---

    def set_active_page(self, page_key: Optional[str]) -> None:
        self.state.page_liveness.set_active(page_key)

    def resolve_or_queue_cover(self, source_key, source_url, source_item_id=None, page_key="") -> Tuple[str, bool]:
        source_key = (source_key or "").strip()
        if not source_key:
            return "", False

        cache_key = build_cover_cache_key(source_key, source_url, source_item_id)
        lookup = self.state.cover_cache.get(cache_key)
        if lookup.present:
            if lookup.found:
                return lookup.value, False
            self._queue_fetch(
                self.state.cover_in_flight, cache_key, source_key, page_key,
                self.fetch_cover_url, source_key, source_url, source_item_id,
            )
            return "", True

        if not (source_url or "").strip():
            self.state.cover_cache.set(cache_key, "", False, self.settings.miss_ttl)
            return "", False

        self._queue_fetch(
            self.state.cover_in_flight, cache_key, source_key, page_key,
            self.fetch_cover_url, source_key, source_url, source_item_id,
        )
        return "", True

    def resolve_or_queue_chapter_url(self, source_key, source_url, chapter, page_key="") -> Tuple[str, bool]:
        source_url = (source_url or "").strip()
        if not source_url:
            return "", False
        source_key = (source_key or "").strip()
        if not source_key or chapter is None:
            return source_url, False

        cache_key = build_chapter_url_cache_key(source_key, source_url, chapter)
        lookup = self.state.chapter_url_cache.get(cache_key)
        if lookup.present and lookup.found:
            return lookup.value, False

        self._queue_fetch(
            self.state.chapter_url_in_flight, cache_key, source_key, page_key,
            self.fetch_chapter_url, source_key, source_url, chapter,
        )
        return source_url, True

    # --- background fetch plumbing ---

    def _queue_fetch(self, in_flight, cache_key, source_key, page_key, fetch, *args) -> bool:
        if not in_flight.try_mark(cache_key):
            return False

        pool = self.pools.select(source_key)
        try:
            future = pool.submit(self._run_fetch, in_flight, cache_key, page_key, fetch, args)
        except RuntimeError:
            in_flight.clear(cache_key)
            LOGGER.warning("fetch pool %s is shut down, dropping key=%s", pool.name, cache_key)
            return False

        future.add_done_callback(partial(_clear_if_cancelled, in_flight, cache_key))
        return True

    def _run_fetch(self, in_flight, cache_key, page_key, fetch, args):
        try:
            if self.state.page_liveness.is_stale(page_key):
                LOGGER.debug("abandoning fetch for inactive page key=%s page=%s", cache_key, page_key)
                return
            fetch(*args)
        except Exception:
            LOGGER.warning("background fetch failed key=%s", cache_key, exc_info=True)
        finally:
            in_flight.clear(cache_key)

    def _timeout_for(self, source_key) -> float:
        if self.pools.is_slow_source(source_key):
            return self.settings.slow_timeout
        return self.settings.timeout

    def _cover_miss_ttl(self, source_key) -> float:
        if self.pools.is_slow_source(source_key):
            return self.settings.slow_miss_ttl
        return self.settings.miss_ttl

    # --- upstream calls (run on pool workers, also usable synchronously) ---

    def fetch_cover_url(self, source_key, source_url, source_item_id=None) -> str:
        source_key = (source_key or "").strip()
        cache_key = build_cover_cache_key(source_key, source_url, source_item_id)
        lookup = self.state.cover_cache.get(cache_key)
        if lookup.present:
            return lookup.value if lookup.found else ""

        source_url = (source_url or "").strip()
        if not source_key or not source_url:
            self.state.cover_cache.set(cache_key, "", False, self.settings.miss_ttl)
            return ""

        try_keys = [source_key]
        if self.settings.domain_fallback:
            fallback_key = infer_source_key_from_url(source_url)
            if fallback_key and fallback_key != source_key.lower():
                try_keys.append(fallback_key)

        cover_url = asyncio.run(self._first_cover(try_keys, source_url))
        if cover_url:
            self.state.cover_cache.set(cache_key, cover_url, True, self.settings.hit_ttl)
            return cover_url

        self.state.cover_cache.set(cache_key, "", False, self._cover_miss_ttl(source_key))
        return ""

    async def _first_cover(self, try_keys, source_url) -> str:
        for key in try_keys:
            connector = self.registry.get(key)
            if connector is None:
                LOGGER.debug("no connector for cover key=%s", key)
                continue
            try:
                metadata = await asyncio.wait_for(connector.resolve(source_url), timeout=self._timeout_for(key))
            except Exception as exc:
                LOGGER.warning("cover resolve failed source=%s url=%s error=%r", key, source_url, exc)
                continue
            cover_url = ((metadata.cover_url if metadata else "") or "").strip()
            if cover_url:
                return cover_url
        return ""

    def fetch_chapter_url(self, source_key, source_url, chapter) -> str:
        source_url = (source_url or "").strip()
        source_key = (source_key or "").strip()
        if not source_url or not source_key:
            return source_url

        cache_key = build_chapter_url_cache_key(source_key, source_url, chapter)
        lookup = self.state.chapter_url_cache.get(cache_key)
        if lookup.present:
            return lookup.value if lookup.found else source_url

        connector = self.registry.get(source_key)
        if connector is None or not supports_chapter_urls(connector):
            self.state.chapter_url_cache.set(cache_key, "", False, self.settings.unsupported_ttl)
            return source_url

        try:
            chapter_url = asyncio.run(
                asyncio.wait_for(
                    connector.resolve_chapter_url(source_url, float(chapter)),
                    timeout=self._timeout_for(source_key),
                )
            )
        except Exception as exc:
            LOGGER.warning("chapter url resolve failed source=%s url=%s chapter=%s error=%r", source_key, source_url, chapter, exc)
            self.state.chapter_url_cache.set(cache_key, "", False, self.settings.miss_ttl)
            return source_url

        chapter_url = (chapter_url or "").strip()
        if not chapter_url:
            self.state.chapter_url_cache.set(cache_key, "", False, self.settings.unsupported_ttl)
            return source_url

        self.state.chapter_url_cache.set(cache_key, chapter_url, True, self.settings.hit_ttl)
        return chapter_url

    # --- lifecycle / introspection ---

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no fetch is queued or running, or ``timeout`` elapses."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for in_flight in (self.state.cover_in_flight, self.state.chapter_url_in_flight):
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            if not in_flight.wait_idle(remaining):
                return False
        return True

    def stats(self) -> dict:
        return {
            "active_page": self.state.page_liveness.active_page,
            "cover_cache_entries": len(self.state.cover_cache),
            "chapter_url_cache_entries": len(self.state.chapter_url_cache),
            "covers_in_flight": len(self.state.cover_in_flight),
            "chapter_urls_in_flight": len(self.state.chapter_url_in_flight),
            "pools": self.pools.stats(),
        }

    def shutdown(self, wait: bool = True) -> None:
        self.pools.shutdown(wait=wait)


def _clear_if_cancelled(in_flight, cache_key, future):
    if future.cancelled():
        in_flight.clear(cache_key)
