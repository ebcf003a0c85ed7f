"""Source-key to connector lookup."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Dict, List, Optional
from urllib.parse import urlparse

import config

from .base_connector import supports_chapter_urls

LOGGER = logging.getLogger(__name__)

HOST_ALIASES = {
    "mangadex.org": "mangadex",
    "mangafire.to": "mangafire",
    "asuracomic.net": "asuracomic",
    "flamecomics.xyz": "flamecomics",
    "mgeko.cc": "mgeko",
    "webtoons.com": "webtoons",
    "m.webtoons.com": "webtoons",
}

# Substring match on the URL host, first hit wins.
DOMAIN_HINTS = (
    ("mangadex", "mangadex"),
    ("mangafire", "mangafire"),
    ("mgeko", "mgeko"),
    ("asura", "asuracomic"),
    ("flame", "flamecomics"),
    ("webtoons", "webtoons"),
)


def _extract_host(raw: str) -> str:
    text = (raw or "").strip().lower()
    if not text:
        return ""
    parsed = urlparse(text if "://" in text else f"//{text}")
    host = parsed.hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host


def normalize_connector_key(raw: str) -> str:
    """Reduce a key, host or URL to a registry key (``https://www.mangadex.org/x`` -> ``mangadex``)."""
    host = _extract_host(raw)
    if not host:
        return ""
    return HOST_ALIASES.get(host, host)


def infer_source_key_from_url(url: str) -> str:
    host = _extract_host(url)
    if not host:
        return ""
    for hint, key in DOMAIN_HINTS:
        if hint in host:
            return key
    return ""


class ConnectorRegistry:
    def __init__(self):
        self._lock = threading.RLock()
        self._connectors: Dict[str, object] = {}

    def register(self, connector):
        if connector is None:
            raise ValueError("connector is required")
        key = (getattr(connector, "key", "") or "").strip()
        if not key:
            raise ValueError("connector key is required")

        with self._lock:
            if key in self._connectors:
                raise ValueError(f"connector {key!r} already registered")
            self._connectors[key] = connector

    def get(self, key) -> Optional[object]:
        trimmed = (key or "").strip()
        if not trimmed:
            return None

        with self._lock:
            connector = self._connectors.get(trimmed)
            if connector is not None:
                return connector

            lowered = trimmed.lower()
            connector = self._connectors.get(lowered)
            if connector is not None:
                return connector

            normalized = normalize_connector_key(lowered)
            if normalized:
                return self._connectors.get(normalized)
        return None

    def __contains__(self, key) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._connectors)

    def list(self) -> List[dict]:
        with self._lock:
            connectors = list(self._connectors.values())
        items = [
            {
                "key": connector.key,
                "name": connector.name or connector.key,
                "supports_chapter_urls": supports_chapter_urls(connector),
            }
            for connector in connectors
        ]
        return sorted(items, key=lambda item: item["key"])

    async def health(self, timeout=None) -> List[dict]:
        """Run every connector's health check concurrently, each bounded by ``timeout``."""
        timeout = timeout or config.CONNECTOR_HEALTH_TIMEOUT_SECONDS
        with self._lock:
            connectors = sorted(self._connectors.values(), key=lambda item: item.key)

        async def _check(connector):
            status = {"key": connector.key, "name": connector.name or connector.key, "healthy": True}
            try:
                await asyncio.wait_for(connector.health_check(), timeout=timeout)
            except Exception as exc:
                LOGGER.warning("connector health check failed key=%s error=%s", connector.key, exc)
                status["healthy"] = False
                status["error"] = str(exc) or exc.__class__.__name__
            return status

        return list(await asyncio.gather(*(_check(connector) for connector in connectors)))
