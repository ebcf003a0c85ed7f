#connectors/base_connector.py
import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

import aiohttp
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

import config


class ConnectorError(Exception):
    """Raised by connectors for invalid input or unusable upstream responses."""


@dataclass
class ResolvedMetadata:
    source_key: str
    url: str
    title: str = ""
    source_item_id: Optional[str] = None
    cover_url: str = ""
    latest_chapter: Optional[float] = None
    last_updated_at: Optional[datetime] = None


@runtime_checkable
class ChapterURLResolver(Protocol):
    """Optional capability: map a title URL and chapter number to a deep link."""

    async def resolve_chapter_url(self, url: str, chapter: float) -> str:
        ...


def supports_chapter_urls(connector) -> bool:
    return isinstance(connector, ChapterURLResolver)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status >= 500 or exc.status == 429
    return isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError))


def validate_chapter_number(chapter) -> float:
    try:
        value = float(chapter)
    except (TypeError, ValueError):
        raise ConnectorError("invalid chapter") from None
    if not math.isfinite(value) or value <= 0:
        raise ConnectorError("invalid chapter")
    return value


def format_chapter_number(chapter) -> str:
    """Shortest decimal form: ``12.0`` -> ``"12"``, ``12.5`` -> ``"12.5"``, ``1e-07`` -> ``"0.0000001"``."""
    value = float(chapter)
    if value.is_integer():
        return str(int(value))
    if not math.isfinite(value):
        return repr(value)
    return format(Decimal(repr(value)), "f")


def parse_chapter_number(raw) -> Optional[float]:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


class SourceConnector(ABC):
    """
    모든 소스 커넥터를 위한 추상 기본 클래스입니다.
    각 커넥터는 특정 카탈로그 사이트의 URL을 현재 메타데이터(최신 화, 갱신 시각,
    표지 이미지)로 변환하는 방법을 구현해야 합니다.
    """

    key = ""
    name = ""
    allowed_hosts: tuple = ()

    @abstractmethod
    async def health_check(self):
        """소스가 응답하는지 확인합니다. 실패 시 예외를 발생시킵니다."""
        raise NotImplementedError

    @abstractmethod
    async def resolve(self, url) -> ResolvedMetadata:
        """소스 URL의 현재 메타데이터를 가져옵니다."""
        raise NotImplementedError

    @abstractmethod
    async def search_by_title(self, query, limit=10) -> List[ResolvedMetadata]:
        raise NotImplementedError

    def _client_timeout(self):
        return aiohttp.ClientTimeout(
            total=config.CONNECTOR_HTTP_TOTAL_TIMEOUT_SECONDS,
            connect=config.CONNECTOR_HTTP_CONNECT_TIMEOUT_SECONDS,
            sock_read=config.CONNECTOR_HTTP_SOCK_READ_TIMEOUT_SECONDS,
        )

    def _open_session(self):
        # A session is bound to the running event loop, so each operation opens its own.
        return aiohttp.ClientSession(timeout=self._client_timeout(), headers=config.CONNECTOR_HEADERS)

    def is_allowed_host(self, host) -> bool:
        host = (host or "").strip().lower()
        if not host:
            return False
        for allowed in self.allowed_hosts:
            allowed = allowed.strip().lower()
            if allowed and (host == allowed or host.endswith("." + allowed)):
                return True
        return False

    def _parse_owned_url(self, url):
        trimmed = (url or "").strip()
        if not trimmed:
            raise ConnectorError("url is required")
        parsed = urlparse(trimmed)
        if not parsed.scheme or not parsed.netloc:
            raise ConnectorError(f"invalid url: {trimmed!r}")
        if not self.is_allowed_host(parsed.hostname):
            raise ConnectorError(f"url does not belong to {self.key}")
        return parsed

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _get_json(self, session, url, params=None):
        async with session.get(url, params=params, headers={"Accept": "application/json"}) as response:
            response.raise_for_status()
            try:
                return await response.json(content_type=None)
            except ValueError as exc:
                raise ConnectorError(f"{self.key} returned malformed json") from exc

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _get_text(self, session, url, params=None):
        async with session.get(url, params=params, headers={"Accept": "text/html,application/xhtml+xml"}) as response:
            response.raise_for_status()
            return await response.text(), str(response.url)
