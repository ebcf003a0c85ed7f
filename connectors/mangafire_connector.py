"""MangaFire connector: title-page HTML scraping plus the filter search page."""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import quote, urljoin, urlparse

import aiohttp
from bs4 import BeautifulSoup

from .base_connector import (
    ConnectorError,
    ResolvedMetadata,
    SourceConnector,
    format_chapter_number,
    parse_chapter_number,
    validate_chapter_number,
)
from utils.text import any_candidate_matches, normalize_search_text, tokenize_search_text
from utils.time import parse_iso_utc

LOGGER = logging.getLogger(__name__)

MANGAFIRE_BASE_URL = "https://mangafire.to"
MIN_REQUEST_INTERVAL_SECONDS = 0.15

_CHAPTER_HREF_RE = re.compile(r"/chapter-(\d+(?:\.\d+)?)", re.IGNORECASE)
_CHAPTER_DATE_RE = re.compile(r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s+\d{1,2},\s+\d{4}")
_TITLE_SUFFIXES = (" Manga - Read Manga Online Free", " - Read Manga Online Free")
_UPDATED_META_KEYS = (
    "og:updated_time",
    "article:published_time",
    "article:modified_time",
    "datePublished",
    "dateModified",
)
_STOP_WORDS = frozenset({"a", "an", "my", "of", "the", "to"})


@dataclass
class SearchEntry:
    item_id: str
    title: str = ""
    cover_url: str = ""


def sanitize_title(raw) -> str:
    title = (raw or "").strip()
    for suffix in _TITLE_SUFFIXES:
        if title.endswith(suffix):
            title = title[: -len(suffix)]
    return title.strip()


def prettify_item_id(item_id: str) -> str:
    """``one-piece.dkw`` -> ``One Piece``."""
    slug = item_id.split(".", 1)[0] if item_id.find(".") > 0 else item_id
    words = slug.replace("-", " ").split()
    if not words:
        return item_id
    return " ".join(word[:1].upper() + word[1:] for word in words)


def extract_item_id(path: str, allow_reader: bool = False) -> str:
    segments = [segment for segment in (path or "").split("/") if segment]
    prefixes = ("manga", "read") if allow_reader else ("manga",)
    if len(segments) < 2 or segments[0] not in prefixes:
        raise ConnectorError("mangafire url must match /manga/{id}")
    item_id = segments[1].strip()
    if not item_id:
        raise ConnectorError("invalid mangafire manga id")
    return item_id


def parse_chapter_date(raw: str) -> Optional[datetime]:
    match = _CHAPTER_DATE_RE.search(raw or "")
    if not match:
        return None
    try:
        return datetime.strptime(" ".join(match.group(0).split()), "%b %d, %Y").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def latest_chapter_from_page(soup: BeautifulSoup) -> Tuple[Optional[float], Optional[datetime]]:
    """Highest ``/chapter-N`` link on the page and the date printed in its list row."""
    latest = None
    released_at = None
    for link in soup.find_all("a", href=True):
        match = _CHAPTER_HREF_RE.search(link["href"])
        if not match:
            continue
        number = parse_chapter_number(match.group(1))
        if number is None or (latest is not None and number <= latest):
            continue
        latest = number
        row = link.find_parent("li") or link
        released_at = parse_chapter_date(row.get_text(" "))
    return latest, released_at


def _meta_content(soup: BeautifulSoup, key: str) -> str:
    tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


def updated_at_from_meta(soup: BeautifulSoup) -> Optional[datetime]:
    for key in _UPDATED_META_KEYS:
        raw = _meta_content(soup, key)
        if raw:
            return parse_iso_utc(raw)
    return None


def cover_from_page(soup: BeautifulSoup) -> str:
    cover = _meta_content(soup, "og:image")
    if cover:
        return cover
    poster = soup.select_one("div.poster img[src]")
    return (poster.get("src") or "").strip() if poster else ""


def parse_search_entries(soup: BeautifulSoup) -> List[SearchEntry]:
    entries = {}
    for link in soup.find_all("a", href=True):
        path = urlparse(link["href"].strip()).path
        if not path.startswith("/manga/"):
            continue
        item_id = path[len("/manga/"):].strip("/")
        if not item_id or "/" in item_id:
            continue

        image = link.find("img")
        title = " ".join(link.get_text(" ").split())
        if not title:
            title = (link.get("title") or "").strip()
        if not title and image is not None:
            title = (image.get("alt") or "").strip()

        entry = entries.setdefault(item_id, SearchEntry(item_id=item_id))
        if not entry.title and title:
            entry.title = title
        if not entry.cover_url and image is not None:
            entry.cover_url = (image.get("src") or "").strip()

    for entry in entries.values():
        if not entry.title:
            entry.title = prettify_item_id(entry.item_id)
    return sorted(entries.values(), key=lambda entry: entry.title)


def matches_search_entry(entry: SearchEntry, normalized_query: str, tokens: List[str]) -> bool:
    candidates = [entry.title, prettify_item_id(entry.item_id)]
    if any_candidate_matches(candidates, normalized_query, tokens):
        return True
    significant = [token for token in tokens if token not in _STOP_WORDS]
    if significant and significant != tokens:
        return any_candidate_matches(candidates, "", significant)
    return False


class MangaFireConnector(SourceConnector):
    key = "mangafire"
    name = "MangaFire"
    allowed_hosts = ("mangafire.to",)

    def __init__(self, base_url=MANGAFIRE_BASE_URL, min_request_interval=MIN_REQUEST_INTERVAL_SECONDS):
        self.base_url = base_url.rstrip("/")
        self.min_request_interval = min_request_interval
        # Fetches run on separate event loops, so the request spacing is thread-safe.
        self._throttle_lock = threading.Lock()
        self._next_request_at = 0.0

    def _absolute_url(self, raw: str) -> str:
        trimmed = (raw or "").strip()
        if not trimmed:
            return ""
        return urljoin(self.base_url + "/", trimmed)

    def _title_url(self, item_id: str) -> str:
        return f"{self.base_url}/manga/{item_id}"

    async def _wait_for_request_window(self):
        with self._throttle_lock:
            now = time.monotonic()
            delay = max(self._next_request_at - now, 0.0)
            self._next_request_at = max(self._next_request_at, now) + self.min_request_interval
        if delay > 0:
            await asyncio.sleep(delay)

    async def _fetch_soup(self, session, url):
        await self._wait_for_request_window()
        body, _ = await self._get_text(session, url)
        return BeautifulSoup(body, "html.parser")

    async def health_check(self):
        async with self._open_session() as session:
            await self._fetch_soup(session, f"{self.base_url}/home")

    async def resolve(self, url):
        parsed = self._parse_owned_url(url)
        item_id = extract_item_id(parsed.path)

        async with self._open_session() as session:
            soup = await self._fetch_soup(session, self._title_url(quote(item_id)))

        latest_chapter, released_at = latest_chapter_from_page(soup)
        if released_at is None:
            released_at = updated_at_from_meta(soup)

        return ResolvedMetadata(
            source_key=self.key,
            source_item_id=item_id,
            title=sanitize_title(_meta_content(soup, "og:title")) or prettify_item_id(item_id),
            url=self._title_url(item_id),
            cover_url=self._absolute_url(cover_from_page(soup)),
            latest_chapter=latest_chapter,
            last_updated_at=released_at,
        )

    async def resolve_chapter_url(self, url, chapter):
        chapter = validate_chapter_number(chapter)
        parsed = self._parse_owned_url(url)
        item_id = extract_item_id(parsed.path, allow_reader=True)
        return f"{self.base_url}/read/{item_id}/en/chapter-{format_chapter_number(chapter)}"

    async def search_by_title(self, query, limit=10):
        normalized_query = normalize_search_text(query)
        tokens = tokenize_search_text(normalized_query)
        if not normalized_query:
            raise ConnectorError("title is required")
        limit = min(max(int(limit or 10), 1), 50)

        search_url = f"{self.base_url}/filter?keyword={quote((query or '').strip().lower())}"
        async with self._open_session() as session:
            try:
                soup = await self._fetch_soup(session, search_url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                LOGGER.warning("mangafire filter search failed, falling back to home page: %r", exc)
                soup = await self._fetch_soup(session, f"{self.base_url}/home")

        results = []
        for entry in parse_search_entries(soup):
            if not matches_search_entry(entry, normalized_query, tokens):
                continue
            results.append(
                ResolvedMetadata(
                    source_key=self.key,
                    source_item_id=entry.item_id,
                    title=entry.title,
                    url=self._title_url(entry.item_id),
                    cover_url=self._absolute_url(entry.cover_url),
                )
            )
            if len(results) >= limit:
                break
        return results
