"""WEBTOON connector: episode-list HTML parsing plus the immediate-search JSON endpoint."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import parse_qs

from bs4 import BeautifulSoup

from .base_connector import ConnectorError, ResolvedMetadata, SourceConnector, validate_chapter_number
from utils.text import any_candidate_matches, normalize_search_text, tokenize_search_text

WEBTOONS_BASE_URL = "https://www.webtoons.com"
WEBTOONS_SEARCH_LOCALE = "en"
EPISODES_PER_PAGE = 10

_DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%Y-%m-%d")


@dataclass
class EpisodeEntry:
    number: int
    url: str
    date_raw: str = ""


def _clean_text(value) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split()).strip()


def to_absolute_url(base_url: str, raw: str) -> str:
    trimmed = (raw or "").strip()
    if not trimmed:
        return ""
    if trimmed.startswith(("http://", "https://")):
        return trimmed
    if trimmed.startswith("//"):
        return "https:" + trimmed
    base = base_url.rstrip("/")
    if trimmed.startswith("/"):
        return base + trimmed
    return f"{base}/{trimmed}"


def parse_webtoons_date(raw: str) -> Optional[datetime]:
    text = _clean_text(raw)
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def extract_title_no(query: str) -> int:
    values = parse_qs(query or "")
    raw = (values.get("title_no") or values.get("titleNo") or [""])[0].strip()
    if not raw:
        raise ConnectorError("webtoons url must include title_no or titleNo")
    try:
        title_no = int(raw)
    except ValueError:
        raise ConnectorError("invalid webtoons title number") from None
    if title_no <= 0:
        raise ConnectorError("invalid webtoons title number")
    return title_no


def parse_episode_number(chapter) -> int:
    value = validate_chapter_number(chapter)
    rounded = round(value)
    if math.fabs(value - rounded) > 1e-9:
        raise ConnectorError("webtoons chapter must be a whole episode number")
    return int(rounded)


def extract_episode_entries(soup: BeautifulSoup, base_url: str) -> List[EpisodeEntry]:
    entries = []
    for item in soup.select("li._episodeItem[data-episode-no]"):
        try:
            number = int(str(item.get("data-episode-no", "")).strip())
        except ValueError:
            continue
        if number <= 0:
            continue

        href = ""
        for link in item.find_all("a", href=True):
            if "episode_no=" in link["href"]:
                href = link["href"]
                break
        date_tag = item.select_one("span.date")
        entries.append(
            EpisodeEntry(
                number=number,
                url=to_absolute_url(base_url, href),
                date_raw=_clean_text(date_tag.get_text()) if date_tag else "",
            )
        )
    return entries


def find_episode_entry(entries: List[EpisodeEntry], episode_no: int) -> Optional[EpisodeEntry]:
    for entry in entries:
        if entry.number == episode_no:
            return entry
    return None


def _meta_content(soup: BeautifulSoup, prop: str) -> str:
    tag = soup.find("meta", attrs={"property": prop})
    if tag is None:
        return ""
    return _clean_text(tag.get("content"))


class WebtoonsConnector(SourceConnector):
    key = "webtoons"
    name = "WEBTOON"
    allowed_hosts = ("webtoons.com",)

    def __init__(self, base_url=WEBTOONS_BASE_URL, search_locale=WEBTOONS_SEARCH_LOCALE):
        self.base_url = base_url.rstrip("/")
        self.search_locale = search_locale

    def _episode_list_url(self, title_no: int, page: int = 1) -> str:
        url = f"{self.base_url}/episodeList?titleNo={title_no}"
        if page > 1:
            url += f"&page={page}"
        return url

    async def _fetch_soup(self, session, url):
        body, final_url = await self._get_text(session, url)
        return BeautifulSoup(body, "html.parser"), final_url

    async def _search_immediate(self, session, query):
        payload = await self._get_json(
            session,
            f"{self.base_url}/{self.search_locale}/search/immediate",
            params={"keyword": query.strip()},
        )
        if not payload.get("success"):
            raise ConnectorError("webtoons search was not successful")
        return (payload.get("result") or {}).get("searchedList") or []

    async def health_check(self):
        async with self._open_session() as session:
            await self._search_immediate(session, "webtoon")

    async def resolve(self, url):
        parsed = self._parse_owned_url(url)
        title_no = extract_title_no(parsed.query)
        endpoint = self._episode_list_url(title_no)

        async with self._open_session() as session:
            soup, final_url = await self._fetch_soup(session, endpoint)

        canonical_tag = soup.find("link", rel="canonical")
        canonical_url = _clean_text(canonical_tag.get("href")) if canonical_tag else ""

        title = _meta_content(soup, "og:title")
        if not title:
            heading = soup.select_one("h1.subj")
            title = _clean_text(heading.get_text(" ")) if heading else ""

        entries = extract_episode_entries(soup, self.base_url)
        latest_chapter = None
        last_updated_at = None
        if entries:
            latest_entry = max(entries, key=lambda entry: entry.number)
            latest_chapter = float(latest_entry.number)
            last_updated_at = parse_webtoons_date(latest_entry.date_raw)

        return ResolvedMetadata(
            source_key=self.key,
            source_item_id=str(title_no),
            title=title or f"WEBTOON {title_no}",
            url=canonical_url or final_url or endpoint,
            cover_url=to_absolute_url(self.base_url, _meta_content(soup, "og:image")),
            latest_chapter=latest_chapter,
            last_updated_at=last_updated_at,
        )

    async def resolve_chapter_url(self, url, chapter):
        episode_no = parse_episode_number(chapter)
        parsed = self._parse_owned_url(url)
        title_no = extract_title_no(parsed.query)

        async with self._open_session() as session:
            soup, _ = await self._fetch_soup(session, self._episode_list_url(title_no))
            entries = extract_episode_entries(soup, self.base_url)
            if not entries:
                raise ConnectorError("webtoons episode list is empty")

            entry = find_episode_entry(entries, episode_no)
            if entry and entry.url:
                return entry.url

            latest_episode = max(item.number for item in entries)
            if episode_no > latest_episode:
                raise ConnectorError(f"episode {episode_no} not found")

            # Episode lists are newest-first, EPISODES_PER_PAGE per page.
            page = max((latest_episode - episode_no) // EPISODES_PER_PAGE + 1, 1)
            if page > 1:
                soup, _ = await self._fetch_soup(session, self._episode_list_url(title_no, page))
                entry = find_episode_entry(extract_episode_entries(soup, self.base_url), episode_no)
                if entry and entry.url:
                    return entry.url

        raise ConnectorError(f"episode {episode_no} not found")

    async def search_by_title(self, query, limit=10):
        normalized_query = normalize_search_text(query)
        tokens = tokenize_search_text(normalized_query)
        if not normalized_query:
            raise ConnectorError("title is required")
        limit = min(max(int(limit or 10), 1), 50)

        async with self._open_session() as session:
            searched = await self._search_immediate(session, query)

        results = []
        for item in searched:
            title_no = item.get("titleNo")
            title = _clean_text(item.get("title"))
            if not title_no or not title:
                continue
            if not any_candidate_matches([title], normalized_query, tokens):
                continue
            results.append(
                ResolvedMetadata(
                    source_key=self.key,
                    source_item_id=str(title_no),
                    title=title,
                    url=self._episode_list_url(int(title_no)),
                    cover_url=to_absolute_url(self.base_url, item.get("thumbnailMobile") or ""),
                )
            )
            if len(results) >= limit:
                break
        return results
