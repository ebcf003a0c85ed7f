import math
import re

from .base_connector import (
    ConnectorError,
    ResolvedMetadata,
    SourceConnector,
    parse_chapter_number,
    validate_chapter_number,
)
from utils.text import any_candidate_matches, normalize_search_text, tokenize_search_text
from utils.time import parse_first_iso_utc

MANGADEX_API_URL = "https://api.mangadex.org"
MANGADEX_SITE_URL = "https://mangadex.org"
MANGADEX_COVER_URL = "https://uploads.mangadex.org/covers/{manga_id}/{file_name}.256.jpg"

_TITLE_ID_RE = re.compile(r"^[0-9a-fA-F-]{32,36}$")
_TITLE_LANG_PRIORITY = ("en", "ja-ro", "ja", "pt-br", "es")
_CONTENT_RATINGS = ("safe", "suggestive", "erotica", "pornographic")


def pick_best_title(title_map):
    if not isinstance(title_map, dict):
        return ""
    for lang in _TITLE_LANG_PRIORITY:
        value = (title_map.get(lang) or "").strip()
        if value:
            return value
    for value in title_map.values():
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def collect_alt_titles(primary, alt_titles):
    primary_key = normalize_search_text(primary)
    titles = []
    seen = {primary_key} if primary_key else set()
    for alt_map in alt_titles or []:
        if not isinstance(alt_map, dict):
            continue
        for value in alt_map.values():
            if not isinstance(value, str):
                continue
            key = normalize_search_text(value)
            if not key or key in seen:
                continue
            seen.add(key)
            titles.append(value.strip())
    return titles


def pick_cover_url(manga_id, relationships):
    for relationship in relationships or []:
        if relationship.get("type") != "cover_art":
            continue
        file_name = ((relationship.get("attributes") or {}).get("fileName") or "").strip()
        if file_name:
            return MANGADEX_COVER_URL.format(manga_id=manga_id, file_name=file_name)
    return ""


def latest_from_feed(chapters):
    """Return ``(chapter_number, released_at)`` of the highest numbered feed entry."""
    latest = None
    released_at = None
    for item in chapters or []:
        attributes = item.get("attributes") or {}
        number = parse_chapter_number(attributes.get("chapter"))
        if number is None:
            continue
        if latest is None or number > latest:
            latest = number
            released_at = parse_first_iso_utc(
                attributes.get("publishAt"),
                attributes.get("readableAt"),
                attributes.get("createdAt"),
            )
    return latest, released_at


def find_chapter_id(chapters, chapter):
    for item in chapters or []:
        number = parse_chapter_number((item.get("attributes") or {}).get("chapter"))
        if number is None or math.fabs(number - chapter) > 1e-9:
            continue
        chapter_id = (item.get("id") or "").strip()
        if chapter_id:
            return chapter_id
    return None


class MangaDexConnector(SourceConnector):
    """MangaDex public JSON API connector."""

    key = "mangadex"
    name = "MangaDex"
    allowed_hosts = ("mangadex.org",)

    def __init__(self, api_base_url=MANGADEX_API_URL):
        self.api_base_url = api_base_url.rstrip("/")

    def _extract_title_id(self, url):
        parsed = self._parse_owned_url(url)
        segments = [segment for segment in parsed.path.split("/") if segment]
        if len(segments) < 2 or segments[0] != "title":
            raise ConnectorError("mangadex url must match /title/{id}")
        title_id = segments[1].strip()
        if not _TITLE_ID_RE.match(title_id):
            raise ConnectorError("invalid mangadex title id")
        return title_id

    def _feed_params(self, limit):
        return [
            ("limit", str(limit)),
            ("offset", "0"),
            ("order[chapter]", "desc"),
            ("includeExternalUrl", "0"),
            ("translatedLanguage[]", "en"),
        ] + [("contentRating[]", rating) for rating in _CONTENT_RATINGS]

    async def _fetch_feed(self, session, manga_id, limit):
        payload = await self._get_json(
            session,
            f"{self.api_base_url}/manga/{manga_id}/feed",
            params=self._feed_params(limit),
        )
        return payload.get("data") or []

    async def health_check(self):
        async with self._open_session() as session:
            async with session.get(f"{self.api_base_url}/ping") as response:
                response.raise_for_status()

    async def resolve(self, url):
        title_id = self._extract_title_id(url)

        async with self._open_session() as session:
            payload = await self._get_json(
                session,
                f"{self.api_base_url}/manga/{title_id}",
                params=[("includes[]", "cover_art")],
            )
            data = payload.get("data") or {}
            if not data.get("id"):
                raise ConnectorError("mangadex response missing manga data")

            attributes = data.get("attributes") or {}
            title = pick_best_title(attributes.get("title"))
            alt_titles = collect_alt_titles(title, attributes.get("altTitles"))
            if not title:
                title = alt_titles.pop(0) if alt_titles else "Untitled"

            latest_chapter = parse_chapter_number(attributes.get("lastChapter"))
            feed_latest, released_at = latest_from_feed(await self._fetch_feed(session, data["id"], 100))
            if latest_chapter is None:
                latest_chapter = feed_latest

        return ResolvedMetadata(
            source_key=self.key,
            source_item_id=data["id"],
            title=title,
            url=url.strip(),
            cover_url=pick_cover_url(data["id"], data.get("relationships")),
            latest_chapter=latest_chapter,
            last_updated_at=released_at,
        )

    async def resolve_chapter_url(self, url, chapter):
        chapter = validate_chapter_number(chapter)
        title_id = self._extract_title_id(url)

        async with self._open_session() as session:
            chapters = await self._fetch_feed(session, title_id, 500)

        chapter_id = find_chapter_id(chapters, chapter)
        if not chapter_id:
            raise ConnectorError(f"chapter {chapter:g} not found")
        return f"{MANGADEX_SITE_URL}/chapter/{chapter_id}"

    async def search_by_title(self, query, limit=10):
        query = (query or "").strip()
        normalized_query = normalize_search_text(query)
        tokens = tokenize_search_text(normalized_query)
        if not normalized_query:
            raise ConnectorError("title is required")

        limit = min(max(int(limit or 10), 1), 50)
        params = [
            ("title", query),
            ("limit", str(min(limit * 4, 50))),
            ("includes[]", "cover_art"),
        ]

        results = []
        async with self._open_session() as session:
            payload = await self._get_json(session, f"{self.api_base_url}/manga", params=params)
            for item in payload.get("data") or []:
                manga_id = item.get("id")
                if not manga_id:
                    continue
                attributes = item.get("attributes") or {}
                title = pick_best_title(attributes.get("title"))
                alt_titles = collect_alt_titles(title, attributes.get("altTitles"))
                if not title:
                    title = alt_titles.pop(0) if alt_titles else "Untitled"
                if not any_candidate_matches([title] + alt_titles, normalized_query, tokens):
                    continue

                results.append(
                    ResolvedMetadata(
                        source_key=self.key,
                        source_item_id=manga_id,
                        title=title,
                        url=f"{MANGADEX_SITE_URL}/title/{manga_id}",
                        cover_url=pick_cover_url(manga_id, item.get("relationships")),
                        latest_chapter=parse_chapter_number(attributes.get("lastChapter")),
                    )
                )
                if len(results) >= limit:
                    break
        return results
