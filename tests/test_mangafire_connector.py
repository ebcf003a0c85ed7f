import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest
from bs4 import BeautifulSoup

from connectors.base_connector import ConnectorError
from connectors.mangafire_connector import (
    MangaFireConnector,
    SearchEntry,
    extract_item_id,
    latest_chapter_from_page,
    matches_search_entry,
    parse_search_entries,
    prettify_item_id,
    sanitize_title,
)
from utils.text import normalize_search_text, tokenize_search_text

BASE = "https://mangafire.to"
TITLE_URL = "https://mangafire.to/manga/one-piece.dkw"

TITLE_PAGE = """
<html><head>
<meta property="og:title" content="One Piece Manga - Read Manga Online Free"/>
<meta property="og:updated_time" content="2025-06-02T10:00:00Z"/>
</head><body>
<div class="poster"><img src="/media/op.jpg"/></div>
<ul class="scroll-sm">
<li class="item"><a href="/read/one-piece.dkw/en/chapter-1150"><span>Chapter 1150</span><span>Jun 01, 2025</span></a></li>
<li class="item"><a href="/read/one-piece.dkw/en/chapter-1149.5"><span>Chapter 1149.5</span><span>May 25, 2025</span></a></li>
<li class="item"><a href="/read/one-piece.dkw/en/chapter-1149"><span>Chapter 1149</span><span>May 18, 2025</span></a></li>
</ul>
</body></html>
"""

SEARCH_PAGE = """
<html><body>
<div class="unit"><a href="/manga/one-piece.dkw" class="poster"><img src="/media/op.jpg" alt="One Piece"/></a>
<a href="/manga/one-piece.dkw">One Piece</a></div>
<div class="unit"><a href="/manga/one-punch-man.oo4"><img src="https://static.mfcdn.nl/opm.jpg" alt="Onepunch-Man"/></a></div>
<div class="unit"><a href="/manga/tower-of-god.x1">Tower of God</a></div>
<a href="/read/one-piece.dkw/en/chapter-1">Read</a>
</body></html>
"""


class NullSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _patched_connector(monkeypatch, pages):
    connector = MangaFireConnector(min_request_interval=0)
    requested = []

    async def fake_get_text(session, url, params=None):
        requested.append(url)
        page = pages[url]
        if isinstance(page, Exception):
            raise page
        return page, url

    monkeypatch.setattr(connector, "_open_session", lambda: NullSession())
    monkeypatch.setattr(connector, "_get_text", fake_get_text)
    return connector, requested


def test_sanitize_title_strips_site_suffix():
    assert sanitize_title(" One Piece Manga - Read Manga Online Free ") == "One Piece"
    assert sanitize_title("Berserk - Read Manga Online Free") == "Berserk"
    assert sanitize_title(None) == ""


def test_prettify_item_id_drops_hash_suffix():
    assert prettify_item_id("one-piece.dkw") == "One Piece"
    assert prettify_item_id("solo-leveling") == "Solo Leveling"
    assert prettify_item_id(".hidden") == ".hidden"


def test_extract_item_id_paths():
    assert extract_item_id("/manga/one-piece.dkw") == "one-piece.dkw"
    assert extract_item_id("/read/one-piece.dkw/en/chapter-3", allow_reader=True) == "one-piece.dkw"
    with pytest.raises(ConnectorError):
        extract_item_id("/read/one-piece.dkw/en/chapter-3")
    with pytest.raises(ConnectorError):
        extract_item_id("/manga")


def test_latest_chapter_from_page_takes_highest_link_and_its_date():
    latest, released_at = latest_chapter_from_page(BeautifulSoup(TITLE_PAGE, "html.parser"))

    assert latest == 1150.0
    assert released_at == datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_parse_search_entries_merges_links_per_title():
    entries = parse_search_entries(BeautifulSoup(SEARCH_PAGE, "html.parser"))

    by_id = {entry.item_id: entry for entry in entries}
    assert sorted(by_id) == ["one-piece.dkw", "one-punch-man.oo4", "tower-of-god.x1"]
    assert by_id["one-piece.dkw"].title == "One Piece"
    assert by_id["one-piece.dkw"].cover_url == "/media/op.jpg"
    assert by_id["one-punch-man.oo4"].title == "Onepunch-Man"
    assert [entry.title for entry in entries] == sorted(entry.title for entry in entries)


def test_matches_search_entry_ignores_stop_words():
    query = normalize_search_text("The Tower of God")
    entry = SearchEntry(item_id="tower-of-god.x1", title="Tower of God")

    assert matches_search_entry(entry, query, tokenize_search_text(query)) is True
    assert matches_search_entry(SearchEntry(item_id="berserk.1", title="Berserk"), query, tokenize_search_text(query)) is False


def test_resolve_builds_metadata_from_title_page(monkeypatch):
    connector, requested = _patched_connector(monkeypatch, {f"{BASE}/manga/one-piece.dkw": TITLE_PAGE})

    metadata = asyncio.run(connector.resolve(TITLE_URL))

    assert requested == [f"{BASE}/manga/one-piece.dkw"]
    assert metadata.source_key == "mangafire"
    assert metadata.source_item_id == "one-piece.dkw"
    assert metadata.title == "One Piece"
    assert metadata.url == TITLE_URL
    assert metadata.cover_url == f"{BASE}/media/op.jpg"
    assert metadata.latest_chapter == 1150.0
    assert metadata.last_updated_at == datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_resolve_falls_back_to_meta_timestamp_and_slug_title(monkeypatch):
    page = '<html><head><meta property="og:updated_time" content="2025-06-02T10:00:00Z"/></head></html>'
    connector, _ = _patched_connector(monkeypatch, {f"{BASE}/manga/solo-leveling.x": page})

    metadata = asyncio.run(connector.resolve("https://mangafire.to/manga/solo-leveling.x"))

    assert metadata.title == "Solo Leveling"
    assert metadata.latest_chapter is None
    assert metadata.last_updated_at == datetime(2025, 6, 2, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize("url", ["", "https://mangadex.org/manga/x", "https://mangafire.to/read/x/en/chapter-1"])
def test_resolve_rejects_foreign_or_reader_urls(url):
    with pytest.raises(ConnectorError):
        asyncio.run(MangaFireConnector().resolve(url))


def test_resolve_chapter_url_builds_reader_link():
    connector = MangaFireConnector()

    assert asyncio.run(connector.resolve_chapter_url(TITLE_URL, 12.0)) == f"{BASE}/read/one-piece.dkw/en/chapter-12"
    assert (
        asyncio.run(connector.resolve_chapter_url(f"{BASE}/read/one-piece.dkw/en/chapter-3", 1149.5))
        == f"{BASE}/read/one-piece.dkw/en/chapter-1149.5"
    )
    with pytest.raises(ConnectorError):
        asyncio.run(connector.resolve_chapter_url(TITLE_URL, 0))


def test_search_by_title_filters_entries(monkeypatch):
    connector, requested = _patched_connector(monkeypatch, {f"{BASE}/filter?keyword=one%20piece": SEARCH_PAGE})

    results = asyncio.run(connector.search_by_title("One Piece", limit=5))

    assert requested == [f"{BASE}/filter?keyword=one%20piece"]
    assert [(item.source_item_id, item.title) for item in results] == [("one-piece.dkw", "One Piece")]
    assert results[0].url == TITLE_URL
    assert results[0].cover_url == f"{BASE}/media/op.jpg"


def test_search_by_title_falls_back_to_home_page(monkeypatch):
    connector, requested = _patched_connector(
        monkeypatch,
        {
            f"{BASE}/filter?keyword=tower%20of%20god": aiohttp.ClientError("429"),
            f"{BASE}/home": SEARCH_PAGE,
        },
    )

    results = asyncio.run(connector.search_by_title("Tower of God"))

    assert requested == [f"{BASE}/filter?keyword=tower%20of%20god", f"{BASE}/home"]
    assert [item.source_item_id for item in results] == ["tower-of-god.x1"]


def test_search_by_title_requires_query():
    with pytest.raises(ConnectorError):
        asyncio.run(MangaFireConnector().search_by_title("  "))
