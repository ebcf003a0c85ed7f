import importlib

import pytest

import config as config_module

RESOLVER_ENV_VARS = (
    "POLLING_MINUTES",
    "NOTIFY_ENABLED",
    "NOTIFY_STATUSES",
    "NOTIFY_WEBHOOK_URLS",
    "POLL_STATUS_FILTER",
    "RESOLVER_POOL_SIZE",
    "RESOLVER_SLOW_POOL_SIZE",
    "RESOLVER_SLOW_SOURCES",
    "CACHE_MISS_TTL_SECONDS",
    "COVER_DOMAIN_FALLBACK_ENABLED",
)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    for name in RESOLVER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    monkeypatch.undo()
    importlib.reload(config_module)


def test_defaults_without_environment():
    config = importlib.reload(config_module)

    assert config.POLLING_MINUTES == 30
    assert config.NOTIFY_ENABLED is False
    assert config.NOTIFY_STATUSES == ["reading"]
    assert config.NOTIFY_WEBHOOK_URLS == []
    assert config.POLL_STATUS_FILTER == []
    assert config.RESOLVER_POOL_SIZE == 8
    assert config.RESOLVER_SLOW_POOL_SIZE == 3
    assert config.RESOLVER_SLOW_SOURCES == ["mangafire"]
    assert config.CACHE_HIT_TTL_SECONDS == 12 * 60 * 60
    assert config.CACHE_MISS_TTL_SECONDS == 120
    assert config.CACHE_SLOW_MISS_TTL_SECONDS == 25
    assert config.CACHE_UNSUPPORTED_TTL_SECONDS == 30 * 60
    assert config.COVER_DOMAIN_FALLBACK_ENABLED is True


@pytest.mark.parametrize("raw", ["0", "-5", "soon", ""])
def test_non_positive_or_invalid_poll_interval_falls_back(monkeypatch, raw):
    monkeypatch.setenv("POLLING_MINUTES", raw)

    config = importlib.reload(config_module)

    assert config.POLLING_MINUTES == 30


def test_notify_statuses_drop_unknown_values(monkeypatch):
    monkeypatch.setenv("NOTIFY_ENABLED", "yes")
    monkeypatch.setenv("NOTIFY_STATUSES", "Reading, on_hold, bogus, reading")

    config = importlib.reload(config_module)

    assert config.NOTIFY_ENABLED is True
    assert config.NOTIFY_STATUSES == ["reading", "on_hold"]


def test_webhook_urls_keep_case(monkeypatch):
    monkeypatch.setenv("NOTIFY_WEBHOOK_URLS", "https://hooks.example/A, ,https://hooks.example/b")

    config = importlib.reload(config_module)

    assert config.NOTIFY_WEBHOOK_URLS == ["https://hooks.example/A", "https://hooks.example/b"]


def test_slow_pool_is_clamped_below_default_pool(monkeypatch):
    monkeypatch.setenv("RESOLVER_POOL_SIZE", "4")
    monkeypatch.setenv("RESOLVER_SLOW_POOL_SIZE", "10")

    config = importlib.reload(config_module)

    assert config.RESOLVER_POOL_SIZE == 4
    assert config.RESOLVER_SLOW_POOL_SIZE == 2


def test_invalid_pool_sizes_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("RESOLVER_POOL_SIZE", "many")
    monkeypatch.setenv("RESOLVER_SLOW_POOL_SIZE", "0")

    config = importlib.reload(config_module)

    assert config.RESOLVER_POOL_SIZE == 8
    assert config.RESOLVER_SLOW_POOL_SIZE == 3


def test_slow_sources_are_lowercased_and_deduplicated(monkeypatch):
    monkeypatch.setenv("RESOLVER_SLOW_SOURCES", "MangaFire, mgeko,mangafire")
    monkeypatch.setenv("COVER_DOMAIN_FALLBACK_ENABLED", "off")

    config = importlib.reload(config_module)

    assert config.RESOLVER_SLOW_SOURCES == ["mangafire", "mgeko"]
    assert config.COVER_DOMAIN_FALLBACK_ENABLED is False
