# config.py
import json
import os

TRUTHY_VALUES = {"1", "true", "yes", "y", "on"}
FALSY_VALUES = {"0", "false", "no", "n", "off"}

TRACKER_STATUSES = ("reading", "completed", "on_hold", "dropped", "plan_to_read")


def _env_int(name, default, minimum=None):
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _env_float(name, default, minimum=None):
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value != value or (minimum is not None and value < minimum):
        return default
    return value


def _env_bool(name, default):
    raw = (os.getenv(name) or "").strip().lower()
    if raw in TRUTHY_VALUES:
        return True
    if raw in FALSY_VALUES:
        return False
    return default


def _env_list(name, default=""):
    raw = os.getenv(name)
    if raw is None:
        raw = default
    items = []
    for token in raw.split(","):
        token = token.strip().lower()
        if token and token not in items:
            items.append(token)
    return items


def _parse_cors_origins(raw):
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            origins = [str(item).strip() for item in parsed if str(item).strip()]
            return origins or None
    origins = [item.strip() for item in text.split(",") if item.strip()]
    return origins or None


# --- Web ---
CORS_ALLOW_ORIGINS = _parse_cors_origins(os.getenv("CORS_ALLOW_ORIGINS"))
CORS_SUPPORTS_CREDENTIALS = _env_bool("CORS_SUPPORTS_CREDENTIALS", False)
DASHBOARD_PAGE_SIZE = _env_int("DASHBOARD_PAGE_SIZE", 24, minimum=1)
DASHBOARD_MAX_PAGE_SIZE = 100

# --- Logging ---
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()

# --- Connector HTTP Client Defaults ---
CONNECTOR_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36',
    'Accept-Language': 'en-US,en;q=0.9',
}
CONNECTOR_HTTP_TOTAL_TIMEOUT_SECONDS = _env_int('CONNECTOR_HTTP_TOTAL_TIMEOUT_SECONDS', 20, minimum=1)
CONNECTOR_HTTP_CONNECT_TIMEOUT_SECONDS = _env_int('CONNECTOR_HTTP_CONNECT_TIMEOUT_SECONDS', 10, minimum=1)
CONNECTOR_HTTP_SOCK_READ_TIMEOUT_SECONDS = _env_int('CONNECTOR_HTTP_SOCK_READ_TIMEOUT_SECONDS', 15, minimum=1)
CONNECTOR_HEALTH_TIMEOUT_SECONDS = _env_float('CONNECTOR_HEALTH_TIMEOUT_SECONDS', 5.0, minimum=0.1)

# --- Poller ---
POLLING_ENABLED = _env_bool("POLLING_ENABLED", True)
POLLING_MINUTES = _env_int("POLLING_MINUTES", 30, minimum=1)
POLL_RESOLVE_TIMEOUT_SECONDS = _env_float("POLL_RESOLVE_TIMEOUT_SECONDS", 15.0, minimum=0.1)
POLL_STATUS_FILTER = [s for s in _env_list("POLL_STATUS_FILTER") if s in TRACKER_STATUSES]
POLLER_STOP_WAIT_SECONDS = _env_float("POLLER_STOP_WAIT_SECONDS", 2.0, minimum=0.1)

# --- Notifications ---
NOTIFY_ENABLED = _env_bool("NOTIFY_ENABLED", False)
NOTIFY_STATUSES = [s for s in _env_list("NOTIFY_STATUSES", "reading") if s in TRACKER_STATUSES]
NOTIFY_WEBHOOK_URLS = [
    url.strip() for url in (os.getenv("NOTIFY_WEBHOOK_URLS") or "").split(",") if url.strip()
]
NOTIFY_TIMEOUT_SECONDS = _env_float("NOTIFY_TIMEOUT_SECONDS", 5.0, minimum=0.1)
WEBHOOK_HTTP_TIMEOUT_SECONDS = _env_float("WEBHOOK_HTTP_TIMEOUT_SECONDS", 10.0, minimum=0.1)

# --- Resolution (covers / chapter links) ---
RESOLVER_POOL_SIZE = _env_int("RESOLVER_POOL_SIZE", 8, minimum=2)
RESOLVER_SLOW_POOL_SIZE = _env_int("RESOLVER_SLOW_POOL_SIZE", 3, minimum=1)
if RESOLVER_SLOW_POOL_SIZE >= RESOLVER_POOL_SIZE:
    RESOLVER_SLOW_POOL_SIZE = max(1, RESOLVER_POOL_SIZE // 2)
RESOLVER_SLOW_SOURCES = _env_list("RESOLVER_SLOW_SOURCES", "mangafire")
RESOLVER_TIMEOUT_SECONDS = _env_float("RESOLVER_TIMEOUT_SECONDS", 8.0, minimum=0.1)
RESOLVER_SLOW_TIMEOUT_SECONDS = _env_float("RESOLVER_SLOW_TIMEOUT_SECONDS", 15.0, minimum=0.1)
COVER_DOMAIN_FALLBACK_ENABLED = _env_bool("COVER_DOMAIN_FALLBACK_ENABLED", True)

CACHE_HIT_TTL_SECONDS = _env_int("CACHE_HIT_TTL_SECONDS", 12 * 60 * 60, minimum=1)
CACHE_MISS_TTL_SECONDS = _env_int("CACHE_MISS_TTL_SECONDS", 2 * 60, minimum=1)
CACHE_SLOW_MISS_TTL_SECONDS = _env_int("CACHE_SLOW_MISS_TTL_SECONDS", 25, minimum=1)
CACHE_UNSUPPORTED_TTL_SECONDS = _env_int("CACHE_UNSUPPORTED_TTL_SECONDS", 30 * 60, minimum=1)

# --- Database ---
DB_TIMEZONE = (os.getenv("DB_TIMEZONE") or "UTC").strip() or "UTC"
