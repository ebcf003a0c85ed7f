"""Time utilities for UTC-aware timestamps.

Every timestamp the poller persists (``latest_release_at``, ``last_checked_at``)
and every timestamp a connector reports is normalized to an aware UTC datetime
here, so comparisons never depend on the host timezone.
"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach or convert to UTC.

    Naive datetimes are assumed to already be UTC wall-clock values.
    """

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO8601/RFC3339 string into an aware UTC datetime.

    * A trailing ``Z`` is accepted.
    * Naive strings are treated as UTC.

    Returns ``None`` if the input is empty or cannot be parsed.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    return ensure_utc(parsed)


def parse_first_iso_utc(*values: str | None) -> datetime | None:
    """Return the first value in ``values`` that parses as a timestamp."""

    for value in values:
        parsed = parse_iso_utc(value)
        if parsed is not None:
            return parsed
    return None
