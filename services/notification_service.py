# services/notification_service.py
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp

import config

LOGGER = logging.getLogger(__name__)


class NotificationError(Exception):
    pass


@dataclass
class NotificationMessage:
    title: str
    body: str
    context: Dict[str, object] = field(default_factory=dict)

    def to_payload(self):
        return {"title": self.title, "body": self.body, "context": dict(self.context)}


def _format_chapter(value):
    if value is None:
        return None
    return float(value)


def build_chapter_message(tracker, previous, current):
    """Build the "new chapter" message for a tracker whose latest chapter advanced.

    Args:
        tracker: ``PollingTracker`` (or anything exposing the same attributes).
        previous (float | None): Latest known chapter before this cycle.
        current (float): Newly resolved latest chapter.

    Returns:
        NotificationMessage
    """
    title = (tracker.title or "").strip() or f"Tracker {tracker.id}"
    return NotificationMessage(
        title="New chapter available",
        body=f"{title} now has chapter {current:.2f}",
        context={
            "trackerId": tracker.id,
            "title": title,
            "status": tracker.status,
            "source": tracker.source_key,
            "sourceUrl": tracker.source_url,
            "latestKnownBefore": _format_chapter(previous),
            "latestKnownNow": _format_chapter(current),
        },
    )


class NoopNotifier:
    name = "noop"

    async def notify(self, message: NotificationMessage) -> None:
        LOGGER.debug("notification dropped (noop): %s", message.title)


class WebhookNotifier:
    """POST the message as JSON to a single webhook URL."""

    name = "webhook"

    def __init__(self, url: str, timeout_seconds: Optional[float] = None):
        url = (url or "").strip()
        if not url:
            raise ValueError("webhook url is required")
        self.url = url
        self.timeout_seconds = timeout_seconds or config.WEBHOOK_HTTP_TIMEOUT_SECONDS

    async def notify(self, message: NotificationMessage) -> None:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, json=message.to_payload()) as response:
                if response.status < 200 or response.status >= 300:
                    detail = (await response.text())[:200]
                    raise NotificationError(
                        f"webhook {self.url} returned HTTP {response.status}: {detail}"
                    )


class MultiNotifier:
    """Deliver to every notifier in order; the first failure is raised."""

    name = "multi"

    def __init__(self, notifiers: List):
        self.notifiers = list(notifiers)

    async def notify(self, message: NotificationMessage) -> None:
        for notifier in self.notifiers:
            await notifier.notify(message)


def build_notifier(urls=None, timeout_seconds=None):
    """Build the notifier configured by ``NOTIFY_WEBHOOK_URLS`` (or ``urls``)."""
    if urls is None:
        urls = config.NOTIFY_WEBHOOK_URLS
    targets = [url.strip() for url in urls or [] if url and url.strip()]
    if not targets:
        return NoopNotifier()
    notifiers = [WebhookNotifier(url, timeout_seconds=timeout_seconds) for url in targets]
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(notifiers)
