"""Default connector set for the web process and the poller."""

import logging

from .mangadex_connector import MangaDexConnector
from .mangafire_connector import MangaFireConnector
from .registry import ConnectorRegistry
from .webtoons_connector import WebtoonsConnector

LOGGER = logging.getLogger(__name__)

ALL_CONNECTORS = [
    MangaDexConnector,
    MangaFireConnector,
    WebtoonsConnector,
]


def build_default_registry(connector_classes=None):
    registry = ConnectorRegistry()
    for connector_class in connector_classes or ALL_CONNECTORS:
        try:
            registry.register(connector_class())
        except ValueError as exc:
            LOGGER.warning("skipping connector %s: %s", connector_class.__name__, exc)
    LOGGER.info("connector registry ready: %s", ", ".join(item["key"] for item in registry.list()))
    return registry
