from app import create_app
from connectors.registry import ConnectorRegistry
from services.resolution_service import ResolutionService, ResolutionSettings


class StubConnector:
    def __init__(self, key, healthy=True):
        self.key = key
        self.name = key.title()
        self.healthy = healthy

    async def health_check(self):
        if not self.healthy:
            raise RuntimeError("503 from upstream")

    async def resolve(self, url):
        raise NotImplementedError

    async def search_by_title(self, query, limit=10):
        return []


def _client(*connectors):
    registry = ConnectorRegistry()
    for connector in connectors:
        registry.register(connector)
    service = ResolutionService(registry, settings=ResolutionSettings(pool_size=2, slow_pool_size=1))
    app = create_app(registry=registry, resolution_service=service)
    app.config["TESTING"] = True
    return app.test_client()


def test_list_connectors():
    response = _client(StubConnector("webtoons"), StubConnector("mangadex")).get("/api/connectors")

    payload = response.get_json()
    assert response.status_code == 200
    assert [item["key"] for item in payload["connectors"]] == ["mangadex", "webtoons"]
    assert payload["connectors"][0]["supports_chapter_urls"] is False


def test_connector_health_all_ok():
    response = _client(StubConnector("mangadex")).get("/api/connectors/health")

    assert response.status_code == 200
    assert response.get_json()["success"] is True


def test_connector_health_reports_failure():
    response = _client(StubConnector("mangadex"), StubConnector("webtoons", healthy=False)).get(
        "/api/connectors/health"
    )

    payload = response.get_json()
    assert response.status_code == 503
    assert payload["success"] is False
    assert [item["healthy"] for item in payload["connectors"]] == [True, False]
