import views.status as status_view
from app import app as flask_app


class FakeCursor:
    def __init__(self, total=None, error=None):
        self.total = total
        self.error = error
        self.closed = False

    def execute(self, _query):
        if self.error:
            raise self.error

    def fetchone(self):
        return {"total": self.total}

    def close(self):
        self.closed = True


def _client():
    flask_app.config["TESTING"] = True
    return flask_app.test_client()


def test_status_does_not_leak_exception_details(monkeypatch):
    cursor = FakeCursor(error=Exception("secret-details"))
    monkeypatch.setattr(status_view, "get_db", lambda: object())
    monkeypatch.setattr(status_view, "get_cursor", lambda _conn: cursor)

    response = _client().get("/api/status")

    payload = response.get_json()
    assert response.status_code == 500
    assert payload == {"status": "error", "message": "internal error"}
    assert cursor.closed is True
    assert "secret-details" not in response.get_data(as_text=True)


def test_status_reports_tracker_count_and_resolver_pools(monkeypatch):
    cursor = FakeCursor(total=7)
    monkeypatch.setattr(status_view, "get_db", lambda: object())
    monkeypatch.setattr(status_view, "get_cursor", lambda _conn: cursor)

    response = _client().get("/api/status")

    payload = response.get_json()
    assert response.status_code == 200
    assert payload["status"] == "ok"
    assert payload["tracker_count"] == 7
    assert [pool["name"] for pool in payload["resolver"]["pools"]] == ["default", "slow"]
    assert cursor.closed is True


def test_healthz():
    response = _client().get("/healthz")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}
