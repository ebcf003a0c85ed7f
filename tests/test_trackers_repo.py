from datetime import datetime, timedelta, timezone

import pytest

import repositories.trackers_repo as trackers_repo


class FakeCursor:
    def __init__(self, rows=None, rowcount=1, one=None):
        self.rows = rows or []
        self.rowcount = rowcount
        self.one = one
        self.executed = []
        self.closed = False

    def execute(self, query, params=None):
        self.executed.append((" ".join(query.split()), params))

    def fetchall(self):
        return self.rows

    def fetchone(self):
        return self.one

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, cursor=None, fail=False):
        self._cursor = cursor or FakeCursor()
        self.fail = fail
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, cursor_factory=None):
        if self.fail:
            raise RuntimeError("connection lost")
        return self._cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


def test_list_for_polling_maps_rows_in_order():
    cursor = FakeCursor(
        rows=[
            {"id": 1, "title": " A ", "status": "reading", "source_url": "u1", "latest_known_chapter": 3, "source_key": "mangadex"},
            {"id": 2, "title": "B", "status": "on_hold", "source_url": "u2", "latest_known_chapter": None, "source_key": "webtoons"},
        ]
    )

    trackers = trackers_repo.list_for_polling(FakeConnection(cursor))

    assert [tracker.id for tracker in trackers] == [1, 2]
    assert trackers[0].title == "A"
    assert trackers[0].latest_known_chapter == 3.0
    assert trackers[1].latest_known_chapter is None
    query, params = cursor.executed[0]
    assert query.endswith("ORDER BY t.id ASC")
    assert "ANY" not in query
    assert params == ()
    assert cursor.closed is True


def test_list_for_polling_filters_statuses():
    cursor = FakeCursor()

    trackers_repo.list_for_polling(FakeConnection(cursor), [" Reading ", "reading", "dropped"])

    query, params = cursor.executed[0]
    assert "t.status = ANY(%s)" in query
    assert params == (["reading", "dropped"],)


def test_update_polling_state_keeps_release_timestamp_with_coalesce():
    cursor = FakeCursor(rowcount=1)
    checked = datetime(2025, 6, 1, 21, 0, tzinfo=timezone(timedelta(hours=9)))

    updated = trackers_repo.update_polling_state(FakeConnection(cursor), 5, 11.0, None, checked)

    query, params = cursor.executed[0]
    assert updated is True
    assert "latest_release_at = COALESCE(%s, latest_release_at)" in query
    assert params == (11.0, None, datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc), 5)


def test_update_polling_state_reports_missing_row():
    cursor = FakeCursor(rowcount=0)

    assert trackers_repo.update_polling_state(FakeConnection(cursor), 99, 1.0, None, datetime.now(timezone.utc)) is False


def test_list_dashboard_trackers_pagination_and_status():
    cursor = FakeCursor(rows=[{"id": 1}])

    rows = trackers_repo.list_dashboard_trackers(FakeConnection(cursor), "reading", limit=24, offset=48)

    query, params = cursor.executed[0]
    assert rows == [{"id": 1}]
    assert "WHERE t.status = %s" in query
    assert params == ("reading", 24, 48)


def test_count_trackers():
    cursor = FakeCursor(one={"total": 12})

    assert trackers_repo.count_trackers(FakeConnection(cursor)) == 12
    assert cursor.executed[0] == ("SELECT COUNT(*) AS total FROM trackers", ())


def test_store_commits_and_closes_each_update():
    connections = []

    def factory():
        conn = FakeConnection(FakeCursor(rowcount=1))
        connections.append(conn)
        return conn

    store = trackers_repo.TrackerPollingStore(connection_factory=factory)

    assert store.update_polling_state(1, 2.0, None, datetime.now(timezone.utc)) is True
    assert store.list_for_polling(["reading"]) == []

    assert [conn.commits for conn in connections] == [1, 0]
    assert all(conn.closed for conn in connections)


def test_store_rolls_back_failed_update():
    conn = FakeConnection(fail=True)
    store = trackers_repo.TrackerPollingStore(connection_factory=lambda: conn)

    with pytest.raises(RuntimeError):
        store.update_polling_state(1, 2.0, None, datetime.now(timezone.utc))

    assert conn.rollbacks == 1
    assert conn.closed is True
