"""Repository for tracker polling state and the dashboard listing."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from database import create_standalone_connection, managed_cursor
from utils.record import read_field, read_optional_float, read_text
from utils.time import ensure_utc


@dataclass
class PollingTracker:
    id: int
    title: str
    status: str
    source_key: str
    source_url: str
    latest_known_chapter: Optional[float] = None


def _row_to_polling_tracker(row) -> PollingTracker:
    return PollingTracker(
        id=int(read_field(row, "id")),
        title=read_text(row, "title"),
        status=read_text(row, "status"),
        source_key=read_text(row, "source_key"),
        source_url=read_text(row, "source_url"),
        latest_known_chapter=read_optional_float(row, "latest_known_chapter"),
    )


def _normalize_statuses(statuses) -> List[str]:
    normalized = []
    for status in statuses or []:
        value = (status or "").strip().lower()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def list_for_polling(conn, statuses: Optional[Sequence[str]] = None) -> List[PollingTracker]:
    """Trackers whose source is enabled, ordered by id.

    ``statuses`` narrows the listing; empty or ``None`` lists every status.
    """
    sql = """
        SELECT
            t.id,
            t.title,
            t.status,
            t.source_url,
            t.latest_known_chapter,
            s.key AS source_key
        FROM trackers t
        JOIN sources s ON s.id = t.source_id
        WHERE s.enabled = TRUE
    """
    params = []
    wanted = _normalize_statuses(statuses)
    if wanted:
        sql += " AND t.status = ANY(%s)"
        params.append(wanted)
    sql += " ORDER BY t.id ASC"

    with managed_cursor(conn) as cursor:
        cursor.execute(sql, tuple(params))
        rows = cursor.fetchall()
    return [_row_to_polling_tracker(row) for row in rows]


def update_polling_state(
    conn,
    tracker_id: int,
    latest_known_chapter: Optional[float],
    latest_release_at: Optional[datetime],
    checked_at: datetime,
) -> bool:
    """Persist one poll result. A ``None`` release timestamp keeps the stored one.

    Returns True when the tracker row exists.
    """
    with managed_cursor(conn) as cursor:
        cursor.execute(
            """
            UPDATE trackers
            SET latest_known_chapter = %s,
                latest_release_at = COALESCE(%s, latest_release_at),
                last_checked_at = %s,
                updated_at = NOW()
            WHERE id = %s
            """,
            (
                latest_known_chapter,
                ensure_utc(latest_release_at),
                ensure_utc(checked_at),
                tracker_id,
            ),
        )
        return cursor.rowcount > 0


def list_dashboard_trackers(conn, status: Optional[str] = None, limit: int = 24, offset: int = 0):
    sql = """
        SELECT
            t.id,
            t.title,
            t.status,
            t.source_item_id,
            t.source_url,
            t.last_read_chapter,
            t.latest_known_chapter,
            t.latest_release_at,
            t.last_checked_at,
            s.key AS source_key,
            s.name AS source_name
        FROM trackers t
        JOIN sources s ON s.id = t.source_id
    """
    params = []
    if status:
        sql += " WHERE t.status = %s"
        params.append(status)
    sql += " ORDER BY t.updated_at DESC, t.id DESC LIMIT %s OFFSET %s"
    params.extend([limit, offset])

    with managed_cursor(conn) as cursor:
        cursor.execute(sql, tuple(params))
        return cursor.fetchall()


def count_trackers(conn, status: Optional[str] = None) -> int:
    sql = "SELECT COUNT(*) AS total FROM trackers"
    params = ()
    if status:
        sql += " WHERE status = %s"
        params = (status,)
    with managed_cursor(conn) as cursor:
        cursor.execute(sql, params)
        row = cursor.fetchone()
    return int(read_field(row, "total", 0) or 0)


class TrackerPollingStore:
    """Connection-owning persistence adapter used by the poller.

    Each call opens and closes its own connection.
    """

    def __init__(self, connection_factory=create_standalone_connection):
        self._connection_factory = connection_factory

    def list_for_polling(self, statuses=None) -> List[PollingTracker]:
        conn = self._connection_factory()
        try:
            return list_for_polling(conn, statuses)
        finally:
            conn.close()

    def update_polling_state(self, tracker_id, latest_known_chapter, latest_release_at, checked_at) -> bool:
        conn = self._connection_factory()
        try:
            updated = update_polling_state(conn, tracker_id, latest_known_chapter, latest_release_at, checked_at)
            conn.commit()
            return updated
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
