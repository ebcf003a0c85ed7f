# database.py

import os
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from flask import g

DEFAULT_DB_TIMEZONE = "UTC"

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS sources (
        id SERIAL PRIMARY KEY,
        key TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        base_url TEXT,
        enabled BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trackers (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        source_id INTEGER NOT NULL REFERENCES sources(id) ON DELETE RESTRICT,
        source_item_id TEXT,
        source_url TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('reading', 'completed', 'on_hold', 'dropped', 'plan_to_read')),
        last_read_chapter DOUBLE PRECISION,
        latest_known_chapter DOUBLE PRECISION,
        latest_release_at TIMESTAMPTZ,
        last_checked_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_trackers_status ON trackers(status)",
    "CREATE INDEX IF NOT EXISTS idx_trackers_source_id ON trackers(source_id)",
)

DEFAULT_SOURCES = (
    ("mangadex", "MangaDex", "https://mangadex.org"),
    ("mangafire", "MangaFire", "https://mangafire.to"),
    ("webtoons", "WEBTOON", "https://www.webtoons.com"),
)


def _db_timezone():
    return (os.getenv("DB_TIMEZONE") or DEFAULT_DB_TIMEZONE).strip() or DEFAULT_DB_TIMEZONE


def _create_connection():
    """DATABASE_URL 또는 개별 DB_* 환경 변수로 PostgreSQL 연결을 생성합니다."""
    options = f"-c timezone={_db_timezone()}"
    database_url = (os.getenv("DATABASE_URL") or "").strip()
    if database_url:
        return psycopg2.connect(database_url, options=options)
    return psycopg2.connect(
        dbname=os.getenv("DB_NAME"),
        user=os.getenv("DB_USER"),
        password=os.getenv("DB_PASSWORD"),
        host=os.getenv("DB_HOST"),
        port=os.getenv("DB_PORT"),
        options=options,
    )


def get_db():
    """Application Context 내에서 유일한 DB 연결을 가져옵니다."""
    if 'db' not in g:
        g.db = _create_connection()
    return g.db


def close_db(exception=None):
    """요청(request)이 끝나면 자동으로 호출되어 DB 연결을 닫습니다."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def create_standalone_connection():
    """Flask 컨텍스트 밖(poller, 스크립트)에서 사용할 독립 연결을 생성합니다."""
    return _create_connection()


def get_cursor(conn):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)


@contextmanager
def managed_cursor(conn):
    cursor = get_cursor(conn)
    try:
        yield cursor
    finally:
        cursor.close()


def setup_database(conn):
    """테이블과 기본 소스 행을 멱등적으로 생성합니다."""
    with managed_cursor(conn) as cursor:
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement)
        for key, name, base_url in DEFAULT_SOURCES:
            cursor.execute(
                """
                INSERT INTO sources (key, name, base_url)
                VALUES (%s, %s, %s)
                ON CONFLICT (key) DO NOTHING
                """,
                (key, name, base_url),
            )
    conn.commit()


def setup_database_standalone():
    conn = create_standalone_connection()
    try:
        setup_database(conn)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
