"""Database operations for Turso/libsql."""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
import libsql_experimental as libsql

from .config import config
from .models import User, TokenRecord, DailyAnalytics, SyncLog

logger = logging.getLogger(__name__)

_connection = None


class StorageUnavailableError(Exception):
    """Raised when the database cannot be reached or a query against it fails."""


class _StorageCursor:
    """Cursor wrapper that reports driver failures as StorageUnavailableError."""

    def __init__(self, cursor):
        self._cursor = cursor

    def fetchone(self):
        try:
            return self._cursor.fetchone()
        except Exception as e:
            raise StorageUnavailableError(f"Database read failed: {e}") from e

    def fetchall(self):
        try:
            return self._cursor.fetchall()
        except Exception as e:
            raise StorageUnavailableError(f"Database read failed: {e}") from e


class _StorageConnection:
    """
    Connection wrapper used by every query in this module.

    Remote libsql errors only show up once a statement runs, so connect-time
    checks alone are not enough to detect an unreachable store.
    """

    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql: str, parameters=()):
        try:
            return _StorageCursor(self._conn.execute(sql, parameters))
        except Exception as e:
            raise StorageUnavailableError(f"Database query failed: {e}") from e

    def executescript(self, script: str):
        try:
            return self._conn.executescript(script)
        except Exception as e:
            raise StorageUnavailableError(f"Database script failed: {e}") from e

    def commit(self):
        try:
            self._conn.commit()
        except Exception as e:
            raise StorageUnavailableError(f"Database commit failed: {e}") from e


def get_connection() -> _StorageConnection:
    """Get or create database connection."""
    global _connection
    if _connection is None:
        try:
            if config.DATABASE_AUTH_TOKEN:
                _connection = libsql.connect(
                    database=config.DATABASE_URL,
                    auth_token=config.DATABASE_AUTH_TOKEN
                )
            else:
                _connection = libsql.connect(database=config.DATABASE_URL)
        except Exception as e:
            raise StorageUnavailableError(f"Could not connect to {config.DATABASE_URL}: {e}") from e
    return _StorageConnection(_connection)


def _to_db_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def _now() -> str:
    return _to_db_datetime(datetime.now(timezone.utc))


def init_db():
    """Initialize database tables if they don't exist."""
    conn = get_connection()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            channel_id TEXT,
            channel_title TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS tokens (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            access_token TEXT NOT NULL,
            refresh_token TEXT,
            expires_at TEXT,
            token_type TEXT,
            scope TEXT,
            version INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL,
            UNIQUE (user_id, provider)
        );

        CREATE TABLE IF NOT EXISTS youtube_analytics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            date TEXT NOT NULL,
            views INTEGER NOT NULL DEFAULT 0,
            likes INTEGER NOT NULL DEFAULT 0,
            comments INTEGER NOT NULL DEFAULT 0,
            shares INTEGER NOT NULL DEFAULT 0,
            subscribers_gained INTEGER NOT NULL DEFAULT 0,
            subscribers_lost INTEGER NOT NULL DEFAULT 0,
            watch_time_minutes REAL NOT NULL DEFAULT 0,
            average_view_duration REAL NOT NULL DEFAULT 0,
            impressions INTEGER NOT NULL DEFAULT 0,
            click_through_rate REAL NOT NULL DEFAULT 0,
            subscribers_total INTEGER,
            raw_data TEXT,
            synced_at TEXT NOT NULL,
            UNIQUE (user_id, date)
        );

        CREATE TABLE IF NOT EXISTS sync_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            sync_type TEXT NOT NULL,
            status TEXT NOT NULL,
            records_stored INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            synced_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_analytics_user_date ON youtube_analytics(user_id, date);
        CREATE INDEX IF NOT EXISTS idx_tokens_expires ON tokens(expires_at);
        CREATE INDEX IF NOT EXISTS idx_sync_log_user ON sync_log(user_id, synced_at);
    """)
    conn.commit()


# User operations
def get_user(user_id: str) -> Optional[User]:
    """Get user by id."""
    conn = get_connection()
    result = conn.execute(
        "SELECT user_id, channel_id, channel_title, created_at, updated_at FROM users WHERE user_id = ?",
        (user_id,)
    ).fetchone()
    if result:
        return User(
            user_id=result[0],
            channel_id=result[1],
            channel_title=result[2],
            created_at=result[3],
            updated_at=result[4]
        )
    return None


def get_all_users() -> list[User]:
    """Get all users."""
    conn = get_connection()
    results = conn.execute(
        "SELECT user_id, channel_id, channel_title, created_at, updated_at FROM users ORDER BY created_at"
    ).fetchall()
    return [
        User(user_id=r[0], channel_id=r[1], channel_title=r[2], created_at=r[3], updated_at=r[4])
        for r in results
    ]


def create_or_update_user(user_id: str, channel_id: Optional[str] = None, channel_title: Optional[str] = None) -> User:
    """Create or update a user."""
    conn = get_connection()
    now = _now()
    conn.execute("""
        INSERT INTO users (user_id, channel_id, channel_title, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (user_id) DO UPDATE SET
            channel_id = COALESCE(excluded.channel_id, users.channel_id),
            channel_title = COALESCE(excluded.channel_title, users.channel_title),
            updated_at = excluded.updated_at
    """, (user_id, channel_id, channel_title, now, now))
    conn.commit()
    return get_user(user_id)


# Token operations
_TOKEN_COLUMNS = "user_id, provider, access_token, refresh_token, expires_at, token_type, scope, version, updated_at"


def _row_to_token(r) -> TokenRecord:
    return TokenRecord(
        user_id=r[0], provider=r[1], access_token=r[2], refresh_token=r[3],
        expires_at=r[4], token_type=r[5], scope=r[6], version=r[7], updated_at=r[8]
    )


def save_token(token: TokenRecord) -> TokenRecord:
    """Insert or replace the token record for (user, provider). Bumps version."""
    conn = get_connection()
    conn.execute(f"""
        INSERT INTO tokens ({_TOKEN_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
        ON CONFLICT (user_id, provider) DO UPDATE SET
            access_token = excluded.access_token,
            refresh_token = excluded.refresh_token,
            expires_at = excluded.expires_at,
            token_type = excluded.token_type,
            scope = excluded.scope,
            version = tokens.version + 1,
            updated_at = excluded.updated_at
    """, (
        token.user_id, token.provider, token.access_token, token.refresh_token,
        _to_db_datetime(token.expires_at), token.token_type, token.scope, _now()
    ))
    conn.commit()
    return get_token(token.user_id, token.provider)


def get_token(user_id: str, provider: str = "youtube") -> Optional[TokenRecord]:
    """Get token for a user."""
    conn = get_connection()
    result = conn.execute(
        f"SELECT {_TOKEN_COLUMNS} FROM tokens WHERE user_id = ? AND provider = ?",
        (user_id, provider)
    ).fetchone()
    if result:
        return _row_to_token(result)
    return None


def compare_and_swap_token(expected: TokenRecord, replacement: TokenRecord) -> bool:
    """
    Replace a token record only if nobody changed it since `expected` was read.

    Returns:
        True if the swap happened, False if the stored version moved on
    """
    conn = get_connection()
    rows = conn.execute("""
        UPDATE tokens SET
            access_token = ?,
            refresh_token = ?,
            expires_at = ?,
            token_type = ?,
            scope = ?,
            version = version + 1,
            updated_at = ?
        WHERE user_id = ? AND provider = ? AND version = ?
        RETURNING version
    """, (
        replacement.access_token, replacement.refresh_token,
        _to_db_datetime(replacement.expires_at), replacement.token_type,
        replacement.scope, _now(),
        expected.user_id, expected.provider, expected.version
    )).fetchall()
    conn.commit()
    return len(rows) > 0


def delete_token(user_id: str, provider: str = "youtube"):
    """Delete the token record for (user, provider)."""
    conn = get_connection()
    conn.execute("DELETE FROM tokens WHERE user_id = ? AND provider = ?", (user_id, provider))
    conn.commit()


def get_expiring_tokens(within: timedelta, provider: str = "youtube") -> list[TokenRecord]:
    """Get refreshable tokens expiring within the given timedelta."""
    conn = get_connection()
    threshold = _to_db_datetime(datetime.now(timezone.utc) + within)
    results = conn.execute(f"""
        SELECT {_TOKEN_COLUMNS} FROM tokens
        WHERE provider = ? AND refresh_token IS NOT NULL
          AND expires_at IS NOT NULL AND expires_at < ?
        ORDER BY expires_at
    """, (provider, threshold)).fetchall()
    return [_row_to_token(r) for r in results]


# Analytics operations
_ANALYTICS_COLUMNS = (
    "user_id, date, views, likes, comments, shares, subscribers_gained, subscribers_lost, "
    "watch_time_minutes, average_view_duration, impressions, click_through_rate, "
    "subscribers_total, raw_data"
)


def upsert_daily_analytics(records: list[DailyAnalytics]) -> int:
    """Upsert daily rows keyed on (user_id, date). Later syncs overwrite earlier ones."""
    conn = get_connection()
    now = _now()
    for record in records:
        conn.execute(f"""
            INSERT INTO youtube_analytics ({_ANALYTICS_COLUMNS}, synced_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, date) DO UPDATE SET
                views = excluded.views,
                likes = excluded.likes,
                comments = excluded.comments,
                shares = excluded.shares,
                subscribers_gained = excluded.subscribers_gained,
                subscribers_lost = excluded.subscribers_lost,
                watch_time_minutes = excluded.watch_time_minutes,
                average_view_duration = excluded.average_view_duration,
                impressions = excluded.impressions,
                click_through_rate = excluded.click_through_rate,
                subscribers_total = COALESCE(excluded.subscribers_total, youtube_analytics.subscribers_total),
                raw_data = excluded.raw_data,
                synced_at = excluded.synced_at
        """, (
            record.user_id, record.date.isoformat(), record.views, record.likes,
            record.comments, record.shares, record.subscribers_gained,
            record.subscribers_lost, record.watch_time_minutes,
            record.average_view_duration, record.impressions,
            record.click_through_rate, record.subscribers_total,
            json.dumps(record.raw_data) if record.raw_data is not None else None,
            now
        ))
    conn.commit()
    return len(records)


def save_subscriber_snapshot(user_id: str, snapshot_date: date, subscribers_total: int, statistics: dict):
    """Record the channel's total subscriber count for a day, leaving metrics untouched."""
    conn = get_connection()
    conn.execute("""
        INSERT INTO youtube_analytics (user_id, date, subscribers_total, raw_data, synced_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (user_id, date) DO UPDATE SET
            subscribers_total = excluded.subscribers_total,
            synced_at = excluded.synced_at
    """, (
        user_id, snapshot_date.isoformat(), subscribers_total,
        json.dumps({"channelStatistics": statistics}), _now()
    ))
    conn.commit()


def get_daily_analytics(user_id: str, start_date: date, end_date: date) -> list[DailyAnalytics]:
    """Get daily rows in [start_date, end_date], oldest first."""
    conn = get_connection()
    results = conn.execute(f"""
        SELECT {_ANALYTICS_COLUMNS} FROM youtube_analytics
        WHERE user_id = ? AND date >= ? AND date <= ?
        ORDER BY date ASC
    """, (user_id, start_date.isoformat(), end_date.isoformat())).fetchall()

    return [
        DailyAnalytics(
            user_id=r[0], date=r[1], views=r[2], likes=r[3], comments=r[4],
            shares=r[5], subscribers_gained=r[6], subscribers_lost=r[7],
            watch_time_minutes=r[8], average_view_duration=r[9],
            impressions=r[10], click_through_rate=r[11],
            subscribers_total=r[12],
            raw_data=json.loads(r[13]) if r[13] else None
        )
        for r in results
    ]


def delete_user_analytics(user_id: str) -> None:
    """Remove all stored analytics and sync history for a user."""
    conn = get_connection()
    conn.execute("DELETE FROM youtube_analytics WHERE user_id = ?", (user_id,))
    conn.execute("DELETE FROM sync_log WHERE user_id = ?", (user_id,))
    conn.commit()


# Sync log operations
def log_sync(user_id: str, sync_type: str, status: str, records_stored: int = 0, error_message: Optional[str] = None):
    """Log a sync attempt."""
    conn = get_connection()
    conn.execute(
        "INSERT INTO sync_log (user_id, sync_type, status, records_stored, error_message, synced_at) VALUES (?, ?, ?, ?, ?, ?)",
        (user_id, sync_type, status, records_stored, error_message, _now())
    )
    conn.commit()


def get_last_sync(user_id: str, sync_type: str = "analytics") -> Optional[SyncLog]:
    """Get the most recent sync attempt for a user."""
    conn = get_connection()
    result = conn.execute("""
        SELECT id, user_id, sync_type, status, records_stored, error_message, synced_at
        FROM sync_log WHERE user_id = ? AND sync_type = ?
        ORDER BY synced_at DESC, id DESC LIMIT 1
    """, (user_id, sync_type)).fetchone()
    if result:
        return SyncLog(
            id=result[0], user_id=result[1], sync_type=result[2], status=result[3],
            records_stored=result[4], error_message=result[5], synced_at=result[6]
        )
    return None
