import sqlite3

import pytest

from ytsync import database


@pytest.fixture
def db(monkeypatch):
    """In-memory SQLite database behind ytsync.database."""
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    monkeypatch.setattr(database, "_connection", conn)
    database.init_db()
    yield conn
    conn.close()


class _UnreachableConnection:
    """Connection that opened fine but fails on every statement, like a dropped remote libsql stream."""

    def _fail(self, *args, **kwargs):
        raise ValueError("Hrana: stream error: connection refused")

    execute = _fail
    executescript = _fail
    commit = _fail


@pytest.fixture
def broken_db(monkeypatch):
    """ytsync.database backed by a store that fails after connecting."""
    monkeypatch.setattr(database, "_connection", _UnreachableConnection())
