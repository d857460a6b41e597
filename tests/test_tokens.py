from datetime import datetime, timedelta, timezone

import pytest
import requests

from ytsync import database, tokens
from ytsync.models import ChannelInfo, TokenRecord


def _store(user_id="user-1", expires_in=timedelta(hours=1), refresh_token="refresh-1", access_token="access-1"):
    return database.save_token(
        TokenRecord(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.now(timezone.utc) + expires_in,
            token_type="Bearer",
            scope="https://www.googleapis.com/auth/yt-analytics.readonly",
        )
    )


def _no_network(*args, **kwargs):
    raise AssertionError("token endpoint must not be called")


def _refresh_ok(access_token="access-2", expires_in=timedelta(hours=1)):
    def fake_refresh(refresh_token):
        return {
            "access_token": access_token,
            "expires_in": int(expires_in.total_seconds()),
            "expires_at": datetime.now(timezone.utc) + expires_in,
            "token_type": "Bearer",
        }

    return fake_refresh


def test_missing_token_requires_auth(db, monkeypatch):
    monkeypatch.setattr(tokens, "refresh_access_token", _no_network)

    with pytest.raises(tokens.AuthRequiredError):
        tokens.ensure_valid_token("nobody")


def test_unexpired_token_returned_unchanged(db, monkeypatch):
    stored = _store()
    monkeypatch.setattr(tokens, "refresh_access_token", _no_network)

    assert tokens.ensure_valid_token("user-1") == "access-1"
    assert database.get_token("user-1").version == stored.version


def test_expired_token_is_refreshed_with_later_expiry(db, monkeypatch):
    old = _store(expires_in=timedelta(minutes=-5))
    monkeypatch.setattr(tokens, "refresh_access_token", _refresh_ok())

    assert tokens.ensure_valid_token("user-1") == "access-2"

    new = database.get_token("user-1")
    assert new.access_token == "access-2"
    assert new.expires_at > old.expires_at
    assert new.refresh_token == "refresh-1"
    assert new.scope == old.scope
    assert new.version == old.version + 1


def test_expired_token_without_refresh_token_requires_auth(db, monkeypatch):
    _store(expires_in=timedelta(minutes=-5), refresh_token=None)
    monkeypatch.setattr(tokens, "refresh_access_token", _no_network)

    with pytest.raises(tokens.AuthRequiredError):
        tokens.ensure_valid_token("user-1")


def test_revoked_refresh_token_clears_record(db, monkeypatch):
    _store(expires_in=timedelta(minutes=-5))

    def revoked(refresh_token):
        raise tokens.OAuthError("invalid_grant: Token has been expired or revoked.", "invalid_grant", 400)

    monkeypatch.setattr(tokens, "refresh_access_token", revoked)

    with pytest.raises(tokens.RefreshFailedError) as excinfo:
        tokens.ensure_valid_token("user-1")

    assert excinfo.value.revoked
    assert database.get_token("user-1") is None
    with pytest.raises(tokens.AuthRequiredError):
        tokens.ensure_valid_token("user-1")


def test_network_failure_keeps_record(db, monkeypatch):
    _store(expires_in=timedelta(minutes=-5))

    def unreachable(refresh_token):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(tokens, "refresh_access_token", unreachable)

    with pytest.raises(tokens.RefreshFailedError) as excinfo:
        tokens.ensure_valid_token("user-1")

    assert not excinfo.value.revoked
    assert database.get_token("user-1").access_token == "access-1"


def test_concurrent_refresh_keeps_winning_token(db, monkeypatch):
    _store(expires_in=timedelta(minutes=-5))

    def refresh_while_other_process_wins(refresh_token):
        # Another worker stores its refreshed token first.
        _store(access_token="access-from-other-worker", expires_in=timedelta(hours=1))
        return _refresh_ok("access-late")(refresh_token)

    monkeypatch.setattr(tokens, "refresh_access_token", refresh_while_other_process_wins)

    assert tokens.ensure_valid_token("user-1") == "access-from-other-worker"
    assert database.get_token("user-1").access_token == "access-from-other-worker"


def test_disconnect_then_auth_required(db, monkeypatch):
    _store()
    monkeypatch.setattr(tokens, "revoke_token", _no_network)

    result = tokens.disconnect_account("user-1")

    assert result["had_token"]
    assert not result["revoked"]
    with pytest.raises(tokens.AuthRequiredError):
        tokens.ensure_valid_token("user-1")


def test_disconnect_can_revoke_and_purge(db, monkeypatch):
    _store()
    database.log_sync("user-1", "analytics", "success", 3)
    revoked = []
    monkeypatch.setattr(tokens, "revoke_token", lambda token: revoked.append(token) or True)

    result = tokens.disconnect_account("user-1", purge_analytics=True, revoke=True)

    assert revoked == ["refresh-1"]
    assert result["revoked"] and result["purged"]
    assert database.get_last_sync("user-1") is None


def test_token_status_refreshes_expired_token(db, monkeypatch):
    _store(expires_in=timedelta(minutes=-5))
    monkeypatch.setattr(tokens, "refresh_access_token", _refresh_ok())

    status = tokens.get_token_status("user-1")

    assert status["authenticated"]
    assert status["refreshed"]
    assert status["has_refresh_token"]
    assert not status["is_expired"]


def test_token_status_for_unknown_user(db):
    assert tokens.get_token_status("nobody") == {"authenticated": False}


def test_connect_account_stores_tokens_and_subscriber_snapshot(db):
    channel = ChannelInfo(id="UC1", title="Chan", subscriber_count=1200, statistics={"subscriberCount": "1200"})
    expires_at = datetime.now(timezone.utc) + timedelta(hours=1)

    tokens.connect_account("UC1", {"access_token": "a1", "refresh_token": "r1", "expires_at": expires_at}, channel)
    # Reconnect without a refresh token keeps the one on file.
    tokens.connect_account("UC1", {"access_token": "a2", "expires_at": expires_at}, channel)

    record = database.get_token("UC1")
    assert record.access_token == "a2"
    assert record.refresh_token == "r1"
    assert database.get_user("UC1").channel_title == "Chan"

    today = datetime.now(timezone.utc).date()
    rows = database.get_daily_analytics("UC1", today, today)
    assert len(rows) == 1
    assert rows[0].subscribers_total == 1200
    assert rows[0].views == 0


def test_refresh_expiring_tokens_only_touches_tokens_in_lead_window(db, monkeypatch):
    _store(user_id="soon", expires_in=timedelta(minutes=5))
    _store(user_id="later", expires_in=timedelta(hours=2))
    _store(user_id="no-refresh", expires_in=timedelta(minutes=5), refresh_token=None)
    refreshed = []

    def fake_refresh(refresh_token):
        refreshed.append(refresh_token)
        return _refresh_ok("fresh")(refresh_token)

    monkeypatch.setattr(tokens, "refresh_access_token", fake_refresh)

    results = tokens.refresh_expiring_tokens(timedelta(minutes=10))

    assert results == {"refreshed": 1, "failed": 0, "errors": []}
    assert database.get_token("soon").access_token == "fresh"
    assert database.get_token("later").access_token == "access-1"
    assert database.get_token("no-refresh").access_token == "access-1"


def test_snapshot_storage_failure_does_not_break_connect(db, monkeypatch):
    def unavailable(*args, **kwargs):
        raise database.StorageUnavailableError("write failed")

    monkeypatch.setattr(database, "save_subscriber_snapshot", unavailable)
    channel = ChannelInfo(id="UC1", title="Chan", subscriber_count=10, statistics={})

    record = tokens.connect_account("UC1", {"access_token": "a1", "refresh_token": "r1"}, channel)

    assert record.access_token == "a1"
    assert database.get_last_sync("UC1", "channel_snapshot") is None


def test_refresh_expiring_tokens_with_storage_down(broken_db, monkeypatch):
    monkeypatch.setattr(tokens, "refresh_access_token", _no_network)

    results = tokens.refresh_expiring_tokens(timedelta(minutes=10))

    assert results["refreshed"] == 0
    assert results["errors"][0].startswith("Storage unavailable")
