"""YouTube token lifecycle: refresh-on-expiry, connect and disconnect."""

import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Optional

import requests

from . import database
from .models import ChannelInfo, TokenRecord
from .oauth import OAuthError, refresh_access_token, revoke_token

logger = logging.getLogger(__name__)

PROVIDER = "youtube"


class AuthRequiredError(Exception):
    """No usable token on file; the user must (re)connect."""


class RefreshFailedError(Exception):
    """The refresh token was rejected or the refresh request failed."""

    def __init__(self, message: str, revoked: bool = False):
        super().__init__(message)
        self.revoked = revoked


_locks_guard = Lock()
_user_locks: dict[str, Lock] = {}


def _user_lock(user_id: str) -> Lock:
    with _locks_guard:
        lock = _user_locks.get(user_id)
        if lock is None:
            lock = _user_locks[user_id] = Lock()
        return lock


def _refresh(record: TokenRecord) -> TokenRecord:
    """Exchange the record's refresh token and persist the result with compare-and-swap."""
    try:
        data = refresh_access_token(record.refresh_token)
    except OAuthError as e:
        if e.is_revoked:
            logger.warning("Refresh token for %s was revoked (%s); clearing token record", record.user_id, e.error)
            database.delete_token(record.user_id, record.provider)
        raise RefreshFailedError(f"Token refresh failed: {e}", revoked=e.is_revoked) from e
    except requests.RequestException as e:
        raise RefreshFailedError(f"Token refresh request failed: {e}") from e

    replacement = TokenRecord(
        user_id=record.user_id,
        provider=record.provider,
        access_token=data["access_token"],
        # Google usually omits the refresh token on refresh
        refresh_token=data.get("refresh_token") or record.refresh_token,
        expires_at=data["expires_at"],
        token_type=data.get("token_type") or record.token_type,
        scope=data.get("scope") or record.scope,
    )

    if database.compare_and_swap_token(record, replacement):
        logger.info("Refreshed %s token for %s, expires %s", record.provider, record.user_id, replacement.expires_at)
        return database.get_token(record.user_id, record.provider)

    # Another process refreshed first; its token wins.
    current = database.get_token(record.user_id, record.provider)
    if current is None:
        raise AuthRequiredError("Account was disconnected during token refresh")
    logger.info("Token for %s was refreshed concurrently; using stored version %d", record.user_id, current.version)
    return current


def ensure_valid_token(user_id: str, provider: str = PROVIDER, now: Optional[datetime] = None) -> str:
    """
    Return a usable access token, refreshing it first if it has expired.

    Raises:
        AuthRequiredError: no token on file, or expired with no refresh token
        RefreshFailedError: the refresh exchange failed
    """
    record = database.get_token(user_id, provider)
    if record is None:
        raise AuthRequiredError(f"No {provider} token on file for {user_id}")

    if not record.is_expired(now):
        return record.access_token

    if not record.can_refresh:
        raise AuthRequiredError(f"{provider} token for {user_id} expired and cannot be renewed")

    with _user_lock(user_id):
        # Re-read under the lock: a thread that held it may have refreshed already.
        record = database.get_token(user_id, provider)
        if record is None:
            raise AuthRequiredError(f"No {provider} token on file for {user_id}")
        if not record.is_expired(now):
            return record.access_token
        if not record.can_refresh:
            raise AuthRequiredError(f"{provider} token for {user_id} expired and cannot be renewed")
        return _refresh(record).access_token


def get_token_status(user_id: str, provider: str = PROVIDER) -> dict:
    """Report whether the user is connected, refreshing an expired token along the way."""
    record = database.get_token(user_id, provider)
    if record is None:
        return {"authenticated": False}

    refreshed = False
    error = None
    if record.is_expired():
        try:
            ensure_valid_token(user_id, provider)
            refreshed = True
        except (AuthRequiredError, RefreshFailedError) as e:
            error = str(e)
        record = database.get_token(user_id, provider) or record

    is_expired = record.is_expired()
    status = {
        "authenticated": error is None and not is_expired,
        "has_access_token": bool(record.access_token),
        "has_refresh_token": record.can_refresh,
        "expires_at": record.expires_at,
        "is_expired": is_expired,
        "refreshed": refreshed,
    }
    if error:
        status["error"] = error
    return status


def connect_account(user_id: str, token_data: dict, channel: Optional[ChannelInfo] = None, provider: str = PROVIDER) -> TokenRecord:
    """Store tokens from a completed OAuth flow and snapshot the channel's subscriber count."""
    database.create_or_update_user(
        user_id,
        channel_id=channel.id if channel else None,
        channel_title=channel.title if channel else None,
    )

    existing = database.get_token(user_id, provider)
    record = database.save_token(TokenRecord(
        user_id=user_id,
        provider=provider,
        access_token=token_data["access_token"],
        refresh_token=token_data.get("refresh_token") or (existing.refresh_token if existing else None),
        expires_at=token_data.get("expires_at"),
        token_type=token_data.get("token_type"),
        scope=token_data.get("scope"),
    ))

    if channel is not None and channel.subscriber_count is not None:
        try:
            database.save_subscriber_snapshot(
                user_id,
                datetime.now(timezone.utc).date(),
                channel.subscriber_count,
                channel.statistics,
            )
            database.log_sync(user_id, "channel_snapshot", "success", 1)
        except database.StorageUnavailableError as e:
            logger.error("Failed to store channel statistics for %s: %s", user_id, e)

    return record


def disconnect_account(user_id: str, purge_analytics: bool = False, revoke: bool = False, provider: str = PROVIDER) -> dict:
    """Remove the user's token record, optionally revoking it and purging stored analytics."""
    record = database.get_token(user_id, provider)
    revoked = False
    if record is not None and revoke:
        revoked = revoke_token(record.refresh_token or record.access_token)

    database.delete_token(user_id, provider)
    if purge_analytics:
        database.delete_user_analytics(user_id)

    logger.info("Disconnected %s for %s (revoked=%s, purged=%s)", provider, user_id, revoked, purge_analytics)
    return {"success": True, "had_token": record is not None, "revoked": revoked, "purged": purge_analytics}


def refresh_expiring_tokens(lead: timedelta, provider: str = PROVIDER) -> dict:
    """
    Refresh every refreshable token that expires within `lead`.

    Returns:
        Summary dict with 'refreshed', 'failed' and 'errors'
    """
    results = {"refreshed": 0, "failed": 0, "errors": []}
    # Treat anything inside the lead window as already expired.
    horizon = datetime.now(timezone.utc) + lead

    try:
        expiring = database.get_expiring_tokens(lead, provider)
    except database.StorageUnavailableError as e:
        logger.error("Cannot list expiring tokens: %s", e)
        results["errors"].append(f"Storage unavailable: {e}")
        return results

    for record in expiring:
        try:
            ensure_valid_token(record.user_id, provider, now=horizon)
            results["refreshed"] += 1
        except (AuthRequiredError, RefreshFailedError, database.StorageUnavailableError) as e:
            results["failed"] += 1
            results["errors"].append(f"Failed to refresh token for {record.user_id}: {e}")

    return results
