"""Analytics sync: pull daily channel metrics from YouTube into the store."""

import logging
from datetime import date, datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Optional

import requests

from . import database
from .config import config
from .models import DailyAnalytics
from .rate_limiter import RateLimitError
from .tokens import AuthRequiredError, RefreshFailedError, ensure_valid_token
from .youtube_api import YouTubeAPI, YouTubeAPIError, bind_report_rows

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """The provider reporting call failed."""


# Report column -> DailyAnalytics field
COLUMN_FIELDS = {
    "views": "views",
    "likes": "likes",
    "comments": "comments",
    "shares": "shares",
    "subscribersGained": "subscribers_gained",
    "subscribersLost": "subscribers_lost",
    "estimatedMinutesWatched": "watch_time_minutes",
    "averageViewDuration": "average_view_duration",
}

_sync_guard = Lock()
_syncs_in_progress: set[str] = set()


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _log_failure(user_id: str, status: str, message: str):
    try:
        database.log_sync(user_id, "analytics", status, error_message=message)
    except database.StorageUnavailableError as e:
        logger.warning("Could not record %s sync for %s: %s", status, user_id, e)


def _number(value, cast=int):
    try:
        return cast(value)
    except (TypeError, ValueError):
        return cast(0)


def rows_to_records(user_id: str, report: dict, metrics: list[str]) -> list[DailyAnalytics]:
    """Map a day-dimension report onto DailyAnalytics records."""
    records = []
    for row in bind_report_rows(report, metrics, dimension="day"):
        day = row.get("day")
        if not day:
            logger.warning("Skipping report row without a day: %s", row)
            continue

        values = {}
        for column, field in COLUMN_FIELDS.items():
            cast = float if field in ("watch_time_minutes", "average_view_duration") else int
            values[field] = _number(row.get(column, 0), cast)

        records.append(DailyAnalytics(
            user_id=user_id,
            date=date.fromisoformat(str(day)[:10]),
            impressions=0,  # not available from this query
            click_through_rate=0.0,
            raw_data=row,
            **values,
        ))
    return records


def fetch_and_store_analytics(
    user_id: str,
    window_days: int = 30,
    today: Optional[date] = None,
    api_factory: Callable[..., YouTubeAPI] = YouTubeAPI,
) -> dict:
    """
    Fetch daily analytics for [today - window_days, today] and upsert them.

    Returns:
        dict with 'success', 'records_stored', 'error' keys
    """
    today = today or _today()
    start_date = today - timedelta(days=window_days)

    try:
        access_token = ensure_valid_token(user_id)
        api = api_factory(access_token, user_id)
        metrics = api.DAILY_METRICS
        try:
            report = api.query_report(start_date, today, metrics=metrics)
        except (YouTubeAPIError, requests.RequestException) as e:
            raise SyncError(f"YouTube Analytics query failed: {e}") from e

        records = rows_to_records(user_id, report, metrics)
        stored = database.upsert_daily_analytics(records)
        database.log_sync(user_id, "analytics", "success", stored)
        logger.info("Stored %d days of analytics for %s", stored, user_id)
        return {"success": True, "records_stored": stored, "error": None}

    except AuthRequiredError as e:
        _log_failure(user_id, "auth_required", str(e))
        return {"success": False, "records_stored": 0, "error": "YouTube authentication required"}

    except RefreshFailedError as e:
        _log_failure(user_id, "auth_required", str(e))
        return {"success": False, "records_stored": 0, "error": f"YouTube authentication expired: {e}"}

    except RateLimitError as e:
        _log_failure(user_id, "rate_limited", str(e))
        return {"success": False, "records_stored": 0, "error": f"Rate limited: {e}"}

    except SyncError as e:
        logger.error("Analytics sync failed for %s: %s", user_id, e)
        _log_failure(user_id, "error", str(e))
        return {"success": False, "records_stored": 0, "error": str(e)}

    except database.StorageUnavailableError as e:
        logger.error("Storage unavailable during sync for %s: %s", user_id, e)
        return {"success": False, "records_stored": 0, "error": f"Storage unavailable: {e}"}


def sync_analytics(user_id: str, window_days: Optional[int] = None) -> dict:
    """User-triggered sync. A second sync for the same user while one runs is refused."""
    if window_days is None:
        window_days = config.SYNC_WINDOW_DAYS

    with _sync_guard:
        if user_id in _syncs_in_progress:
            return {"success": False, "error": "Sync already in progress"}
        _syncs_in_progress.add(user_id)

    try:
        result = fetch_and_store_analytics(user_id, window_days)
    finally:
        with _sync_guard:
            _syncs_in_progress.discard(user_id)

    if result["success"]:
        return {
            "success": True,
            "records_stored": result["records_stored"],
            "message": f"Successfully synced {result['records_stored']} days of analytics data",
        }
    return {"success": False, "error": result["error"]}


def _sync_user(user_id: str, window_days: Optional[int]) -> Optional[dict]:
    """Sync one user, or return None when they have no token on file."""
    try:
        if database.get_token(user_id) is None:
            return None
    except database.StorageUnavailableError as e:
        return {"success": False, "error": f"Storage unavailable: {e}"}
    return sync_analytics(user_id, window_days)


def sync_all_users(window_days: Optional[int] = None) -> dict:
    """
    Sync analytics for every user with a stored token.

    Returns:
        Summary dict with counts of successful/failed syncs
    """
    results = {
        "total_users": 0,
        "success": 0,
        "failed": 0,
        "skipped": 0,
        "records_stored": 0,
        "errors": [],
    }

    try:
        users = database.get_all_users()
    except database.StorageUnavailableError as e:
        logger.error("Cannot list users for analytics sync: %s", e)
        results["errors"].append(f"Storage unavailable: {e}")
        return results
    results["total_users"] = len(users)

    for user in users:
        try:
            result = _sync_user(user.user_id, window_days)
        except Exception as e:
            logger.exception("Unexpected error syncing analytics for %s", user.user_id)
            result = {"success": False, "error": f"Unexpected error: {e}"}

        if result is None:
            results["skipped"] += 1
        elif result["success"]:
            results["success"] += 1
            results["records_stored"] += result["records_stored"]
        else:
            results["failed"] += 1
            results["errors"].append(f"Sync error for {user.channel_title or user.user_id}: {result['error']}")

    return results


def get_sync_status(user_id: str) -> dict:
    """Describe the last analytics sync for display."""
    try:
        last = database.get_last_sync(user_id)
    except database.StorageUnavailableError as e:
        logger.warning("Sync status unavailable for %s: %s", user_id, e)
        return {"status": "Unknown", "last_sync": None, "error": str(e)}

    if last is None:
        return {"status": "Not Synced", "last_sync": None, "error": None}
    if last.status == "success":
        return {"status": "Synced", "last_sync": last.synced_at, "error": None, "records_stored": last.records_stored}
    return {"status": "Sync Error", "last_sync": last.synced_at, "error": last.error_message}
