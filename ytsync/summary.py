"""Derived rollups over stored daily analytics."""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from . import database
from .models import AnalyticsSummary, DailyAnalytics, DashboardSummary, GrowthRates

logger = logging.getLogger(__name__)


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize(records: list[DailyAnalytics], date_from: date, date_to: date) -> AnalyticsSummary:
    """Totals and engagement rate for a set of daily records."""
    total_views = sum(r.views for r in records)
    total_likes = sum(r.likes for r in records)
    total_comments = sum(r.comments for r in records)
    watch_minutes = sum(r.watch_time_minutes for r in records)

    engagement_rate = 0.0
    if total_views > 0:
        engagement_rate = (total_likes + total_comments) / total_views * 100

    return AnalyticsSummary(
        total_views=total_views,
        total_likes=total_likes,
        total_comments=total_comments,
        total_subscribers_gained=sum(r.subscribers_gained for r in records),
        total_watch_time_hours=_round_half_up(watch_minutes / 60),
        average_engagement_rate=engagement_rate,
        data_points=len(records),
        date_from=date_from,
        date_to=date_to,
    )


def _growth(recent: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((recent - previous) / previous * 100, 2)


def compute_growth(last_7_days: AnalyticsSummary, last_30_days: AnalyticsSummary) -> GrowthRates:
    """
    Growth of the last week against the rest of the 30-day window.

    The previous period is approximated as (30-day total - 7-day total).
    """
    recent_engagement = last_7_days.total_likes + last_7_days.total_comments
    month_engagement = last_30_days.total_likes + last_30_days.total_comments

    return GrowthRates(
        views=_growth(last_7_days.total_views, last_30_days.total_views - last_7_days.total_views),
        subscribers=_growth(
            last_7_days.total_subscribers_gained,
            last_30_days.total_subscribers_gained - last_7_days.total_subscribers_gained,
        ),
        engagement=_growth(recent_engagement, month_engagement - recent_engagement),
    )


def get_stored_analytics(user_id: str, window_days: int = 30, today: Optional[date] = None) -> dict:
    """
    Read stored daily records for [today - window_days, today] with their summary.

    When storage is unreachable an empty result flagged 'degraded' is returned
    so the dashboard still renders.
    """
    today = today or _today()
    start_date = today - timedelta(days=window_days)

    try:
        records = database.get_daily_analytics(user_id, start_date, today)
        degraded = False
    except database.StorageUnavailableError as e:
        logger.warning("Analytics storage unavailable for %s, serving empty data: %s", user_id, e)
        records = []
        degraded = True

    return {
        "success": True,
        "data": records,
        "summary": summarize(records, start_date, today),
        "degraded": degraded,
    }


def get_summary(user_id: str, window_days: int = 30, today: Optional[date] = None) -> AnalyticsSummary:
    return get_stored_analytics(user_id, window_days, today)["summary"]


def get_dashboard_summary(user_id: str, today: Optional[date] = None) -> dict:
    """7-day and 30-day summaries plus growth rates for the dashboard cards."""
    last_7 = get_stored_analytics(user_id, 7, today)
    last_30 = get_stored_analytics(user_id, 30, today)

    summary = DashboardSummary(
        last_7_days=last_7["summary"],
        last_30_days=last_30["summary"],
        growth=compute_growth(last_7["summary"], last_30["summary"]),
    )
    return {
        "success": True,
        "summary": summary,
        "degraded": last_7["degraded"] or last_30["degraded"],
    }
