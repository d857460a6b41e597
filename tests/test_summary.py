import logging
from datetime import date, timedelta

import pytest

from ytsync import database, summary
from ytsync.models import AnalyticsSummary, DailyAnalytics

TODAY = date(2026, 3, 31)


def _day(offset, **metrics):
    return DailyAnalytics(user_id="user-1", date=TODAY - timedelta(days=offset), **metrics)


def _summary(**totals):
    return AnalyticsSummary(date_from=TODAY - timedelta(days=7), date_to=TODAY, **totals)


def test_empty_window_is_all_zero():
    result = summary.summarize([], TODAY - timedelta(days=30), TODAY)

    assert result.total_views == 0
    assert result.total_likes == 0
    assert result.total_comments == 0
    assert result.total_subscribers_gained == 0
    assert result.total_watch_time_hours == 0
    assert result.average_engagement_rate == 0
    assert result.data_points == 0


def test_totals_and_engagement_rate():
    records = [
        _day(2, views=100, likes=10, comments=5),
        _day(1, views=200, likes=10, comments=5),
        _day(0, views=300, likes=10, comments=0),
    ]

    result = summary.summarize(records, TODAY - timedelta(days=2), TODAY)

    assert result.total_views == 600
    assert result.total_likes == 30
    assert result.total_comments == 10
    assert result.average_engagement_rate == pytest.approx(40 / 600 * 100)
    assert round(result.average_engagement_rate, 2) == 6.67
    assert result.data_points == 3


def test_watch_time_rounds_half_up_to_hours():
    records = [_day(1, watch_time_minutes=45.0), _day(0, watch_time_minutes=45.0)]

    assert summary.summarize(records, TODAY, TODAY).total_watch_time_hours == 2


def test_growth_compares_week_with_rest_of_month():
    last_7 = _summary(total_views=700, total_likes=50, total_comments=10, total_subscribers_gained=20)
    last_30 = _summary(total_views=1000, total_likes=80, total_comments=20, total_subscribers_gained=20)

    growth = summary.compute_growth(last_7, last_30)

    assert growth.views == 133.33
    assert growth.engagement == 50.0
    # nothing gained before the last week
    assert growth.subscribers == 0.0


def test_stored_analytics_window_bounds(db):
    database.upsert_daily_analytics([
        _day(31, views=1000),
        _day(30, views=10),
        _day(0, views=5),
    ])

    result = summary.get_stored_analytics("user-1", 30, today=TODAY)

    assert result["success"]
    assert not result["degraded"]
    assert [r.views for r in result["data"]] == [10, 5]
    assert result["summary"].date_from == TODAY - timedelta(days=30)
    assert result["summary"].total_views == 15


def test_storage_unavailable_degrades_to_empty(monkeypatch, caplog):
    def unavailable(*args, **kwargs):
        raise database.StorageUnavailableError("database is down")

    monkeypatch.setattr(database, "get_daily_analytics", unavailable)

    with caplog.at_level(logging.WARNING, logger="ytsync.summary"):
        result = summary.get_stored_analytics("user-1", 7, today=TODAY)

    assert result["success"]
    assert result["degraded"]
    assert result["data"] == []
    assert result["summary"].total_views == 0
    assert "storage unavailable" in caplog.text


def test_dashboard_summary(db):
    records = [_day(i, views=10, likes=1, comments=1, subscribers_gained=1) for i in range(31)]
    database.upsert_daily_analytics(records)

    result = summary.get_dashboard_summary("user-1", today=TODAY)
    dashboard = result["summary"]

    # windows are inclusive of both ends: 8 and 31 days
    assert dashboard.last_7_days.total_views == 80
    assert dashboard.last_30_days.total_views == 310
    assert dashboard.growth.views == round((80 - 230) / 230 * 100, 2)
    assert dashboard.last_7_days.average_engagement_rate == pytest.approx(20.0)
    assert not result["degraded"]


def test_dashboard_summary_degrades_when_queries_fail(broken_db, caplog):
    with caplog.at_level(logging.WARNING, logger="ytsync.summary"):
        result = summary.get_dashboard_summary("user-1", today=TODAY)

    assert result["success"]
    assert result["degraded"]
    assert result["summary"].last_30_days.data_points == 0
    assert result["summary"].growth.views == 0.0
    assert "stream error" in caplog.text
