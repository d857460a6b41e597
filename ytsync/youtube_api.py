"""YouTube Data and Analytics API client with retry logic."""

import logging
import random
import time
from datetime import date
from typing import Any, Optional

import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from .config import config
from .models import ChannelInfo
from .rate_limiter import rate_limiter

logger = logging.getLogger(__name__)


class YouTubeAPIError(Exception):
    """YouTube API error."""

    def __init__(self, message: str, status_code: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason

    @property
    def is_transient(self) -> bool:
        return self.status_code is not None and (self.status_code == 429 or self.status_code >= 500)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, YouTubeAPIError):
        return exc.is_transient
    return isinstance(exc, requests.RequestException)


class YouTubeAPI:
    """YouTube API client bound to one access token."""

    # Day-granularity channel metrics, in request order
    DAILY_METRICS = [
        "views",
        "likes",
        "comments",
        "shares",
        "subscribersGained",
        "subscribersLost",
        "estimatedMinutesWatched",
        "averageViewDuration",
    ]

    def __init__(self, access_token: str, user_id: Optional[str] = None):
        self.access_token = access_token
        self.user_id = user_id

    def _make_request(self, url: str, params: Optional[dict] = None) -> dict:
        """Make an API request with rate limiting."""
        if self.user_id:
            rate_limiter.wait_and_acquire(self.user_id)

        response = requests.get(
            url,
            params=params or {},
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=config.HTTP_TIMEOUT,
        )

        if response.status_code != 200:
            try:
                error_data = response.json().get("error", {})
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {"message": str(error_data)}
            errors = error_data.get("errors") or [{}]
            raise YouTubeAPIError(
                error_data.get("message", f"HTTP {response.status_code}"),
                response.status_code,
                errors[0].get("reason") or error_data.get("status"),
            )

        return response.json()

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        before_sleep=lambda retry_state: time.sleep(random.uniform(0, 1)),  # Jitter
        reraise=True,
    )
    def _request_with_retry(self, url: str, params: Optional[dict] = None) -> dict:
        """Make request with exponential backoff retry."""
        return self._make_request(url, params)

    def get_channel_info(self) -> Optional[ChannelInfo]:
        """Get the authenticated user's channel, or None if the account has no channel."""
        data = self._request_with_retry(
            f"{config.YOUTUBE_DATA_API_BASE_URL}/channels",
            {"part": "snippet,statistics", "mine": "true"},
        )
        items = data.get("items") or []
        if not items:
            return None

        item = items[0]
        snippet = item.get("snippet", {})
        statistics = item.get("statistics", {})
        thumbnails = snippet.get("thumbnails", {})
        thumbnail = thumbnails.get("default") or next(iter(thumbnails.values()), {})

        def _count(key: str) -> Optional[int]:
            value = statistics.get(key)
            return int(value) if value is not None else None

        return ChannelInfo(
            id=item["id"],
            title=snippet.get("title", ""),
            custom_url=snippet.get("customUrl"),
            thumbnail_url=thumbnail.get("url"),
            subscriber_count=_count("subscriberCount"),
            video_count=_count("videoCount"),
            view_count=_count("viewCount"),
            statistics=statistics,
        )

    def query_report(
        self,
        start_date: date,
        end_date: date,
        metrics: Optional[list[str]] = None,
        dimensions: Optional[str] = "day",
        sort: Optional[str] = "day",
    ) -> dict:
        """
        Query the YouTube Analytics reporting API for the authenticated channel.

        Args:
            start_date: First day of the report (inclusive)
            end_date: Last day of the report (inclusive)
            metrics: Metric names. Defaults to DAILY_METRICS.
            dimensions: Report dimensions, 'day' for one row per day
            sort: Sort order of rows

        Returns:
            Raw report with 'columnHeaders' and 'rows'
        """
        params = {
            "ids": "channel==MINE",
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
            "metrics": ",".join(metrics or self.DAILY_METRICS),
        }
        if dimensions:
            params["dimensions"] = dimensions
        if sort:
            params["sort"] = sort
        return self._request_with_retry(f"{config.YOUTUBE_ANALYTICS_API_BASE_URL}/reports", params)


def bind_report_rows(report: dict, metrics: list[str], dimension: str = "day") -> list[dict[str, Any]]:
    """
    Turn report rows into dicts keyed by column name.

    Columns are bound by the report's declared columnHeaders. When the report
    has no headers the requested order (dimension, then metrics) is assumed.
    """
    rows = report.get("rows") or []
    headers = [h.get("name") for h in report.get("columnHeaders") or [] if isinstance(h, dict)]

    if not headers:
        if rows:
            logger.warning("Report has no columnHeaders; binding %d rows by requested column order", len(rows))
        headers = [dimension] + list(metrics)

    missing = [name for name in [dimension] + list(metrics) if name not in headers]
    if missing and rows:
        logger.warning("Report is missing columns %s; they will default to 0", missing)

    bound = []
    for row in rows:
        bound.append({name: row[i] for i, name in enumerate(headers) if name and i < len(row)})
    return bound
