"""Pydantic models for ytsync data structures."""

from datetime import date, datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, Field


class User(BaseModel):
    """A dashboard user with a connected YouTube channel."""

    user_id: str
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TokenRecord(BaseModel):
    """OAuth token record, one per user per provider."""

    user_id: str
    provider: str = "youtube"
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    version: int = 0
    updated_at: Optional[datetime] = None

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when the access token expiry is in the past. No expiry means valid."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < now


class ChannelInfo(BaseModel):
    """YouTube channel info from the Data API."""

    id: str
    title: str = ""
    custom_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    subscriber_count: Optional[int] = None
    video_count: Optional[int] = None
    view_count: Optional[int] = None
    statistics: dict[str, Any] = Field(default_factory=dict)


class DailyAnalytics(BaseModel):
    """One day of channel metrics. Unique on (user_id, date)."""

    user_id: str
    date: date
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    subscribers_gained: int = 0
    subscribers_lost: int = 0
    watch_time_minutes: float = 0.0
    average_view_duration: float = 0.0
    impressions: int = 0
    click_through_rate: float = 0.0
    subscribers_total: Optional[int] = None
    raw_data: Optional[Any] = None


class AnalyticsSummary(BaseModel):
    """Rollup over a window of daily records. Computed, never persisted."""

    total_views: int = 0
    total_likes: int = 0
    total_comments: int = 0
    total_subscribers_gained: int = 0
    total_watch_time_hours: int = 0
    average_engagement_rate: float = 0.0
    data_points: int = 0
    date_from: date
    date_to: date


class GrowthRates(BaseModel):
    """Percentage growth of the last 7 days over the rest of the 30-day window."""

    views: float = 0.0
    subscribers: float = 0.0
    engagement: float = 0.0


class DashboardSummary(BaseModel):
    last_7_days: AnalyticsSummary
    last_30_days: AnalyticsSummary
    growth: GrowthRates


class SyncLog(BaseModel):
    """Log entry for a sync attempt."""

    id: Optional[int] = None
    user_id: str
    sync_type: str  # 'analytics' or 'channel_snapshot'
    status: str  # 'success', 'error', 'auth_required', 'rate_limited'
    records_stored: int = 0
    error_message: Optional[str] = None
    synced_at: Optional[datetime] = None
