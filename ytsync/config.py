"""Configuration management for ytsync."""

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration from environment variables."""

    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_REDIRECT_URI: str = os.getenv("GOOGLE_REDIRECT_URI", "")

    # Turso / libSQL
    DATABASE_URL: str = os.getenv("DATABASE_URL", "ytsync.db")
    DATABASE_AUTH_TOKEN: str = os.getenv("DATABASE_AUTH_TOKEN", "")

    # Google endpoints
    GOOGLE_AUTH_URL: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_REVOKE_URL: str = "https://oauth2.googleapis.com/revoke"
    YOUTUBE_DATA_API_BASE_URL: str = "https://www.googleapis.com/youtube/v3"
    YOUTUBE_ANALYTICS_API_BASE_URL: str = "https://youtubeanalytics.googleapis.com/v2"

    YOUTUBE_SCOPES: list[str] = [
        "https://www.googleapis.com/auth/youtube.upload",
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/yt-analytics.readonly",
    ]

    # Sync
    SYNC_WINDOW_DAYS: int = int(os.getenv("SYNC_WINDOW_DAYS", "30"))
    SYNC_INTERVAL_HOURS: int = int(os.getenv("SYNC_INTERVAL_HOURS", "6"))
    TOKEN_REFRESH_LEAD_MINUTES: int = int(os.getenv("TOKEN_REFRESH_LEAD_MINUTES", "10"))

    # Rate limiting, per user
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    RATE_LIMIT_WINDOW: int = int(os.getenv("RATE_LIMIT_WINDOW", "3600"))

    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "30"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> list[str]:
        """Validate required configuration. Returns list of missing keys."""
        required = ["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI", "DATABASE_URL"]
        missing = [key for key in required if not getattr(cls, key)]
        return missing


config = Config()
