"""Google OAuth flow for the YouTube Data and Analytics APIs."""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import config
from .youtube_api import YouTubeAPI, YouTubeAPIError

logger = logging.getLogger(__name__)

_STATE_TTL_SECONDS = 600
_STATE_FUTURE_SKEW_SECONDS = 60
_DEFAULT_EXPIRES_IN = 3600


class OAuthError(Exception):
    """Token endpoint rejected a grant."""

    def __init__(self, message: str, error: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.error = error
        self.status_code = status_code

    @property
    def is_revoked(self) -> bool:
        """True when the grant itself is dead and re-authentication is required."""
        return self.error in ("invalid_grant", "unauthorized_client")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign_state_payload(payload_bytes: bytes) -> bytes:
    secret = config.GOOGLE_CLIENT_SECRET.encode("utf-8")
    return hmac.new(secret, payload_bytes, hashlib.sha256).digest()


def generate_state() -> str:
    """Generate a signed stateless CSRF state token."""
    payload = {
        "iat": int(time.time()),
        "nonce": secrets.token_urlsafe(16),
    }
    payload_bytes = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    signature = _sign_state_payload(payload_bytes)
    return f"{_b64url_encode(payload_bytes)}.{_b64url_encode(signature)}"


def validate_state(state: str) -> bool:
    """Validate a signed stateless CSRF state token."""
    if not state or "." not in state:
        return False

    try:
        payload_part, signature_part = state.split(".", 1)
        payload_bytes = _b64url_decode(payload_part)
        received_signature = _b64url_decode(signature_part)
    except ValueError:
        return False

    expected_signature = _sign_state_payload(payload_bytes)
    if not hmac.compare_digest(received_signature, expected_signature):
        return False

    try:
        payload = json.loads(payload_bytes.decode("utf-8"))
    except ValueError:
        return False

    iat = payload.get("iat") if isinstance(payload, dict) else None
    if not isinstance(iat, int):
        return False

    now = int(time.time())
    if now - iat > _STATE_TTL_SECONDS:
        return False
    if iat - now > _STATE_FUTURE_SKEW_SECONDS:
        return False

    return True


def get_oauth_url(state: Optional[str] = None) -> str:
    """Generate Google OAuth authorization URL."""
    if state is None:
        state = generate_state()

    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": config.GOOGLE_REDIRECT_URI,
        "state": state,
        "scope": " ".join(config.YOUTUBE_SCOPES),
        "response_type": "code",
        # offline + consent so Google always hands back a refresh token
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
    }
    return f"{config.GOOGLE_AUTH_URL}?{urlencode(params)}"


def _safe_json(response: requests.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _token_request(data: dict) -> dict:
    response = requests.post(config.GOOGLE_TOKEN_URL, data=data, timeout=config.HTTP_TIMEOUT)
    body = _safe_json(response)

    if response.status_code != 200:
        error = body.get("error")
        description = body.get("error_description") or response.text or "Unknown token endpoint error"
        raise OAuthError(f"{error or 'token_error'}: {description}", error, response.status_code)

    if not body.get("access_token"):
        raise OAuthError("Token endpoint returned no access token", "missing_access_token", response.status_code)

    expires_in = body.get("expires_in", _DEFAULT_EXPIRES_IN)
    body["expires_at"] = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
    return body


def exchange_code_for_token(code: str) -> dict:
    """Exchange authorization code for access and refresh tokens."""
    return _token_request({
        "client_id": config.GOOGLE_CLIENT_ID,
        "client_secret": config.GOOGLE_CLIENT_SECRET,
        "redirect_uri": config.GOOGLE_REDIRECT_URI,
        "grant_type": "authorization_code",
        "code": code,
    })


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True,
)
def refresh_access_token(refresh_token: str) -> dict:
    """
    Exchange a refresh token for a new access token.

    Only transport failures are retried; a rejected grant raises OAuthError at once.

    Returns:
        Token endpoint response with an added 'expires_at' datetime
    """
    return _token_request({
        "client_id": config.GOOGLE_CLIENT_ID,
        "client_secret": config.GOOGLE_CLIENT_SECRET,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    })


def revoke_token(token: str) -> bool:
    """Revoke a token at Google. Returns True when Google accepted the revocation."""
    try:
        response = requests.post(
            config.GOOGLE_REVOKE_URL,
            params={"token": token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=config.HTTP_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning("Token revocation request failed: %s", e)
        return False

    if response.status_code != 200:
        logger.warning("Token revocation rejected: %s %s", response.status_code, response.text)
        return False
    return True


def complete_oauth_flow(code: str) -> dict:
    """Complete the full OAuth flow and return all necessary data."""
    # Step 1: Exchange code for tokens
    token_data = exchange_code_for_token(code)
    if not token_data.get("refresh_token"):
        logger.warning("Google returned no refresh token; the connection cannot be renewed silently")

    # Step 2: Find the authenticated channel
    api = YouTubeAPI(token_data["access_token"])
    try:
        channel = api.get_channel_info()
    except (YouTubeAPIError, requests.RequestException) as e:
        return {"success": False, "error": f"Could not load YouTube channel: {e}"}

    if channel is None:
        return {
            "success": False,
            "error": (
                "No YouTube channel found for this Google account. "
                "Create a channel or sign in with the account that owns it."
            ),
        }

    return {
        "success": True,
        "tokens": token_data,
        "channel": channel,
    }
