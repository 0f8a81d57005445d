"""
Google OAuth access-token refresh.

Failures never raise: the caller gets the stale token back with
``success=False`` and a message it can show the user.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from app.config import settings
from app.models import ProfileModel

logger = logging.getLogger(__name__)

RECONNECT_MESSAGE = "Please reconnect your Google account."


@dataclass
class TokenRefreshResult:
    access_token: str
    success: bool
    error: Optional[str] = None


def refresh_google_token(
    db: Session,
    http: httpx.Client,
    user_id: str,
    current_access_token: str,
) -> TokenRefreshResult:
    profile = db.get(ProfileModel, user_id)
    if profile is None or not profile.google_refresh_token:
        logger.error("No refresh token found for user: %s", user_id)
        return TokenRefreshResult(
            current_access_token, False, f"No refresh token available. {RECONNECT_MESSAGE}"
        )

    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        logger.error("Google OAuth credentials not configured")
        return TokenRefreshResult(current_access_token, False, "Google OAuth not configured")

    logger.info("Refreshing Google access token for user: %s", user_id)
    try:
        resp = http.post(
            settings.GOOGLE_TOKEN_URL,
            data={
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "refresh_token": profile.google_refresh_token,
                "grant_type": "refresh_token",
            },
        )
    except httpx.HTTPError as e:
        logger.error("Token refresh request failed: %s", e)
        return TokenRefreshResult(current_access_token, False, f"Failed to refresh token. {RECONNECT_MESSAGE}")

    if resp.status_code >= 400:
        logger.error("Token refresh failed: %s %s", resp.status_code, resp.text[:500])
        return TokenRefreshResult(current_access_token, False, f"Failed to refresh token. {RECONNECT_MESSAGE}")

    try:
        body = resp.json()
    except ValueError:
        logger.error("Token endpoint returned a non-JSON body: %s", resp.text[:200])
        return TokenRefreshResult(current_access_token, False, f"Failed to refresh token. {RECONNECT_MESSAGE}")
    new_token = body.get("access_token")
    if not new_token:
        logger.error("Token endpoint returned no access_token")
        return TokenRefreshResult(current_access_token, False, f"Failed to refresh token. {RECONNECT_MESSAGE}")

    profile.google_provider_token = new_token
    if body.get("refresh_token"):
        profile.google_refresh_token = body["refresh_token"]
    db.commit()
    logger.info("Refreshed and saved new access token for user: %s", user_id)
    return TokenRefreshResult(new_token, True)
