"""
Thin Google REST client: bearer auth, one refresh-and-retry on 401, and
error classification.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from app.errors import GoogleApiError, GoogleAuthError, SheetsApiDisabledError
from app.google.tokens import RECONNECT_MESSAGE, refresh_google_token

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"

SHEETS_ENABLE_URL = "https://console.cloud.google.com/apis/library/sheets.googleapis.com"

_ACTIVATION_URL = re.compile(r"https://console\.(?:developers|cloud)\.google\.com/\S+?(?=[\s\"'\\]|$)")


def _error_message(resp: httpx.Response) -> str:
    try:
        err = resp.json().get("error")
    except ValueError:
        return resp.text[:300]
    if isinstance(err, dict):
        return str(err.get("message") or err.get("status") or "")
    return str(err or "")


def _is_api_disabled(resp: httpx.Response) -> bool:
    if resp.status_code != 403:
        return False
    text = resp.text
    return (
        "SERVICE_DISABLED" in text
        or "accessNotConfigured" in text
        or "has not been used in project" in text
        or "it is disabled" in text
    )


class GoogleClient:
    def __init__(
        self,
        http: httpx.Client,
        access_token: str,
        *,
        db: Optional[Session] = None,
        user_id: Optional[str] = None,
    ):
        self.http = http
        self.access_token = access_token
        self.db = db
        self.user_id = user_id

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if extra:
            headers.update(extra)
        return headers

    def _refresh(self) -> None:
        if self.db is None or not self.user_id:
            raise GoogleAuthError(f"Google access token expired. {RECONNECT_MESSAGE}")
        result = refresh_google_token(self.db, self.http, self.user_id, self.access_token)
        if not result.success:
            raise GoogleAuthError(result.error or f"Failed to refresh Google token. {RECONNECT_MESSAGE}")
        self.access_token = result.access_token

    def request(self, method: str, url: str, *, headers: Optional[dict] = None, **kwargs: Any) -> httpx.Response:
        """Send one request; on 401 refresh once and retry that single call."""
        try:
            resp = self.http.request(method, url, headers=self._headers(headers), **kwargs)
            if resp.status_code == 401:
                logger.info("Access token rejected for %s %s, attempting refresh", method, url)
                self._refresh()
                resp = self.http.request(method, url, headers=self._headers(headers), **kwargs)
                if resp.status_code == 401:
                    raise GoogleAuthError(f"Google rejected the refreshed token. {RECONNECT_MESSAGE}")
        except httpx.HTTPError as e:
            logger.error("Google request failed: %s %s: %s", method, url, e)
            raise GoogleApiError(f"Network error talking to Google: {e}") from e
        return resp

    def check(self, resp: httpx.Response, action: str) -> Any:
        """Raise a classified error for non-2xx responses, else return the JSON body."""
        if resp.is_success:
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as e:
                logger.error("%s returned a non-JSON body: %s", action, resp.text[:200])
                raise GoogleApiError(f"{action} failed: unexpected response from Google", resp.status_code) from e
        detail = _error_message(resp)
        logger.error("%s failed: %s %s", action, resp.status_code, detail)
        if _is_api_disabled(resp):
            match = _ACTIVATION_URL.search(resp.text)
            api = "Google Sheets API" if "sheets.googleapis.com" in resp.text else "A required Google API"
            raise SheetsApiDisabledError(
                f"{api} is not enabled for this project. Enable it and try again.",
                activation_url=match.group(0) if match else SHEETS_ENABLE_URL,
            )
        if resp.status_code == 404:
            raise GoogleApiError(f"{action} failed: not found (check the ID is correct)", resp.status_code)
        if resp.status_code == 403:
            raise GoogleApiError(f"{action} failed: permission denied ({detail})", resp.status_code)
        raise GoogleApiError(f"{action} failed: {resp.status_code} {detail}".strip(), resp.status_code)

    def get(self, url: str, action: str, **kwargs: Any) -> Any:
        return self.check(self.request("GET", url, **kwargs), action)

    def post(self, url: str, action: str, **kwargs: Any) -> Any:
        return self.check(self.request("POST", url, **kwargs), action)

    def put(self, url: str, action: str, **kwargs: Any) -> Any:
        return self.check(self.request("PUT", url, **kwargs), action)
