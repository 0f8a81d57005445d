"""
Error taxonomy shared by the pipeline, the Google sync layer and the routers.

Every error carries the HTTP status it maps to; ``app.main`` renders them
as ``{"error": message}``.
"""
from __future__ import annotations

from typing import Optional


class ReceiptAppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class InputValidationError(ReceiptAppError):
    status_code = 400


class AuthorizationError(ReceiptAppError):
    status_code = 403


class NotFoundError(ReceiptAppError):
    status_code = 404


class SessionAlreadyUsedError(ReceiptAppError):
    status_code = 409


class SessionExpiredError(ReceiptAppError):
    status_code = 410


class StorageError(ReceiptAppError):
    status_code = 500


class ExtractionError(ReceiptAppError):
    """The AI answered, but not with a usable receipt."""
    status_code = 422


class AIProcessingError(ReceiptAppError):
    status_code = 502


class GoogleAuthError(ReceiptAppError):
    """Token refresh failed or Google rejected the refreshed token."""
    status_code = 401

    def to_dict(self) -> dict:
        return {"error": self.message, "reconnect": True}


class GoogleApiError(ReceiptAppError):
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class SheetsApiDisabledError(GoogleApiError):
    def __init__(self, message: str, activation_url: str, upstream_status: Optional[int] = 403):
        super().__init__(message, upstream_status)
        self.activation_url = activation_url

    def to_dict(self) -> dict:
        return {"error": self.message, "activationUrl": self.activation_url}
