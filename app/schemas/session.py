"""
Phone upload session schemas
"""
from __future__ import annotations

from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class UploadSessionCreated(CamelModel):
    success: bool = True
    session_id: str = Field(..., alias="sessionId")
    expires_at: str = Field(..., alias="expiresAt")


class UploadSessionStatus(CamelModel):
    session_id: str = Field(..., alias="sessionId")
    status: str = Field(..., description="pending | uploaded | expired")
    expires_at: str = Field(..., alias="expiresAt")
    file_url: Optional[str] = Field(None, alias="fileUrl")
    receipt_id: Optional[str] = Field(None, alias="receiptId")


class PhoneUploadResponse(CamelModel):
    success: bool = True
    message: str
    file_url: str = Field(..., alias="fileUrl")
