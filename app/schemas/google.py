"""
Google Drive / Sheets sync schemas
"""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from app.schemas.base import CamelModel


class DriveUploadRequest(CamelModel):
    image_url: str = Field(..., alias="imageUrl")
    file_name: str = Field(..., alias="fileName")
    access_token: str = Field(..., alias="accessToken")
    folder_name: Optional[str] = Field(None, alias="folderName")
    user_id: Optional[str] = Field(None, alias="userId")


class DriveUploadResponse(CamelModel):
    success: bool = True
    file_id: str = Field(..., alias="fileId")
    web_view_link: str = Field(..., alias="webViewLink")
    folder_link: str = Field(..., alias="folderLink")
    folder_name: str = Field(..., alias="folderName")


class SheetsReceiptData(BaseModel):
    """One receipt as it is mirrored into a month tab."""
    merchant_name: Optional[str] = None
    amount: float = 0
    receipt_date: str = Field(..., validation_alias=AliasChoices("receipt_date", "date"))
    category: Optional[str] = None
    drive_link: Optional[str] = Field(None, validation_alias=AliasChoices("driveLink", "drive_link"))


class SheetsSyncRequest(CamelModel):
    access_token: str = Field(..., alias="accessToken")
    receipt_data: SheetsReceiptData = Field(..., alias="receiptData")
    sheets_id: str = Field(..., alias="sheetsId")
    user_id: Optional[str] = Field(None, alias="userId")


class SheetsSyncResponse(BaseModel):
    success: bool = True
    sheet: str


class MigrationRequest(CamelModel):
    access_token: str = Field(..., alias="accessToken")
    sheets_id: str = Field(..., alias="sheetsId")
    user_id: str = Field(..., alias="userId")


class MigrationResponse(BaseModel):
    success: bool = True
    imported: int
    skipped: int
    errors: Optional[list[str]] = None
    message: str


class SetupRequest(CamelModel):
    access_token: str = Field(..., alias="accessToken")
    user_id: str = Field(..., alias="userId")
    folder_name: Optional[str] = Field(None, alias="folderName")


class SetupResponse(CamelModel):
    success: bool = True
    spreadsheet_id: str = Field(..., alias="spreadsheetId")
    spreadsheet_url: str = Field(..., alias="spreadsheetUrl")
    folder_id: str = Field(..., alias="folderId")
    folder_name: str = Field(..., alias="folderName")


class GoogleConnectRequest(CamelModel):
    access_token: str = Field(..., alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    setup_mode: Optional[str] = Field(None, alias="setupMode", pattern="^(auto|manual)$")


class GoogleStatus(CamelModel):
    connected: bool
    connection_pending: bool = Field(..., alias="connectionPending")
    sheets_id: Optional[str] = Field(None, alias="sheetsId")
    drive_folder: Optional[str] = Field(None, alias="driveFolder")
    setup_mode: Optional[str] = Field(None, alias="setupMode")
