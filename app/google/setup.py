"""
One-time Google storage setup: Drive folder + fresh spreadsheet, both
remembered on the user's profile.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.google.client import SHEETS_API, GoogleClient
from app.google.drive import DriveSync, validate_folder_name, validate_user_id
from app.google.sheets import SheetsSync, SheetTab
from app.models import ProfileModel

logger = logging.getLogger(__name__)

WELCOME_TAB = "Getting Started"


@dataclass
class SetupResult:
    spreadsheet_id: str
    spreadsheet_url: str
    folder_id: str
    folder_name: str


def get_or_create_profile(db: Session, user_id: str) -> ProfileModel:
    profile = db.get(ProfileModel, user_id)
    if profile is None:
        profile = ProfileModel(user_id=user_id)
        db.add(profile)
    return profile


def setup_google_storage(
    db: Session,
    drive: DriveSync,
    user_id: str,
    folder_name: Optional[str] = None,
) -> SetupResult:
    folder_name = folder_name or settings.DEFAULT_DRIVE_FOLDER
    validate_user_id(user_id)
    validate_folder_name(folder_name)
    client: GoogleClient = drive.client

    logger.info("Setting up Google storage for user: %s", user_id)
    folder_id = drive.find_or_create_folder(folder_name)

    created = client.post(
        SHEETS_API,
        "Google Sheet creation",
        json={
            "properties": {"title": settings.SPREADSHEET_TITLE},
            "sheets": [{"properties": {"title": WELCOME_TAB}}],
        },
    )
    spreadsheet_id = created["spreadsheetId"]
    spreadsheet_url = created.get("spreadsheetUrl") or f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"
    logger.info("Created spreadsheet: %s", spreadsheet_id)

    sheets = created.get("sheets") or [{}]
    welcome_id = sheets[0].get("properties", {}).get("sheetId", 0)
    SheetsSync(client, spreadsheet_id).write_header(SheetTab(welcome_id, WELCOME_TAB, 0))

    profile = get_or_create_profile(db, user_id)
    profile.google_sheets_id = spreadsheet_id
    profile.google_drive_folder = folder_name
    profile.setup_mode = "auto"
    db.commit()
    logger.info("Setup complete for user: %s", user_id)

    return SetupResult(spreadsheet_id, spreadsheet_url, folder_id, folder_name)
