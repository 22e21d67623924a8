"""
Race roster import from a Google Sheet, with optional photo links from a
Google Drive folder.

Sheet rows are matched to activities by (name, start date) instead of the
Strava id. A race that reaches the store through both Strava and the sheet
under a different name or date ends up as two activities; nothing here
tries to merge them.
"""
import logging
import os
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import gspread
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConfigurationError, StoreError, UpstreamError
from .store import (
    find_activity_by_name_and_date,
    next_local_activity_id,
    upsert_activity,
    upsert_race,
)
from .strava import SyncReport

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d.%m.%Y", "%Y/%m/%d")
TRUTHY = {"true", "yes", "y", "1", "x"}

# Filled in from the sheet only when the stored activity has no value yet
FILLABLE_FIELDS = (
    "distance",
    "moving_time",
    "total_elevation_gain",
    "location_city",
    "location_state",
    "location_country",
    "description",
)


class RaceSheet:
    """Reads the race roster worksheet with a service account."""

    def __init__(self, spreadsheet_id: str, credentials_path: str, worksheet_title: str = "Races"):
        if not spreadsheet_id:
            raise ConfigurationError("GOOGLE_SHEET_ID is not configured")
        if not os.path.exists(credentials_path):
            raise ConfigurationError(f"Google credentials file not found: {credentials_path}")
        self.spreadsheet_id = spreadsheet_id
        self.credentials_path = credentials_path
        self.worksheet_title = worksheet_title

    def get_rows(self) -> List[Dict[str, Any]]:
        try:
            client = gspread.service_account(filename=self.credentials_path)
            worksheet = client.open_by_key(self.spreadsheet_id).worksheet(self.worksheet_title)
            return worksheet.get_all_records()
        except gspread.exceptions.WorksheetNotFound as e:
            raise ConfigurationError(
                f'"{self.worksheet_title}" sheet not found in spreadsheet {self.spreadsheet_id}'
            ) from e
        except (gspread.exceptions.GSpreadException, GoogleAuthError) as e:
            raise UpstreamError(f"Failed to read race sheet: {e}") from e


class DrivePhotoFinder:
    """
    Looks up a race photo by file name prefix in a Drive folder. Any problem
    (no folder configured, missing credentials, API errors) yields None.
    """

    def __init__(self, folder_id: Optional[str], credentials_path: str):
        self.folder_id = folder_id
        self.credentials_path = credentials_path
        self._files: Optional[List[dict]] = None

    def _list_files(self) -> List[dict]:
        if self._files is None:
            credentials = service_account.Credentials.from_service_account_file(
                self.credentials_path, scopes=DRIVE_SCOPES
            )
            drive = build("drive", "v3", credentials=credentials, cache_discovery=False)
            response = drive.files().list(
                q=f"'{self.folder_id}' in parents",
                fields="files(id, name, webViewLink)",
            ).execute()
            self._files = response.get("files", [])
        return self._files

    def find(self, race_name: str) -> Optional[str]:
        if not self.folder_id or not race_name:
            return None
        if not os.path.exists(self.credentials_path):
            logger.warning(f"Skipping photo lookup, credentials file not found: {self.credentials_path}")
            return None

        try:
            files = self._list_files()
        except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError, ValueError) as e:
            logger.error(f"Error fetching race photos from Google Drive: {e}")
            return None

        return match_photo(files, race_name)


def photo_prefix(race_name: str) -> str:
    return re.sub(r"\s+", "-", race_name.strip()).lower()


def match_photo(files: List[dict], race_name: str) -> Optional[str]:
    prefix = photo_prefix(race_name)
    for item in files:
        if item.get("name", "").lower().startswith(prefix):
            return item.get("webViewLink")
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any, cast=float):
    text = _text(value)
    if text is None:
        return None
    try:
        return cast(float(text.replace(",", "")))
    except (ValueError, OverflowError):
        return None


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _text(value)
    if text is None:
        raise ValueError("Race row has no date")
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return datetime.fromisoformat(text).date()


def parse_race_row(row: Dict[str, Any]) -> dict:
    """Normalize one roster row. Raises ValueError when name or date is unusable."""
    name = _text(row.get("name"))
    if not name:
        raise ValueError("Race row has no name")
    featured = _text(row.get("featured"))
    return {
        "name": name,
        "date": _parse_date(row.get("date")),
        "distance": _number(row.get("distance")),
        "moving_time": _number(row.get("moving_time"), int),
        "total_elevation_gain": _number(row.get("total_elevation_gain")),
        "location_city": _text(row.get("location_city")),
        "location_state": _text(row.get("location_state")),
        "location_country": _text(row.get("location_country")),
        "description": _text(row.get("description")),
        "race_type": _text(row.get("type")),
        "placement": _number(row.get("placement"), int),
        "category": _text(row.get("category")),
        "featured": featured is not None and featured.lower() in TRUTHY,
    }


def _find_or_create_activity(db: Session, race: dict):
    activity = find_activity_by_name_and_date(db, race["name"], race["date"])
    if activity is None:
        record = {field: race[field] for field in FILLABLE_FIELDS}
        record.update({
            "id": next_local_activity_id(db),
            "name": race["name"],
            "type": "Run",
            "start_date": datetime(race["date"].year, race["date"].month, race["date"].day),
            "featured": race["featured"],
            "source": "sheet",
        })
        return upsert_activity(db, record, commit=False)

    for field in FILLABLE_FIELDS:
        if getattr(activity, field) is None and race[field] is not None:
            setattr(activity, field, race[field])
    activity.featured = race["featured"]
    db.flush()
    return activity


def sync_races(db: Session, rows: List[Dict[str, Any]], photo_finder: Optional[DrivePhotoFinder] = None) -> SyncReport:
    """Import roster rows one at a time; a bad row is logged and skipped."""
    report = SyncReport()
    for index, row in enumerate(rows, start=1):
        try:
            race = parse_race_row(row)
            photo_url = photo_finder.find(race["name"]) if photo_finder else None
            activity = _find_or_create_activity(db, race)
            upsert_race(
                db,
                activity.id,
                {
                    "placement": race["placement"],
                    "category": race["category"],
                    "race_type": race["race_type"],
                    "photo_url": photo_url,
                },
                commit=False,
            )
            db.commit()
        except (StoreError, SQLAlchemyError, ValueError) as e:
            db.rollback()
            report.failed += 1
            logger.error(f"Skipping race sheet row {index}: {e}")
            continue

        report.synced += 1
        report.races += 1

    logger.info(f"Race sheet sync finished: {report.synced} races synced, {report.failed} failed")
    return report
