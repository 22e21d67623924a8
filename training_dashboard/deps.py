from .config import settings
from .sheets import DrivePhotoFinder, RaceSheet
from .strava import StravaClient

def get_strava_client() -> StravaClient:
    return StravaClient(settings.STRAVA_CLIENT_ID, settings.STRAVA_CLIENT_SECRET)

def get_race_sheet() -> RaceSheet:
    # Raises ConfigurationError when the sheet id or credentials are missing
    return RaceSheet(
        settings.GOOGLE_SHEET_ID,
        settings.GOOGLE_CREDENTIALS_PATH,
        settings.GOOGLE_SHEET_TITLE,
    )

def get_photo_finder() -> DrivePhotoFinder:
    return DrivePhotoFinder(settings.GOOGLE_DRIVE_FOLDER_ID, settings.GOOGLE_CREDENTIALS_PATH)
