from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./strava_data.sqlite"

    # Strava API
    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: str = ""
    STRAVA_REDIRECT_URI: str = "http://localhost:3000/auth/strava/callback"
    STRAVA_PAGE_SIZE: int = 100
    STRAVA_MAX_PAGES: int = 1

    # Race classification for synced activities
    RACE_TYPE_LABEL: str = "Race"
    RACE_WORKOUT_TYPE: Optional[int] = 1  # Strava run workout_type: 1 = race

    # Google Sheets / Drive
    GOOGLE_SHEET_ID: str = ""
    GOOGLE_SHEET_TITLE: str = "Races"
    GOOGLE_DRIVE_FOLDER_ID: str = ""
    GOOGLE_CREDENTIALS_PATH: str = "./client_secret.json"

    # UTMB / ITRA
    UTMB_RUNNER_ID: str = ""
    UTMB_RUNNER_NAME: str = ""

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"
    STATIC_DIR: str = ""

    # Security
    SECRET_KEY: str = "change_this_to_a_secure_random_key_in_production"

    # Runtime
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    SYNC_ON_STARTUP: bool = False
    SYNC_RATE_LIMIT: str = "5/minute"
    RATE_LIMIT_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def allowed_origins(self) -> list:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

settings = Settings()
