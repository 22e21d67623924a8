import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import StoreError, UpstreamError
from .models import StravaToken
from .store import upsert_activity, upsert_race

logger = logging.getLogger(__name__)

STRAVA_AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_API_BASE_URL = "https://www.strava.com/api/v3"
STRAVA_SCOPE = "activity:read_all"

# Refresh this many seconds before the provider's expiry
TOKEN_EXPIRY_BUFFER = 300

_token_refresh_lock = asyncio.Lock()


@dataclass
class SyncReport:
    synced: int = 0
    races: int = 0
    failed: int = 0


class StravaClient:
    """Thin async wrapper around the Strava OAuth and activities endpoints."""

    def __init__(self, client_id: str, client_secret: str, transport: httpx.AsyncBaseTransport = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=10.0, transport=self.transport)

    def authorize_url(self, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "approval_prompt": "force",
            "scope": STRAVA_SCOPE,
        }
        return f"{STRAVA_AUTHORIZE_URL}?{urlencode(params)}"

    async def _post_token(self, data: dict) -> dict:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **data,
        }
        try:
            async with self._client() as client:
                response = await client.post(STRAVA_TOKEN_URL, data=payload)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Strava token request failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"Strava token request rejected: {response.text}",
                status_code=response.status_code,
            )
        return response.json()

    async def exchange_code(self, code: str) -> dict:
        return await self._post_token({"code": code, "grant_type": "authorization_code"})

    async def refresh(self, refresh_token: str) -> dict:
        return await self._post_token({"refresh_token": refresh_token, "grant_type": "refresh_token"})

    async def list_activities(self, access_token: str, page: int = 1, per_page: int = 100) -> List[dict]:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{STRAVA_API_BASE_URL}/athlete/activities",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params={"page": page, "per_page": per_page},
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Strava activities request failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"Strava activities request rejected: {response.text}",
                status_code=response.status_code,
            )
        return response.json()


class StravaTokenStore:
    """
    Persists the single athlete's OAuth tokens and refreshes them on demand.
    """

    def __init__(self, db: Session):
        self.db = db

    def read(self) -> Optional[StravaToken]:
        try:
            return self.db.query(StravaToken).order_by(StravaToken.id.asc()).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read Strava tokens: {e}") from e

    def write(self, access_token: str, refresh_token: str, expires_at: int, scope: str = None) -> StravaToken:
        try:
            token = self.read()
            if not token:
                token = StravaToken()
                self.db.add(token)
            token.access_token = access_token
            token.refresh_token = refresh_token
            token.expires_at = int(expires_at)
            if scope is not None:
                token.scope = scope
            token.updated_at = datetime.now(timezone.utc)
            self.db.commit()
            self.db.refresh(token)
            return token
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to store Strava tokens: {e}") from e

    def write_token_response(self, data: dict) -> StravaToken:
        return self.write(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=data["expires_at"],
            scope=data.get("scope"),
        )

    @staticmethod
    def is_expired(token: StravaToken, now: float = None) -> bool:
        if now is None:
            now = time.time()
        return now >= token.expires_at - TOKEN_EXPIRY_BUFFER

    async def get_valid_access_token(self, client: StravaClient) -> Optional[str]:
        """
        Current access token, refreshed first when it is about to expire.
        Returns None when Strava was never connected.
        """
        async with _token_refresh_lock:
            token = self.read()
            if not token:
                return None

            if self.is_expired(token):
                logger.info("Strava access token expired, refreshing")
                data = await client.refresh(token.refresh_token)
                token = self.write_token_response(data)

            return token.access_token


def _parse_start_date(value: Any) -> Optional[datetime]:
    """Strava sends local start times with a trailing Z; keep them naive."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)


def normalize_activity(payload: dict) -> dict:
    """Map a Strava summary activity onto Activity columns."""
    start = payload.get("start_date_local") or payload.get("start_date")
    return {
        "id": payload["id"],
        "name": payload.get("name") or "",
        "type": payload.get("type"),
        "sport_type": payload.get("sport_type"),
        "workout_type": payload.get("workout_type"),
        "start_date": _parse_start_date(start),
        "moving_time": payload.get("moving_time"),
        "elapsed_time": payload.get("elapsed_time"),
        "distance": payload.get("distance"),
        "total_elevation_gain": payload.get("total_elevation_gain"),
        "average_speed": payload.get("average_speed"),
        "max_speed": payload.get("max_speed"),
        "average_heartrate": payload.get("average_heartrate"),
        "max_heartrate": payload.get("max_heartrate"),
        "elev_high": payload.get("elev_high"),
        "elev_low": payload.get("elev_low"),
        "description": payload.get("description"),
        "calories": payload.get("calories"),
        "location_country": payload.get("location_country"),
        "location_state": payload.get("location_state"),
        "location_city": payload.get("location_city"),
        "source": "strava",
    }


def is_race(payload: dict, race_type_label: Optional[str], race_workout_type: Optional[int]) -> bool:
    if race_type_label and payload.get("type") == race_type_label:
        return True
    workout_type = payload.get("workout_type")
    return race_workout_type is not None and workout_type is not None and int(workout_type) == race_workout_type


async def fetch_all_activities(
    client: StravaClient,
    access_token: str,
    per_page: int = 100,
    max_pages: int = 1,
) -> List[dict]:
    activities: List[dict] = []
    for page in range(1, max_pages + 1):
        batch = await client.list_activities(access_token, page=page, per_page=per_page)
        activities.extend(batch)
        logger.info(f"Fetched {len(batch)} activities from Strava (page {page})")
        if len(batch) < per_page:
            break
    return activities


def sync_activities(
    db: Session,
    payloads: List[Dict[str, Any]],
    race_type_label: Optional[str] = "Race",
    race_workout_type: Optional[int] = 1,
) -> SyncReport:
    """
    Upsert each activity (and its race row when it qualifies), committing per
    row. A row that fails is rolled back and skipped.
    """
    report = SyncReport()
    for payload in payloads:
        activity_id = payload.get("id")
        try:
            record = normalize_activity(payload)
            activity = upsert_activity(db, record, commit=False)
            race = is_race(payload, race_type_label, race_workout_type)
            if race:
                # a label already on the race row (e.g. from the sheet) wins
                race_type = None
                if activity.race is None or not activity.race.race_type:
                    race_type = record["sport_type"] or record["type"]
                upsert_race(db, record["id"], {"race_type": race_type}, commit=False)
            db.commit()
        except (StoreError, SQLAlchemyError, KeyError, TypeError, ValueError) as e:
            db.rollback()
            report.failed += 1
            logger.error(f"Skipping Strava activity {activity_id}: {e}")
            continue

        report.synced += 1
        if race:
            report.races += 1

    logger.info(f"Strava sync finished: {report.synced} synced, {report.races} races, {report.failed} failed")
    return report


async def sync_recent_activities(db: Session, client: StravaClient, settings) -> Optional[SyncReport]:
    """
    Pull the latest activities with the stored token and upsert them.
    Returns None when Strava has not been connected yet.
    """
    access_token = await StravaTokenStore(db).get_valid_access_token(client)
    if not access_token:
        return None

    payloads = await fetch_all_activities(
        client,
        access_token,
        per_page=settings.STRAVA_PAGE_SIZE,
        max_pages=settings.STRAVA_MAX_PAGES,
    )
    return sync_activities(
        db,
        payloads,
        race_type_label=settings.RACE_TYPE_LABEL,
        race_workout_type=settings.RACE_WORKOUT_TYPE,
    )
