import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .deps import get_photo_finder, get_race_sheet, get_strava_client
from .errors import AggregationError, StoreError, UpstreamError
from .limiter import limiter
from .schemas import (
    MonthBucket,
    RaceOut,
    RunnerScore,
    SyncResponse,
    TrainingStats,
    WeekBucket,
    YearBucket,
)
from .sheets import DrivePhotoFinder, RaceSheet, sync_races
from .stats import monthly_stats, training_stats, weekly_stats, yearly_stats
from .store import get_featured_race, query_races_with_activities
from .strava import StravaClient, sync_recent_activities
from .utmb import fetch_runner_score

router = APIRouter()
logger = logging.getLogger(__name__)

# --- TRAINING STATISTICS ---

@router.get("/training/stats", response_model=TrainingStats, response_model_exclude_none=True)
def get_training_stats(year: Optional[int] = None, db: Session = Depends(get_db)):
    try:
        return training_stats(db, year)
    except AggregationError as e:
        logger.error(f"Error fetching training stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch training statistics")

@router.get("/training/yearly", response_model=List[YearBucket])
def get_yearly_stats(db: Session = Depends(get_db)):
    try:
        return yearly_stats(db)
    except AggregationError as e:
        logger.error(f"Error fetching yearly stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch yearly statistics")

@router.get("/training/weekly", response_model=List[WeekBucket])
def get_weekly_stats(year: Optional[int] = None, db: Session = Depends(get_db)):
    try:
        return weekly_stats(db, year)
    except AggregationError as e:
        logger.error(f"Error fetching weekly stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch weekly statistics")

@router.get("/training/monthly", response_model=List[MonthBucket])
def get_monthly_stats(year: Optional[int] = None, db: Session = Depends(get_db)):
    try:
        return monthly_stats(db, year)
    except AggregationError as e:
        logger.error(f"Error fetching monthly stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch monthly statistics")

# --- RACES ---

@router.get("/races", response_model=List[RaceOut])
def get_races(db: Session = Depends(get_db)):
    try:
        rows = query_races_with_activities(db)
    except StoreError as e:
        logger.error(f"Error fetching races from database: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch races from database")
    return [RaceOut.from_rows(activity, race) for race, activity in rows]

@router.get("/featured-race", response_model=Optional[RaceOut])
def get_featured(db: Session = Depends(get_db)):
    try:
        row = get_featured_race(db)
    except StoreError as e:
        logger.error(f"Error fetching featured race: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch featured race")
    if row is None:
        return None
    activity, race = row
    return RaceOut.from_rows(activity, race)

# --- SYNC ---

@router.post("/sync", response_model=SyncResponse)
@limiter.limit(settings.SYNC_RATE_LIMIT)
async def sync_strava(
    request: Request,
    db: Session = Depends(get_db),
    client: StravaClient = Depends(get_strava_client),
):
    """Pull the latest activities from Strava into the store."""
    try:
        report = await sync_recent_activities(db, client, settings)
    except (UpstreamError, StoreError) as e:
        logger.error(f"Error syncing activities: {e}")
        raise HTTPException(status_code=500, detail="Failed to sync activities")

    if report is None:
        raise HTTPException(
            status_code=401,
            detail="Strava is not connected. Visit /auth/strava to authorize.",
        )
    return SyncResponse(
        message="Activities synced successfully",
        synced=report.synced,
        races=report.races,
        failed=report.failed,
    )

@router.post("/sync-races", response_model=SyncResponse)
@limiter.limit(settings.SYNC_RATE_LIMIT)
def sync_race_sheet(
    request: Request,
    db: Session = Depends(get_db),
    sheet: RaceSheet = Depends(get_race_sheet),
    photo_finder: DrivePhotoFinder = Depends(get_photo_finder),
):
    """Import the race roster from Google Sheets."""
    try:
        rows = sheet.get_rows()
    except UpstreamError as e:
        logger.error(f"Error reading race sheet: {e}")
        raise HTTPException(status_code=500, detail="Failed to read race sheet")

    report = sync_races(db, rows, photo_finder)
    return SyncResponse(
        message="Races synced successfully",
        synced=report.synced,
        races=report.races,
        failed=report.failed,
    )

# --- MISC ---

@router.get("/utmb-score", response_model=Optional[RunnerScore])
async def get_utmb_score():
    score = await fetch_runner_score(settings.UTMB_RUNNER_ID, settings.UTMB_RUNNER_NAME)
    if score is None:
        return None
    return RunnerScore(**score)

@router.get("/test")
def test_endpoint():
    return {
        "success": True,
        "message": "Server is running"
    }
