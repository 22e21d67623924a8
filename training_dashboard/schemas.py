from datetime import datetime
from typing import Optional

from pydantic import BaseModel

class BucketTotals(BaseModel):
    """Numeric summary shared by every bucket granularity."""
    total_distance: float = 0
    total_activities: int = 0
    total_vert: float = 0
    days_run: int = 0
    avg_distance_per_day: float = 0

class YearBucket(BucketTotals):
    year: int
    avg_distance: float = 0

class MonthBucket(BucketTotals):
    year: int
    month: int

class WeekBucket(BucketTotals):
    year: int
    week: int

class TrainingStats(BucketTotals):
    """Single summary over all runs, or the runs of one year."""
    avg_distance: float = 0
    total_days: int = 0
    year: Optional[int] = None

class RaceOut(BaseModel):
    id: int
    name: str
    start_date_local: datetime
    moving_time: Optional[int] = None
    elapsed_time: Optional[int] = None
    distance: Optional[float] = None
    total_elevation_gain: Optional[float] = None
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    elev_high: Optional[float] = None
    elev_low: Optional[float] = None
    type: str
    sport_type: Optional[str] = None
    workout_type: Optional[int] = None
    description: Optional[str] = None
    calories: Optional[float] = None
    location_country: Optional[str] = None
    location_state: Optional[str] = None
    location_city: Optional[str] = None
    featured: bool = False
    placement: Optional[int] = None
    category: Optional[str] = None
    race_type: Optional[str] = None
    photo_url: Optional[str] = None

    @classmethod
    def from_rows(cls, activity, race=None) -> "RaceOut":
        return cls(
            id=activity.id,
            name=activity.name,
            start_date_local=activity.start_date,
            moving_time=activity.moving_time,
            elapsed_time=activity.elapsed_time,
            distance=activity.distance,
            total_elevation_gain=activity.total_elevation_gain,
            average_speed=activity.average_speed,
            max_speed=activity.max_speed,
            average_heartrate=activity.average_heartrate,
            max_heartrate=activity.max_heartrate,
            elev_high=activity.elev_high,
            elev_low=activity.elev_low,
            type=activity.type,
            sport_type=activity.sport_type,
            workout_type=activity.workout_type,
            description=activity.description,
            calories=activity.calories,
            location_country=activity.location_country,
            location_state=activity.location_state,
            location_city=activity.location_city,
            featured=bool(activity.featured),
            placement=race.placement if race else None,
            category=race.category if race else None,
            race_type=race.race_type if race else None,
            photo_url=race.photo_url if race else None,
        )

class SyncResponse(BaseModel):
    message: str
    synced: int = 0
    races: int = 0
    failed: int = 0

class RunnerScore(BaseModel):
    utmb_index: Optional[float] = None
    itra_score: Optional[float] = None
