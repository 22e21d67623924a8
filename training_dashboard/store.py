from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import StoreError
from .models import Activity, Race

# Fields overwritten on every upsert. `featured` is local-only and is left
# alone unless the incoming record carries it.
ACTIVITY_FIELDS = (
    "name",
    "type",
    "sport_type",
    "workout_type",
    "start_date",
    "moving_time",
    "elapsed_time",
    "distance",
    "total_elevation_gain",
    "average_speed",
    "max_speed",
    "average_heartrate",
    "max_heartrate",
    "elev_high",
    "elev_low",
    "description",
    "calories",
    "location_country",
    "location_state",
    "location_city",
)

RACE_FIELDS = ("placement", "category", "race_type", "photo_url")


def upsert_activity(db: Session, record: dict, commit: bool = True) -> Activity:
    """
    Insert or fully overwrite an activity keyed by its external id.

    Every field in ACTIVITY_FIELDS is replaced, including with None, so a
    re-sync always reflects the latest provider values.
    """
    activity_id = record.get("id")
    if activity_id is None:
        raise ValueError("Activity record is missing an id")

    try:
        activity = db.query(Activity).filter(Activity.id == activity_id).first()
        if not activity:
            activity = Activity(id=activity_id, featured=False)
            db.add(activity)

        for field in ACTIVITY_FIELDS:
            setattr(activity, field, record.get(field))
        if "featured" in record:
            activity.featured = bool(record["featured"])
        activity.source = record.get("source") or activity.source or "strava"
        activity.last_synced_at = datetime.now(timezone.utc)

        if commit:
            db.commit()
            db.refresh(activity)
        else:
            db.flush()
        return activity
    except SQLAlchemyError as e:
        if commit:
            db.rollback()
        raise StoreError(f"Failed to upsert activity {activity_id}: {e}") from e


def upsert_race(db: Session, activity_id: int, fields: dict, commit: bool = True) -> Race:
    """
    Create the race row for an activity, or merge into the existing one.
    Only non-None incoming values overwrite what is stored.
    """
    try:
        race = db.query(Race).filter(Race.activity_id == activity_id).first()
        if not race:
            race = Race(activity_id=activity_id)
            db.add(race)

        for field in RACE_FIELDS:
            value = fields.get(field)
            if value is not None:
                setattr(race, field, value)

        if commit:
            db.commit()
            db.refresh(race)
        else:
            db.flush()
        return race
    except SQLAlchemyError as e:
        if commit:
            db.rollback()
        raise StoreError(f"Failed to upsert race for activity {activity_id}: {e}") from e


def query_activities(
    db: Session,
    activity_type: Optional[str] = "Run",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    order_by_start: bool = False,
) -> List[Activity]:
    """Activities of a type, optionally within [start, end)."""
    try:
        query = db.query(Activity)
        if activity_type:
            query = query.filter(Activity.type == activity_type)
        if start is not None:
            query = query.filter(Activity.start_date >= start)
        if end is not None:
            query = query.filter(Activity.start_date < end)
        if order_by_start:
            query = query.order_by(Activity.start_date.asc(), Activity.id.asc())
        return query.all()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to query activities: {e}") from e


def query_races_with_activities(db: Session) -> List[Tuple[Race, Activity]]:
    try:
        return db.query(Race, Activity)\
            .join(Activity, Race.activity_id == Activity.id)\
            .order_by(Activity.start_date.desc(), Activity.id.desc())\
            .all()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to query races: {e}") from e


def get_featured_race(db: Session) -> Optional[Tuple[Activity, Optional[Race]]]:
    """The most recent featured activity with its race, if any."""
    try:
        row = db.query(Activity, Race)\
            .outerjoin(Race, Race.activity_id == Activity.id)\
            .filter(Activity.featured.is_(True))\
            .order_by(Activity.start_date.desc())\
            .first()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to query featured race: {e}") from e
    if row is None:
        return None
    return row[0], row[1]


def find_activity_by_name_and_date(db: Session, name: str, day: date) -> Optional[Activity]:
    day_start = datetime(day.year, day.month, day.day)
    try:
        return db.query(Activity)\
            .filter(Activity.name == name)\
            .filter(Activity.start_date >= day_start)\
            .filter(Activity.start_date < day_start + timedelta(days=1))\
            .order_by(Activity.id.asc())\
            .first()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to look up activity '{name}' on {day}: {e}") from e


def next_local_activity_id(db: Session) -> int:
    """
    Ids for activities that only exist in the race sheet. Strava ids are
    positive, so these count down from -1.
    """
    try:
        lowest = db.query(func.min(Activity.id)).scalar()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to allocate activity id: {e}") from e
    if lowest is None or lowest > 0:
        return -1
    return lowest - 1
