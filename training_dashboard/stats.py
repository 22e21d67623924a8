"""
Training statistics over stored Run activities.

Runs are grouped into year, month or week buckets keyed on their local start
time. Weeks follow strftime's %W convention: Monday starts the week and the
days before the first Monday of a year form week 0. This is not ISO-8601
numbering, so 2024-12-30 is (2024, 53) here and 2025-01-01 is (2025, 0).
"""
import enum
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from .errors import AggregationError, StoreError
from .models import Activity
from .schemas import BucketTotals, MonthBucket, TrainingStats, WeekBucket, YearBucket
from .store import query_activities

logger = logging.getLogger(__name__)

RUN_TYPE = "Run"


class Granularity(str, enum.Enum):
    YEAR = "year"
    MONTH = "month"
    WEEK = "week"


def week_of_year(moment: datetime) -> int:
    """Monday-first week number, 0..53."""
    return int(moment.strftime("%W"))


def bucket_key(moment: datetime, granularity: Granularity) -> Tuple[int, ...]:
    if granularity == Granularity.YEAR:
        return (moment.year,)
    if granularity == Granularity.MONTH:
        return (moment.year, moment.month)
    if granularity == Granularity.WEEK:
        return (moment.year, week_of_year(moment))
    raise ValueError(f"Unknown granularity: {granularity}")


def year_bounds(year: int) -> Tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)


def summarize(activities: Iterable[Activity]) -> dict:
    """
    Totals for one group of activities. Missing distance or elevation counts
    as zero, and averages are zero instead of dividing by zero.
    """
    total_distance = 0.0
    total_vert = 0.0
    total_activities = 0
    days = set()
    for activity in activities:
        total_distance += activity.distance or 0
        total_vert += activity.total_elevation_gain or 0
        total_activities += 1
        days.add(activity.start_date.date())

    days_run = len(days)
    return {
        "total_distance": total_distance,
        "total_activities": total_activities,
        "total_vert": total_vert,
        "avg_distance": total_distance / total_activities if total_activities else 0,
        "days_run": days_run,
        "avg_distance_per_day": total_distance / days_run if days_run else 0,
    }


def _load_runs(db: Session, year: Optional[int]) -> List[Activity]:
    start, end = year_bounds(year) if year is not None else (None, None)
    try:
        # Fixed order keeps float sums identical between calls
        return query_activities(db, RUN_TYPE, start=start, end=end, order_by_start=True)
    except StoreError as e:
        logger.error(f"Failed to load runs for statistics: {e}")
        raise AggregationError(f"Failed to load runs: {e}") from e


def _to_bucket(key: Tuple[int, ...], granularity: Granularity, totals: dict) -> BucketTotals:
    shared = {
        "total_distance": totals["total_distance"],
        "total_activities": totals["total_activities"],
        "total_vert": totals["total_vert"],
        "days_run": totals["days_run"],
        "avg_distance_per_day": totals["avg_distance_per_day"],
    }
    if granularity == Granularity.YEAR:
        return YearBucket(year=key[0], avg_distance=totals["avg_distance"], **shared)
    if granularity == Granularity.MONTH:
        return MonthBucket(year=key[0], month=key[1], **shared)
    return WeekBucket(year=key[0], week=key[1], **shared)


def compute_bucketed_stats(
    db: Session,
    granularity: Granularity,
    year: Optional[int] = None,
) -> List[BucketTotals]:
    """
    One summary per populated bucket, most recent bucket first.

    With granularity YEAR and a year filter the result always holds exactly
    one bucket for that year, zero-filled when nothing was run.
    """
    granularity = Granularity(granularity)
    runs = _load_runs(db, year)

    groups: Dict[Tuple[int, ...], List[Activity]] = {}
    for run in runs:
        groups.setdefault(bucket_key(run.start_date, granularity), []).append(run)

    if granularity == Granularity.YEAR and year is not None and not groups:
        groups[(year,)] = []

    return [
        _to_bucket(key, granularity, summarize(groups[key]))
        for key in sorted(groups, reverse=True)
    ]


def training_stats(db: Session, year: Optional[int] = None) -> TrainingStats:
    totals = summarize(_load_runs(db, year))
    return TrainingStats(
        total_distance=totals["total_distance"],
        total_activities=totals["total_activities"],
        total_vert=totals["total_vert"],
        avg_distance=totals["avg_distance"],
        days_run=totals["days_run"],
        total_days=totals["days_run"],
        avg_distance_per_day=totals["avg_distance_per_day"],
        year=year,
    )


def yearly_stats(db: Session) -> List[YearBucket]:
    return compute_bucketed_stats(db, Granularity.YEAR)


def monthly_stats(db: Session, year: Optional[int] = None) -> List[MonthBucket]:
    return compute_bucketed_stats(db, Granularity.MONTH, year)


def weekly_stats(db: Session, year: Optional[int] = None) -> List[WeekBucket]:
    return compute_bucketed_stats(db, Granularity.WEEK, year)
