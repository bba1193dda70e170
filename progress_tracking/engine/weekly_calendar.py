"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - WEEK-OF-MONTH CALENDAR
════════════════════════════════════════════════════════════════════════════════════════════════════

Bucket model and read-side views of the weekly snapshot history.

BUCKETS
═══════

A bucket is the triple (year, month, week) with week ∈ {1, 2, 3, 4}:

    day  1 –  7   → week 1
    day  8 – 14   → week 2
    day 15 – 21   → week 3
    day 22 – end  → week 4      (7 to 10 days long)

The model does not follow ISO weeks and the fourth bucket is intentionally
variable in length.

RANGES
══════

Calendar ranges are inclusive at month granularity. With m(y, mo) = 12·y + mo:

    bucket ∈ range  ⇔  m(start) ≤ m(bucket) ≤ m(end)

SUMMARIES
═════════

For the snapshots S of one bucket:

    total        = |S|
    completed    = |{s ∈ S : a_s ≥ 100}|
    avg planned  = mean(π_s),  avg actual = mean(a_s)   (0 when S = ∅)
    deviation    = avg actual − avg planned
    status count = |{s : actual_status = c}| for c ∈ {P, R, RP}
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from progress_tracking.engine.records import SnapshotRecord, TaskRecord, WeeklyStatus
from progress_tracking.errors import ValidationError

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = 4
WEEK_LENGTH_DAYS = 7

Bucket = Tuple[int, int, int]


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# BUCKET MODEL
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def week_of_month(day: int) -> int:
    if day <= 7:
        return 1
    if day <= 14:
        return 2
    if day <= 21:
        return 3
    return 4


def current_week(today: date) -> Bucket:
    """Bucket containing the given date."""
    return today.year, today.month, week_of_month(today.day)


def validate_week_number(week_number: int) -> int:
    if not 1 <= week_number <= WEEKS_PER_MONTH:
        raise ValidationError(f"week_number must be between 1 and {WEEKS_PER_MONTH} (got {week_number})")
    return week_number


def week_date_range(year: int, month: int, week_number: int) -> Tuple[date, date]:
    """First and last calendar day covered by a bucket; week 4 runs to month end."""
    validate_week_number(week_number)
    last_day = calendar.monthrange(year, month)[1]
    start_day = (week_number - 1) * WEEK_LENGTH_DAYS + 1
    end_day = last_day if week_number == WEEKS_PER_MONTH else start_day + WEEK_LENGTH_DAYS - 1
    return date(year, month, start_day), date(year, month, end_day)


def month_index(year: int, month: int) -> int:
    return year * 12 + month


def bucket_in_range(
    year: int,
    month: int,
    start_year: int,
    start_month: int,
    end_year: int,
    end_month: int,
) -> bool:
    return month_index(start_year, start_month) <= month_index(year, month) <= month_index(end_year, end_month)


def resolve_range(
    today: date,
    start_year: Optional[int] = None,
    start_month: Optional[int] = None,
    end_year: Optional[int] = None,
    end_month: Optional[int] = None,
) -> Tuple[int, int, int, int]:
    """Fill in a partial range; no start means the month of ``today``."""
    if not start_year or not start_month:
        return today.year, today.month, today.year, today.month
    return start_year, start_month, end_year or start_year, end_month or start_month


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CALENDAR VIEW
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class CalendarWeek:
    year: int
    month: int
    week: int
    planned_status: WeeklyStatus
    actual_status: WeeklyStatus
    planned_progress: float = 0.0
    actual_progress: float = 0.0
    comments: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: SnapshotRecord) -> "CalendarWeek":
        return cls(
            year=snapshot.year,
            month=snapshot.month,
            week=snapshot.week_number,
            planned_status=snapshot.planned_status,
            actual_status=snapshot.actual_status,
            planned_progress=snapshot.planned_progress,
            actual_progress=snapshot.actual_progress,
            comments=snapshot.comments,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'year': self.year,
            'month': self.month,
            'week': self.week,
            'planned_status': self.planned_status.value,
            'actual_status': self.actual_status.value,
            'planned_progress': self.planned_progress,
            'actual_progress': self.actual_progress,
            'comments': self.comments,
        }


@dataclass
class CalendarEntry:
    id: int
    name: str
    order_index: int = 0
    weeks: List[CalendarWeek] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'order_index': self.order_index,
            'weeks': [w.to_dict() for w in self.weeks],
        }


def build_calendar(
    tasks: Sequence[TaskRecord],
    snapshots: Iterable[SnapshotRecord],
    start_year: int,
    start_month: int,
    end_year: int,
    end_month: int,
) -> List[CalendarEntry]:
    """
    Group in-range snapshots under their tasks.

    Every task appears exactly once, in the order given, even when it has no
    snapshot in the range (``weeks`` is then empty). Weeks are ordered by
    (year, month, week).
    """
    entries = {t.id: CalendarEntry(id=t.id, name=t.name, order_index=t.order_index) for t in tasks}

    for snapshot in sorted(snapshots, key=lambda s: s.bucket):
        entry = entries.get(snapshot.task_id)
        if entry is None:
            continue
        if not bucket_in_range(snapshot.year, snapshot.month, start_year, start_month, end_year, end_month):
            continue
        entry.weeks.append(CalendarWeek.from_snapshot(snapshot))

    return [entries[t.id] for t in tasks]


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# SUMMARIES & TRENDS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class WeeklySummary:
    total_tasks: int = 0
    completed_tasks: int = 0
    average_planned_progress: float = 0.0
    average_actual_progress: float = 0.0
    deviation: float = 0.0
    status_counts: Dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in WeeklyStatus}
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_tasks': self.total_tasks,
            'completed_tasks': self.completed_tasks,
            'average_planned_progress': self.average_planned_progress,
            'average_actual_progress': self.average_actual_progress,
            'deviation': self.deviation,
            'status_counts': dict(self.status_counts),
        }


def snapshots_to_frame(snapshots: Iterable[SnapshotRecord]) -> pd.DataFrame:
    columns = ['task_id', 'project_id', 'year', 'month', 'week_number',
               'planned_status', 'actual_status', 'planned_progress', 'actual_progress']
    rows = [
        {
            'task_id': s.task_id,
            'project_id': s.project_id,
            'year': s.year,
            'month': s.month,
            'week_number': s.week_number,
            'planned_status': s.planned_status.value,
            'actual_status': s.actual_status.value,
            'planned_progress': float(s.planned_progress or 0.0),
            'actual_progress': float(s.actual_progress or 0.0),
        }
        for s in snapshots
    ]
    return pd.DataFrame(rows, columns=columns)


def summarize_week(snapshots: Iterable[SnapshotRecord]) -> WeeklySummary:
    """Aggregate the snapshots of a single bucket."""
    df = snapshots_to_frame(snapshots)
    if df.empty:
        return WeeklySummary()

    avg_planned = round(float(df['planned_progress'].mean()), 2)
    avg_actual = round(float(df['actual_progress'].mean()), 2)

    counts = df['actual_status'].value_counts()
    status_counts = {status.value: int(counts.get(status.value, 0)) for status in WeeklyStatus}

    return WeeklySummary(
        total_tasks=int(len(df)),
        completed_tasks=int((df['actual_progress'] >= 100).sum()),
        average_planned_progress=avg_planned,
        average_actual_progress=avg_actual,
        deviation=round(avg_actual - avg_planned, 2),
        status_counts=status_counts,
    )


def weekly_trend(snapshots: Iterable[SnapshotRecord]) -> List[Dict[str, Any]]:
    """
    Per-bucket average planned/actual progress, oldest bucket first.

    Returns:
        List of dicts with year, month, week, snapshots,
        average_planned_progress, average_actual_progress and deviation.
    """
    df = snapshots_to_frame(snapshots)
    if df.empty:
        return []

    grouped = df.groupby(['year', 'month', 'week_number']).agg(
        snapshots=('task_id', 'count'),
        average_planned_progress=('planned_progress', 'mean'),
        average_actual_progress=('actual_progress', 'mean'),
    ).reset_index().sort_values(['year', 'month', 'week_number'])

    trend = []
    for _, row in grouped.iterrows():
        planned = round(float(row['average_planned_progress']), 2)
        actual = round(float(row['average_actual_progress']), 2)
        trend.append({
            'year': int(row['year']),
            'month': int(row['month']),
            'week': int(row['week_number']),
            'snapshots': int(row['snapshots']),
            'average_planned_progress': planned,
            'average_actual_progress': actual,
            'deviation': round(actual - planned, 2),
        })

    logger.debug(f"Weekly trend built over {len(trend)} buckets")
    return trend
