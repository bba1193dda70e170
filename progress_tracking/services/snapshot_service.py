"""
════════════════════════════════════════════════════════════════════════════════════════════════════
SNAPSHOT SERVICE - Weekly Snapshot Store
════════════════════════════════════════════════════════════════════════════════════════════════════

Persists one snapshot per (task, year, month, week) bucket and serves the
calendar and weekly summary views.

UPSERT
══════

    bucket hit   → patch the stored row (supplied fields only, updated_at refreshed)
    bucket miss  → create; planned_status and actual_status are required

The unique constraint on (task_id, year, month, week_number) backs the
bucket lookup, so repeated upserts never duplicate a bucket.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from progress_tracking.database import open_session
from progress_tracking.engine.records import SnapshotRecord
from progress_tracking.engine.transitions import SNAPSHOT_PATCH_FIELDS, apply_snapshot_patch, new_snapshot
from progress_tracking.engine.weekly_calendar import (
    CalendarEntry,
    WeeklySummary,
    build_calendar,
    month_index,
    resolve_range,
    summarize_week,
)
from progress_tracking.errors import NotFoundError, ValidationError
from progress_tracking.models import (
    Project,
    Task,
    WeeklySnapshot,
    snapshot_from_record,
    snapshot_to_record,
    task_to_record,
    utcnow,
    write_snapshot_record,
)
from progress_tracking.schemas import CalendarRange, SnapshotBucket, SnapshotPatch, SnapshotRead, SnapshotUpsert
from progress_tracking.services.events import notify_write
from progress_tracking.services.task_service import query_project_tasks

logger = logging.getLogger(__name__)

SnapshotFields = Union[SnapshotPatch, Mapping[str, Any]]


def _fields(fields: Optional[SnapshotFields]) -> Dict[str, Any]:
    if fields is None:
        return {}
    if isinstance(fields, SnapshotPatch):
        data = fields.to_patch()
        return {k: v for k, v in data.items() if k in SNAPSHOT_PATCH_FIELDS}
    return dict(fields)


def _get_snapshot_row(db: Session, snapshot_id: int) -> WeeklySnapshot:
    row = db.get(WeeklySnapshot, snapshot_id)
    if row is None:
        raise NotFoundError("WeeklySnapshot", snapshot_id)
    return row


def _to_read(row: WeeklySnapshot) -> SnapshotRead:
    return SnapshotRead.model_validate(snapshot_to_record(row))


def _upsert_row(
    db: Session,
    task_id: int,
    project_id: int,
    year: int,
    month: int,
    week_number: int,
    fields: Dict[str, Any],
    now: datetime,
) -> WeeklySnapshot:
    """Bucket lookup then patch-or-create, without committing."""
    SnapshotBucket(year=year, month=month, week_number=week_number)

    task = db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    if task.project_id != project_id:
        raise ValidationError(
            f"Task {task_id} does not belong to project {project_id}",
            errors=[f"task {task_id} belongs to project {task.project_id}"],
        )

    row = (
        db.query(WeeklySnapshot)
        .filter(
            WeeklySnapshot.task_id == task_id,
            WeeklySnapshot.year == year,
            WeeklySnapshot.month == month,
            WeeklySnapshot.week_number == week_number,
        )
        .first()
    )

    if row is not None:
        record = apply_snapshot_patch(snapshot_to_record(row), fields, now)
        return write_snapshot_record(row, record)

    record = new_snapshot(task_id, project_id, year, month, week_number, fields, now)
    row = snapshot_from_record(record)
    db.add(row)
    return row


# ═══════════════════════════════════════════════════════════════════════════════
# MUTATIONS
# ═══════════════════════════════════════════════════════════════════════════════

def upsert_snapshot(
    task_id: int,
    project_id: int,
    year: int,
    month: int,
    week_number: int,
    fields: Optional[SnapshotFields] = None,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> SnapshotRead:
    """
    Write the snapshot of one bucket.

    Raises:
        NotFoundError: If the task does not exist
        ValidationError: If the task belongs to another project, or a new
            bucket is missing planned_status/actual_status
    """
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        row = _upsert_row(db, task_id, project_id, year, month, week_number, _fields(fields), now or utcnow())
        db.commit()
        db.refresh(row)

        logger.info(f"Upserted snapshot {row.id} for task {task_id} ({year}-{month:02d} W{week_number})")
        notify_write("snapshot")
        return _to_read(row)

    except (SQLAlchemyError, ValidationError, NotFoundError) as e:
        db.rollback()
        logger.error(f"Failed to upsert snapshot for task {task_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def bulk_upsert(
    project_id: int,
    items: Iterable[Union[SnapshotUpsert, Mapping[str, Any]]],
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> List[SnapshotRead]:
    """Upsert several buckets of one project in a single transaction; all or nothing."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        now = now or utcnow()
        rows = []
        for item in items:
            if not isinstance(item, SnapshotUpsert):
                item = SnapshotUpsert(**item)
            fields = {k: v for k, v in item.to_patch().items() if k in SNAPSHOT_PATCH_FIELDS}
            rows.append(_upsert_row(
                db, item.task_id, project_id, item.year, item.month, item.week_number, fields, now,
            ))
            # Flush so a later item for the same bucket finds this row
            db.flush()

        db.commit()
        for row in rows:
            db.refresh(row)

        logger.info(f"Bulk upserted {len(rows)} snapshots in project {project_id}")
        notify_write("snapshot")
        return [_to_read(row) for row in rows]

    except (SQLAlchemyError, SchemaValidationError, ValidationError, NotFoundError) as e:
        db.rollback()
        logger.error(f"Bulk upsert failed for project {project_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def update_snapshot(
    snapshot_id: int,
    patch: SnapshotFields,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> SnapshotRead:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        row = _get_snapshot_row(db, snapshot_id)
        record = apply_snapshot_patch(snapshot_to_record(row), _fields(patch), now or utcnow())
        write_snapshot_record(row, record)
        db.commit()
        db.refresh(row)

        notify_write("snapshot")
        return _to_read(row)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update snapshot {snapshot_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def delete_snapshot(snapshot_id: int, db: Optional[Session] = None) -> bool:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        row = _get_snapshot_row(db, snapshot_id)
        db.delete(row)
        db.commit()

        logger.info(f"Deleted snapshot {snapshot_id}")
        notify_write("snapshot")
        return True

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete snapshot {snapshot_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


# ═══════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════════════════════════════════

def get_snapshot(snapshot_id: int, db: Optional[Session] = None) -> SnapshotRead:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        return _to_read(_get_snapshot_row(db, snapshot_id))
    finally:
        if close_session:
            db.close()


def find_task_snapshots(
    task_id: int,
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Optional[Session] = None,
) -> List[SnapshotRead]:
    """Snapshots of a task, newest bucket first."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        query = db.query(WeeklySnapshot).filter(WeeklySnapshot.task_id == task_id)
        if year:
            query = query.filter(WeeklySnapshot.year == year)
        if month:
            query = query.filter(WeeklySnapshot.month == month)
        rows = query.order_by(
            WeeklySnapshot.year.desc(),
            WeeklySnapshot.month.desc(),
            WeeklySnapshot.week_number.desc(),
        ).all()
        return [_to_read(row) for row in rows]
    finally:
        if close_session:
            db.close()


def get_calendar(
    project_id: int,
    start_year: Optional[int] = None,
    start_month: Optional[int] = None,
    end_year: Optional[int] = None,
    end_month: Optional[int] = None,
    today: Optional[date] = None,
    db: Optional[Session] = None,
) -> List[CalendarEntry]:
    """
    Every task of the project with its in-range weeks.

    Tasks without snapshots in the range are still listed, with no weeks.
    Without a start the range is the current month.

    Raises:
        pydantic.ValidationError: If a bound is outside the bucket ranges
        NotFoundError: If the project does not exist
    """
    bounds = CalendarRange(
        start_year=start_year, start_month=start_month, end_year=end_year, end_month=end_month,
    )

    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        if db.get(Project, project_id) is None:
            raise NotFoundError("Project", project_id)

        start_year, start_month, end_year, end_month = resolve_range(
            today or date.today(), bounds.start_year, bounds.start_month, bounds.end_year, bounds.end_month,
        )

        tasks = [task_to_record(row) for row in query_project_tasks(db, project_id)]
        period = WeeklySnapshot.year * 12 + WeeklySnapshot.month
        rows = (
            db.query(WeeklySnapshot)
            .filter(WeeklySnapshot.project_id == project_id)
            .filter(period >= month_index(start_year, start_month))
            .filter(period <= month_index(end_year, end_month))
            .all()
        )

        return build_calendar(
            tasks,
            [snapshot_to_record(row) for row in rows],
            start_year, start_month, end_year, end_month,
        )
    finally:
        if close_session:
            db.close()


def get_weekly_summary(
    year: int,
    month: int,
    week_number: int,
    project_id: Optional[int] = None,
    db: Optional[Session] = None,
) -> WeeklySummary:
    """Counts and averages over the snapshots of one bucket, portfolio-wide or for one project."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        query = db.query(WeeklySnapshot).filter(
            WeeklySnapshot.year == year,
            WeeklySnapshot.month == month,
            WeeklySnapshot.week_number == week_number,
        )
        if project_id is not None:
            query = query.filter(WeeklySnapshot.project_id == project_id)

        return summarize_week(snapshot_to_record(row) for row in query.all())
    finally:
        if close_session:
            db.close()


def load_snapshots(db: Session, project_id: Optional[int] = None) -> List[SnapshotRecord]:
    """Every snapshot record, optionally restricted to one project."""
    query = db.query(WeeklySnapshot)
    if project_id is not None:
        query = query.filter(WeeklySnapshot.project_id == project_id)
    return [snapshot_to_record(row) for row in query.all()]
