"""
════════════════════════════════════════════════════════════════════════════════════════════════════
TASK SERVICE - Task Record Manager
════════════════════════════════════════════════════════════════════════════════════════════════════

Persists tasks. Every mutation goes through the pure transitions in
``engine.transitions``, so status and delay_days are recomputed on each write:

    row → TaskRecord → apply_task_patch(record, patch, today, now) → row

Each function accepts an optional Session; when none is given a session is
opened on the configured engine and closed before returning.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from progress_tracking.database import open_session
from progress_tracking.engine.transitions import apply_task_patch, new_task, refresh_task
from progress_tracking.errors import NotFoundError
from progress_tracking.models import (
    Project,
    Task,
    task_from_record,
    task_to_record,
    utcnow,
    write_task_record,
)
from progress_tracking.schemas import TaskCreate, TaskPatch, TaskRead
from progress_tracking.services.events import notify_write

logger = logging.getLogger(__name__)


def _get_project_row(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _get_task_row(db: Session, task_id: int) -> Task:
    task = db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _to_read(row: Task) -> TaskRead:
    return TaskRead.model_validate(task_to_record(row))


# ═══════════════════════════════════════════════════════════════════════════════
# MUTATIONS
# ═══════════════════════════════════════════════════════════════════════════════

def create_task(
    project_id: int,
    data: TaskCreate,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> TaskRead:
    """
    Create a task under a project.

    A new task starts with actual progress 0 and delay 0, whatever its
    estimated date; status is derived from the planned progress alone.

    Raises:
        NotFoundError: If the project does not exist
    """
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        project = _get_project_row(db, project_id)
        now = now or utcnow()

        fields = data.model_dump(exclude={"name", "responsible", "weight", "planned_progress", "estimated_date"})
        record = new_task(
            project_id=project.id,
            name=data.name,
            now=now,
            responsible=data.responsible,
            weight=data.weight,
            planned_progress=data.planned_progress,
            estimated_date=data.estimated_date,
            **fields,
        )

        row = task_from_record(record)
        db.add(row)
        project.updated_at = now
        db.commit()
        db.refresh(row)

        logger.info(f"Created task {row.id} '{row.name}' in project {project_id}")
        notify_write("task")
        return _to_read(row)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create task in project {project_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def update_task(
    task_id: int,
    patch: Union[TaskPatch, Mapping[str, Any]],
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> TaskRead:
    """
    Apply a partial update to a task.

    Only supplied, non-null fields change. delay_days is taken from the patch
    when given, otherwise recomputed from the (merged) estimated date against
    ``today``; status is always recomputed. The owning project's updated_at
    is touched.

    Raises:
        NotFoundError: If the task does not exist
        ValidationError: If the patch names a derived or unknown field
    """
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        row = _get_task_row(db, task_id)
        now = now or utcnow()
        today = today or date.today()

        changes = patch.to_patch() if isinstance(patch, TaskPatch) else dict(patch)
        record = apply_task_patch(task_to_record(row), changes, today, now)

        write_task_record(row, record)
        if row.project is not None:
            row.project.updated_at = now
        db.commit()
        db.refresh(row)

        logger.info(f"Updated task {task_id}: status={record.status.value}, delay_days={record.delay_days}")
        notify_write("task")
        return _to_read(row)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update task {task_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def delete_task(task_id: int, now: Optional[datetime] = None, db: Optional[Session] = None) -> TaskRead:
    """Delete a task and its weekly snapshots. Returns the deleted task."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        row = _get_task_row(db, task_id)
        deleted = _to_read(row)

        if row.project is not None:
            row.project.updated_at = now or utcnow()
        db.delete(row)
        db.commit()

        logger.info(f"Deleted task {task_id} from project {deleted.project_id}")
        notify_write("task")
        return deleted

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete task {task_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def refresh_task_delays(
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> int:
    """
    Bring stored delay_days/status in line with the calendar.

    Tasks are otherwise only recomputed when they are updated, so a task whose
    estimated date passes without edits keeps a stale status. Intended for a
    periodic job.

    Returns:
        Number of tasks whose delay or status changed
    """
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        today = today or date.today()
        now = now or utcnow()

        rows = (
            db.query(Task)
            .filter(Task.estimated_date.isnot(None))
            .filter(Task.estimated_date < today)
            .all()
        )

        changed = 0
        for row in rows:
            prior = task_to_record(row)
            record = refresh_task(prior, today, now)
            if record.delay_days != prior.delay_days or record.status != prior.status:
                write_task_record(row, record)
                changed += 1

        db.commit()
        logger.info(f"Refreshed delays: {changed} of {len(rows)} overdue tasks changed")
        if changed:
            notify_write("task")
        return changed

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to refresh task delays: {e}")
        raise
    finally:
        if close_session:
            db.close()


# ═══════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════════════════════════════════

def get_task(task_id: int, db: Optional[Session] = None) -> TaskRead:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        return _to_read(_get_task_row(db, task_id))
    finally:
        if close_session:
            db.close()


def query_project_tasks(db: Session, project_id: Optional[int] = None) -> List[Task]:
    """Task rows in display order (order_index, then creation time)."""
    query = db.query(Task)
    if project_id is not None:
        query = query.filter(Task.project_id == project_id)
    return query.order_by(Task.order_index.asc(), Task.created_at.asc(), Task.id.asc()).all()


def list_project_tasks(project_id: int, db: Optional[Session] = None) -> List[TaskRead]:
    """All tasks of a project ordered by order_index, then creation time."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        _get_project_row(db, project_id)
        return [_to_read(row) for row in query_project_tasks(db, project_id)]
    finally:
        if close_session:
            db.close()