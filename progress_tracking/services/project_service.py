"""
════════════════════════════════════════════════════════════════════════════════════════════════════
PROJECT SERVICE - Project Record Manager
════════════════════════════════════════════════════════════════════════════════════════════════════

Services for:
- Project management (create, read, update, delete with cascade)
- Project detail with its ordered tasks
- Paginated listing with tasks embedded
- Per-project earned-value metrics
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from progress_tracking.database import open_session
from progress_tracking.engine.earned_value import ProjectMetrics, compute_project_metrics
from progress_tracking.errors import NotFoundError, ValidationError
from progress_tracking.models import Project, Task, project_to_record, task_to_record, utcnow
from progress_tracking.schemas import ProjectCreate, ProjectPatch, ProjectRead, ProjectWithTasks, TaskRead
from progress_tracking.services.events import notify_write
from progress_tracking.services.task_service import query_project_tasks

logger = logging.getLogger(__name__)

PROJECT_PATCH_FIELDS = frozenset({"name", "category", "description"})
MAX_PAGE_SIZE = 1000


def _get_project_row(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _to_read(row: Project) -> ProjectRead:
    return ProjectRead.model_validate(project_to_record(row))


def _page_of_projects(db: Session, page: int, limit: int) -> List[Project]:
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    return (
        db.query(Project)
        .order_by(Project.created_at.desc(), Project.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


# ═══════════════════════════════════════════════════════════════════════════════
# MUTATIONS
# ═══════════════════════════════════════════════════════════════════════════════

def create_project(data: ProjectCreate, now: Optional[datetime] = None, db: Optional[Session] = None) -> ProjectRead:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        now = now or utcnow()
        project = Project(
            name=data.name,
            category=data.category,
            description=data.description,
            created_at=now,
            updated_at=now,
        )
        db.add(project)
        db.commit()
        db.refresh(project)

        logger.info(f"Created project {project.id} '{project.name}'")
        notify_write("project")
        return _to_read(project)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create project '{data.name}': {e}")
        raise
    finally:
        if close_session:
            db.close()


def update_project(
    project_id: int,
    patch: Union[ProjectPatch, Mapping[str, Any]],
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> ProjectRead:
    """Partial update: only supplied, non-null fields change."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        project = _get_project_row(db, project_id)

        if isinstance(patch, ProjectPatch):
            changes = patch.to_patch()
        else:
            changes = {k: v for k, v in patch.items() if v is not None}
        unknown = set(changes) - PROJECT_PATCH_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields in patch: {sorted(unknown)}")

        for key, value in changes.items():
            setattr(project, key, value)
        project.updated_at = now or utcnow()

        db.commit()
        db.refresh(project)

        logger.info(f"Updated project {project_id}: {sorted(changes)}")
        notify_write("project")
        return _to_read(project)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update project {project_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


def delete_project(project_id: int, db: Optional[Session] = None) -> Dict[str, int]:
    """
    Delete a project together with its tasks and their snapshots.

    Returns:
        Dict with deleted_project_id and deleted_task_count
    """
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        project = _get_project_row(db, project_id)
        task_count = len(project.tasks)

        db.delete(project)
        db.commit()

        logger.info(f"Deleted project {project_id} with {task_count} tasks")
        notify_write("project")
        return {"deleted_project_id": project_id, "deleted_task_count": task_count}

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete project {project_id}: {e}")
        raise
    finally:
        if close_session:
            db.close()


# ═══════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════════════════════════════════

def get_project(project_id: int, db: Optional[Session] = None) -> ProjectRead:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        return _to_read(_get_project_row(db, project_id))
    finally:
        if close_session:
            db.close()


def list_projects(page: int = 1, limit: int = 50, db: Optional[Session] = None) -> List[ProjectRead]:
    """Projects, newest first, paginated."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        return [_to_read(row) for row in _page_of_projects(db, page, limit)]
    finally:
        if close_session:
            db.close()


def list_projects_with_tasks(
    page: int = 1,
    limit: int = 50,
    db: Optional[Session] = None,
) -> List[ProjectWithTasks]:
    """Paginated project listing (newest first) with each project's tasks in display order."""
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        projects = _page_of_projects(db, page, limit)
        if not projects:
            return []

        tasks_by_project: Dict[int, List[TaskRead]] = {p.id: [] for p in projects}
        rows = (
            db.query(Task)
            .filter(Task.project_id.in_(list(tasks_by_project)))
            .order_by(Task.order_index.asc(), Task.created_at.asc(), Task.id.asc())
            .all()
        )
        for row in rows:
            tasks_by_project[row.project_id].append(TaskRead.model_validate(task_to_record(row)))

        return [
            ProjectWithTasks(**_to_read(project).model_dump(), tasks=tasks_by_project[project.id])
            for project in projects
        ]
    finally:
        if close_session:
            db.close()


def get_project_with_tasks(project_id: int, db: Optional[Session] = None) -> ProjectWithTasks:
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        project = _get_project_row(db, project_id)
        tasks = [TaskRead.model_validate(task_to_record(row)) for row in query_project_tasks(db, project_id)]
        return ProjectWithTasks(**_to_read(project).model_dump(), tasks=tasks)
    finally:
        if close_session:
            db.close()


def get_project_metrics(
    project_id: int,
    today: Optional[date] = None,
    db: Optional[Session] = None,
) -> ProjectMetrics:
    """
    Earned-value metrics of one project as of ``today``.

    Raises:
        NotFoundError: If the project does not exist
    """
    close_session = False
    if db is None:
        db = open_session()
        close_session = True

    try:
        _get_project_row(db, project_id)
        tasks = [task_to_record(row) for row in query_project_tasks(db, project_id)]
        return compute_project_metrics(tasks, today or date.today())
    finally:
        if close_session:
            db.close()
