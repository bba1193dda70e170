"""
Shared fixtures for the progress tracking tests.
"""
import pytest
from datetime import date, datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from progress_tracking.config import reset_settings
from progress_tracking.database import init_db
from progress_tracking.engine.records import TaskRecord, TaskStatus
from progress_tracking.schemas import ProjectCreate, TaskCreate
from progress_tracking.services import events
from progress_tracking.services.project_service import create_project
from progress_tracking.services.task_service import create_task

TODAY = date(2025, 3, 12)
NOW = datetime(2025, 3, 12, 9, 0, 0)


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    """Each test starts with default settings and no write listeners."""
    for name in ("PROGRESS_DATABASE_URL", "PROGRESS_CACHE_TTL_SECONDS",
                 "PROGRESS_CACHE_INVALIDATE_ON_WRITE", "PROGRESS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    events._listeners.clear()
    yield
    events._listeners.clear()
    reset_settings()


@pytest.fixture
def engine():
    """In-memory SQLite database shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def project(db):
    """An empty project."""
    return create_project(ProjectCreate(name="Plant Retrofit", category="Operations"), now=NOW, db=db)


@pytest.fixture
def other_project(db):
    return create_project(ProjectCreate(name="Warehouse Expansion", category="Logistics"), now=NOW, db=db)


@pytest.fixture
def project_tasks(db, project):
    """Three tasks of ``project`` in display order."""
    return [
        create_task(project.id, TaskCreate(name="Survey", planned_progress=0, order_index=0), now=NOW, db=db),
        create_task(project.id, TaskCreate(name="Design", weight=2, planned_progress=5,
                                           estimated_date=TODAY + timedelta(days=20), order_index=1), now=NOW, db=db),
        create_task(project.id, TaskCreate(name="Install", weight=3, order_index=2), now=NOW, db=db),
    ]


@pytest.fixture
def make_task():
    """Factory for engine task records."""
    def _make(task_id=1, project_id=1, name="Task", **fields):
        return TaskRecord(id=task_id, project_id=project_id, name=name, **fields)
    return _make


@pytest.fixture
def critical_task(make_task):
    return make_task(
        name="Foundations",
        planned_progress=90,
        actual_progress=40,
        status=TaskStatus.CRITICAL,
    )
