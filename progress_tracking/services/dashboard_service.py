"""
════════════════════════════════════════════════════════════════════════════════════════════════════
DASHBOARD SERVICE - Portfolio KPIs, alerts, summaries and weekly views
════════════════════════════════════════════════════════════════════════════════════════════════════

Read-side facade over the engine for portfolio dashboards.

Portfolio KPIs, the portfolio summary and portfolio-wide alerts are served
through a TTLCache (default 30 s), so they may lag writes by up to the TTL.
Project-scoped alerts bypass the cache. Call ``invalidate()`` (or enable
PROGRESS_CACHE_INVALIDATE_ON_WRITE) when fresher data is required.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from progress_tracking.config import get_settings
from progress_tracking.database import open_session
from progress_tracking.engine.alerts import generate_alerts
from progress_tracking.engine.cache import TTLCache
from progress_tracking.engine.earned_value import build_portfolio_summary, compute_portfolio_kpis
from progress_tracking.engine.records import ProjectRecord, TaskRecord
from progress_tracking.engine.weekly_calendar import current_week, weekly_trend
from progress_tracking.errors import NotFoundError
from progress_tracking.models import Project, project_to_record, task_to_record
from progress_tracking.services import snapshot_service
from progress_tracking.services.events import add_write_listener, remove_write_listener
from progress_tracking.services.task_service import query_project_tasks

logger = logging.getLogger(__name__)

KPI_CACHE_KEY = "kpis"
PORTFOLIO_CACHE_KEY = "portfolio_summary"
ALERTS_CACHE_KEY = "alerts"


class DashboardService:
    """
    Portfolio dashboard queries.

    Args:
        cache_ttl: Seconds a cached aggregate stays valid (default from settings)
        clock: Monotonic clock for the cache, injectable for tests
        session_factory: Callable returning a new Session
        invalidate_on_write: Clear the cache after every record-manager write
            (default from settings)

    With invalidate_on_write the service registers a module-level write
    listener; call ``close()`` when done, or use it as a context manager:

        with DashboardService(invalidate_on_write=True) as dashboard:
            dashboard.kpis()
    """

    def __init__(
        self,
        cache_ttl: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        invalidate_on_write: Optional[bool] = None,
    ):
        settings = get_settings()
        ttl = settings.cache_ttl_seconds if cache_ttl is None else cache_ttl
        self.cache = TTLCache(ttl_seconds=ttl, clock=clock)
        self._session_factory = session_factory or open_session

        if invalidate_on_write is None:
            invalidate_on_write = settings.invalidate_on_write
        self.invalidate_on_write = invalidate_on_write
        if invalidate_on_write:
            add_write_listener(self._on_write)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def _on_write(self, entity: str) -> None:
        self.invalidate()

    def invalidate(self) -> None:
        """Drop every cached aggregate."""
        self.cache.invalidate()
        logger.debug("Dashboard cache invalidated")

    def close(self) -> None:
        """Unregister the write listener; safe to call more than once."""
        if self.invalidate_on_write:
            remove_write_listener(self._on_write)

    def __enter__(self) -> "DashboardService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _load(self, db: Session) -> Tuple[List[ProjectRecord], List[TaskRecord]]:
        projects = [project_to_record(row) for row in db.query(Project).order_by(Project.id).all()]
        tasks = [task_to_record(row) for row in query_project_tasks(db)]
        return projects, tasks

    # ═══════════════════════════════════════════════════════════════════════════
    # PORTFOLIO AGGREGATES (cached)
    # ═══════════════════════════════════════════════════════════════════════════

    def kpis(self) -> Dict[str, Any]:
        def compute():
            with self._session() as db:
                projects, tasks = self._load(db)
            return compute_portfolio_kpis(projects, tasks).to_dict()

        return self.cache.get_or_compute(KPI_CACHE_KEY, compute)

    def portfolio_summary(self) -> List[Dict[str, Any]]:
        def compute():
            with self._session() as db:
                projects, tasks = self._load(db)
            return [row.to_dict() for row in build_portfolio_summary(projects, tasks)]

        return self.cache.get_or_compute(PORTFOLIO_CACHE_KEY, compute)

    def alerts(self, project_id: Optional[int] = None, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Prioritized alerts (high severity first).

        Portfolio-wide results are cached per reference date; a project-scoped
        request is always computed fresh.
        """
        today = today or date.today()

        def compute():
            with self._session() as db:
                if project_id is not None and db.get(Project, project_id) is None:
                    raise NotFoundError("Project", project_id)
                projects, tasks = self._load(db)
            names = {p.id: p.name for p in projects}
            return [a.to_dict() for a in generate_alerts(tasks, names, today, project_id=project_id)]

        if project_id is not None:
            return compute()
        return self.cache.get_or_compute((ALERTS_CACHE_KEY, today), compute)

    # ═══════════════════════════════════════════════════════════════════════════
    # WEEKLY VIEWS
    # ═══════════════════════════════════════════════════════════════════════════

    def weekly_trends(
        self,
        project_id: Optional[int] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
        week_number: Optional[int] = None,
        today: Optional[date] = None,
    ) -> Any:
        """
        Weekly summary of a bucket (default: the current week).

        For one project returns its summary dict; otherwise one summary per
        project, tagged with project_id and project_name.
        """
        c_year, c_month, c_week = current_week(today or date.today())
        year, month, week_number = year or c_year, month or c_month, week_number or c_week

        with self._session() as db:
            if project_id is not None:
                if db.get(Project, project_id) is None:
                    raise NotFoundError("Project", project_id)
                return snapshot_service.get_weekly_summary(year, month, week_number, project_id, db=db).to_dict()

            trends = []
            for project in db.query(Project).order_by(Project.id).all():
                summary = snapshot_service.get_weekly_summary(year, month, week_number, project.id, db=db)
                trends.append({'project_id': project.id, 'project_name': project.name, **summary.to_dict()})
            return trends

    def trend_series(self, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Average planned vs actual progress per bucket over the whole history, oldest first."""
        with self._session() as db:
            return weekly_trend(snapshot_service.load_snapshots(db, project_id))

    def current_week(self, project_id: Optional[int] = None, today: Optional[date] = None) -> Dict[str, Any]:
        """Calendar of the current month for one project or for every project, with the current bucket."""
        today = today or date.today()
        year, month, week_number = current_week(today)

        with self._session() as db:
            if project_id is not None:
                entries = snapshot_service.get_calendar(project_id, year, month, year, month, db=db)
                data: Any = [e.to_dict() for e in entries]
            else:
                data = []
                for project in db.query(Project).order_by(Project.id).all():
                    entries = snapshot_service.get_calendar(project.id, year, month, year, month, db=db)
                    data.append({
                        'project_id': project.id,
                        'project_name': project.name,
                        'data': [e.to_dict() for e in entries],
                    })

        return {'year': year, 'month': month, 'week_number': week_number, 'data': data}
