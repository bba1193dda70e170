"""
Tests for the cached dashboard service.
"""
import pytest
from datetime import date, timedelta

from progress_tracking.errors import NotFoundError
from progress_tracking.schemas import ProjectCreate, SnapshotPatch, TaskCreate, TaskPatch
from progress_tracking.services import events
from progress_tracking.services.dashboard_service import DashboardService
from progress_tracking.services.project_service import create_project
from progress_tracking.services.snapshot_service import upsert_snapshot
from progress_tracking.services.task_service import create_task, update_task


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dashboard(session_factory, clock):
    service = DashboardService(cache_ttl=30, clock=clock, session_factory=session_factory,
                               invalidate_on_write=False)
    yield service
    service.close()


class TestCachedAggregates:

    def test_kpis(self, dashboard, db, project, project_tasks, today, now):
        update_task(project_tasks[0].id, TaskPatch(actual_progress=100), today=today, now=now, db=db)
        kpis = dashboard.kpis()

        assert kpis['total_projects'] == 1
        assert kpis['completed_projects'] == 0
        # (100·1 + 0·2 + 0·3) / 6
        assert kpis['average_progress'] == 16.67

    def test_kpis_stale_within_ttl(self, dashboard, clock, db, now):
        """Writes are not visible until the TTL expires or the cache is invalidated."""
        assert dashboard.kpis()['total_projects'] == 0

        create_project(ProjectCreate(name="New"), now=now, db=db)
        clock.now = 29
        assert dashboard.kpis()['total_projects'] == 0

        clock.now = 30
        assert dashboard.kpis()['total_projects'] == 1

    def test_invalidate(self, dashboard, db, now):
        assert dashboard.kpis()['total_projects'] == 0
        create_project(ProjectCreate(name="New"), now=now, db=db)

        dashboard.invalidate()
        assert dashboard.kpis()['total_projects'] == 1

    def test_invalidate_on_write(self, session_factory, clock, db, now):
        service = DashboardService(cache_ttl=30, clock=clock, session_factory=session_factory,
                                   invalidate_on_write=True)
        try:
            assert service.kpis()['total_projects'] == 0
            create_project(ProjectCreate(name="New"), now=now, db=db)
            assert service.kpis()['total_projects'] == 1
        finally:
            service.close()

    def test_invalidate_on_write_from_environment(self, monkeypatch, session_factory, clock):
        monkeypatch.setenv("PROGRESS_CACHE_INVALIDATE_ON_WRITE", "true")
        service = DashboardService(cache_ttl=30, clock=clock, session_factory=session_factory)
        try:
            assert service.invalidate_on_write is True
        finally:
            service.close()

    def test_portfolio_summary(self, dashboard, project, project_tasks, other_project):
        rows = dashboard.portfolio_summary()

        assert [r['id'] for r in rows] == [project.id, other_project.id]
        assert rows[0]['total_tasks'] == 3
        assert rows[0]['status_count']['InProgress'] == 3
        assert rows[1]['total_tasks'] == 0


class TestLifecycle:

    def test_context_manager_unregisters_listener(self, session_factory, clock):
        with DashboardService(cache_ttl=30, clock=clock, session_factory=session_factory,
                              invalidate_on_write=True) as service:
            assert service._on_write in events._listeners

        assert events._listeners == []

    def test_close_is_idempotent(self, session_factory, clock):
        service = DashboardService(cache_ttl=30, clock=clock, session_factory=session_factory,
                                   invalidate_on_write=True)
        service.close()
        service.close()

        assert events._listeners == []


class TestAlerts:

    def _critical(self, db, project, today, now):
        task = create_task(project.id, TaskCreate(name="Foundations", planned_progress=90), now=now, db=db)
        return update_task(task.id, TaskPatch(actual_progress=40), today=today, now=now, db=db)

    def test_portfolio_alerts_sorted(self, dashboard, db, project, today, now):
        create_task(project.id, TaskCreate(name="Permits", estimated_date=today + timedelta(days=5)),
                    now=now, db=db)
        self._critical(db, project, today, now)

        alerts = dashboard.alerts(today=today)

        assert [a['type'] for a in alerts] == ["critical_deviation", "critical_status", "upcoming_deadline"]
        assert [a['severity'] for a in alerts] == ["high", "high", "medium"]
        assert alerts[0]['project_name'] == "Plant Retrofit"

    def test_portfolio_alerts_cached(self, dashboard, db, project, today, now):
        assert dashboard.alerts(today=today) == []
        self._critical(db, project, today, now)
        assert dashboard.alerts(today=today) == []

    def test_project_alerts_bypass_cache(self, dashboard, db, project, other_project, today, now):
        assert dashboard.alerts(project_id=project.id, today=today) == []
        self._critical(db, project, today, now)

        alerts = dashboard.alerts(project_id=project.id, today=today)
        assert len(alerts) == 2
        assert dashboard.alerts(project_id=other_project.id, today=today) == []

    def test_unknown_project(self, dashboard, today):
        with pytest.raises(NotFoundError):
            dashboard.alerts(project_id=404, today=today)

    def test_expired_dated_entries_dropped(self, dashboard, clock, project, today):
        """Alert results cached for earlier days do not pile up."""
        for offset in range(3):
            dashboard.alerts(today=today + timedelta(days=offset))
            clock.now += 30

        assert len(dashboard.cache) == 1


class TestWeeklyViews:

    def _seed(self, db, project, tasks, now):
        upsert_snapshot(tasks[0].id, project.id, 2025, 3, 2,
                        SnapshotPatch(planned_status="P", actual_status="R",
                                      planned_progress=50, actual_progress=40), now=now, db=db)
        upsert_snapshot(tasks[1].id, project.id, 2025, 3, 1,
                        SnapshotPatch(planned_status="P", actual_status="RP",
                                      planned_progress=20, actual_progress=10), now=now, db=db)

    def test_weekly_trends_for_project(self, dashboard, db, project, project_tasks, today, now):
        self._seed(db, project, project_tasks, now)
        summary = dashboard.weekly_trends(project_id=project.id, today=today)

        assert summary['total_tasks'] == 1
        assert summary['average_actual_progress'] == 40.0

    def test_weekly_trends_for_portfolio(self, dashboard, db, project, project_tasks, other_project, today, now):
        self._seed(db, project, project_tasks, now)
        trends = dashboard.weekly_trends(year=2025, month=3, week_number=1, today=today)

        assert [t['project_name'] for t in trends] == ["Plant Retrofit", "Warehouse Expansion"]
        assert trends[0]['total_tasks'] == 1
        assert trends[0]['status_counts']['RP'] == 1
        assert trends[1]['total_tasks'] == 0

    def test_trend_series(self, dashboard, db, project, project_tasks, now):
        self._seed(db, project, project_tasks, now)
        series = dashboard.trend_series(project.id)

        assert [(s['month'], s['week']) for s in series] == [(3, 1), (3, 2)]

    def test_current_week_for_project(self, dashboard, db, project, project_tasks, now):
        self._seed(db, project, project_tasks, now)
        week = dashboard.current_week(project_id=project.id, today=date(2025, 3, 12))

        assert (week['year'], week['month'], week['week_number']) == (2025, 3, 2)
        assert [entry['name'] for entry in week['data']] == ["Survey", "Design", "Install"]
        assert len(week['data'][0]['weeks']) == 1
        assert week['data'][2]['weeks'] == []

    def test_current_week_for_portfolio(self, dashboard, project, project_tasks, other_project):
        week = dashboard.current_week(today=date(2025, 3, 25))

        assert week['week_number'] == 4
        assert [p['project_id'] for p in week['data']] == [project.id, other_project.id]
        assert week['data'][1]['data'] == []
