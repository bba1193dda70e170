"""
Tests for project metrics, portfolio KPIs and the portfolio summary.
"""
import math
import pytest
from datetime import date, timedelta

from progress_tracking.engine.earned_value import (
    build_portfolio_summary,
    compute_portfolio_kpis,
    compute_project_metrics,
    earned_value,
    planned_value,
)
from progress_tracking.engine.records import ProjectRecord, TaskRecord, TaskStatus
from progress_tracking.errors import ValidationError

TODAY = date(2025, 3, 12)


def _task(task_id, project_id=1, **fields):
    return TaskRecord(id=task_id, project_id=project_id, name=f"task-{task_id}", **fields)


class TestProjectMetrics:

    def test_empty_project_is_all_zero(self):
        """No tasks: every metric is 0 and nothing is NaN."""
        metrics = compute_project_metrics([], TODAY)
        data = metrics.to_dict()

        assert data == {
            'total_tasks': 0,
            'completed_tasks': 0,
            'average_progress': 0.0,
            'planned_value': 0.0,
            'earned_value': 0.0,
            'schedule_variance': 0.0,
            'total_delay_days': 0,
            'critical_tasks': 0,
            'delayed_tasks': 0,
        }
        assert not any(isinstance(v, float) and math.isnan(v) for v in data.values())

    def test_weighted_earned_value(self):
        """(100·1 + 0·3) / 4 = 25."""
        tasks = [_task(1, weight=1, actual_progress=100), _task(2, weight=3, actual_progress=0)]
        metrics = compute_project_metrics(tasks, TODAY)

        assert metrics.earned_value == 25.0
        assert metrics.average_progress == 25.0

    def test_unset_weight_counts_as_one(self):
        tasks = [_task(1, weight=None, actual_progress=100), _task(2, weight=0, actual_progress=0)]
        assert compute_project_metrics(tasks, TODAY).earned_value == 50.0

    def test_planned_value_uses_schedule(self):
        """Tasks due by today count as 100% planned; others use stored planned progress."""
        tasks = [
            _task(1, planned_progress=40, estimated_date=TODAY - timedelta(days=1)),
            _task(2, planned_progress=40, estimated_date=TODAY + timedelta(days=10)),
            _task(3, planned_progress=10),
        ]
        metrics = compute_project_metrics(tasks, TODAY)

        assert metrics.planned_value == 50.0

    def test_schedule_variance_is_ev_minus_pv(self):
        tasks = [
            _task(1, weight=1, planned_progress=60, actual_progress=30),
            _task(2, weight=1, planned_progress=20, actual_progress=30),
        ]
        metrics = compute_project_metrics(tasks, TODAY)

        assert metrics.earned_value == 30.0
        assert metrics.planned_value == 40.0
        assert metrics.schedule_variance == -10.0

    def test_rounding_to_two_decimals(self):
        tasks = [_task(1, actual_progress=100), _task(2), _task(3)]
        assert compute_project_metrics(tasks, TODAY).earned_value == 33.33

    def test_status_counts(self):
        tasks = [
            _task(1, actual_progress=100, status=TaskStatus.COMPLETED),
            _task(2, status=TaskStatus.CRITICAL, delay_days=12),
            _task(3, status=TaskStatus.DELAYED, delay_days=2),
            _task(4, status=TaskStatus.IN_PROGRESS),
        ]
        metrics = compute_project_metrics(tasks, TODAY)

        assert metrics.total_tasks == 4
        assert metrics.completed_tasks == 1
        assert metrics.critical_tasks == 1
        assert metrics.delayed_tasks == 2
        assert metrics.total_delay_days == 14


class TestPortfolioKPIs:

    def test_no_projects(self):
        assert compute_portfolio_kpis([], []).to_dict() == {
            'total_projects': 0,
            'completed_projects': 0,
            'delayed_projects': 0,
            'average_progress': 0.0,
            'total_delay_days': 0,
            'high_priority_projects': 0,
        }

    def test_rollup(self):
        projects = [ProjectRecord(id=1, name="A"), ProjectRecord(id=2, name="B"), ProjectRecord(id=3, name="Empty")]
        tasks = [
            _task(1, project_id=1, actual_progress=100, status=TaskStatus.COMPLETED),
            _task(2, project_id=1, actual_progress=100, status=TaskStatus.COMPLETED),
            _task(3, project_id=2, weight=1, actual_progress=60, status=TaskStatus.CRITICAL, delay_days=15),
            _task(4, project_id=2, weight=1, actual_progress=0, status=TaskStatus.DELAYED, delay_days=3),
        ]
        kpis = compute_portfolio_kpis(projects, tasks)

        assert kpis.total_projects == 3
        assert kpis.completed_projects == 1
        assert kpis.delayed_projects == 1
        assert kpis.high_priority_projects == 1
        assert kpis.total_delay_days == 18
        # (100 + 30 + 0) / 3; the empty project contributes 0
        assert kpis.average_progress == 43.33

    def test_empty_project_is_not_completed(self):
        kpis = compute_portfolio_kpis([ProjectRecord(id=1, name="Empty")], [])
        assert kpis.completed_projects == 0
        assert kpis.average_progress == 0.0

    def test_average_uses_weighted_project_progress(self):
        projects = [ProjectRecord(id=1, name="A")]
        tasks = [_task(1, weight=1, actual_progress=100), _task(2, weight=3, actual_progress=0)]
        assert compute_portfolio_kpis(projects, tasks).average_progress == earned_value(tasks) == 25.0


class TestPortfolioSummary:

    def test_rows_per_project(self):
        projects = [ProjectRecord(id=1, name="A", category="Ops"), ProjectRecord(id=2, name="B")]
        tasks = [
            _task(1, project_id=1, weight=1, planned_progress=100, actual_progress=50, status=TaskStatus.DELAYED,
                  estimated_date=TODAY + timedelta(days=30)),
            _task(2, project_id=1, weight=3, planned_progress=0, actual_progress=10),
        ]
        rows = build_portfolio_summary(projects, tasks)

        assert [r.project_id for r in rows] == [1, 2]
        first = rows[0].to_dict()
        assert first['id'] == 1
        assert first['category'] == "Ops"
        assert first['planned_progress'] == 25.0
        assert first['actual_progress'] == 20.0
        assert first['total_tasks'] == 2
        assert first['status_count'] == {"Completed": 0, "InProgress": 1, "Delayed": 1, "Critical": 0}

    def test_empty_project_row(self):
        row = build_portfolio_summary([ProjectRecord(id=5, name="Empty")], [])[0].to_dict()
        assert row['planned_progress'] == 0.0
        assert row['actual_progress'] == 0.0
        assert row['total_tasks'] == 0
        assert sum(row['status_count'].values()) == 0


class TestRecordsOutsideValidRanges:
    """Records built without the transition layer are checked at aggregation time."""

    def test_negative_weight_rejected_by_project_metrics(self):
        tasks = [_task(1, weight=2, actual_progress=100), _task(2, weight=-1, actual_progress=0)]
        with pytest.raises(ValidationError):
            compute_project_metrics(tasks, TODAY)

    def test_weights_summing_to_zero_rejected(self):
        tasks = [_task(1, weight=1, actual_progress=50), _task(2, weight=-1, actual_progress=50)]
        with pytest.raises(ValidationError):
            earned_value(tasks)

    def test_negative_weight_rejected_by_portfolio_views(self):
        projects = [ProjectRecord(id=1, name="A")]
        tasks = [_task(1, weight=-3, actual_progress=10)]
        with pytest.raises(ValidationError):
            compute_portfolio_kpis(projects, tasks)
        with pytest.raises(ValidationError):
            build_portfolio_summary(projects, tasks)

    def test_progress_clamped_in_project_metrics(self):
        tasks = [_task(1, planned_progress=-40, actual_progress=250)]
        metrics = compute_project_metrics(tasks, TODAY)

        assert metrics.earned_value == 100.0
        assert metrics.planned_value == 0.0
        assert metrics.schedule_variance == 100.0
        assert earned_value(tasks) == 100.0
        assert planned_value(tasks, TODAY) == 0.0

    def test_progress_clamped_in_portfolio_views(self):
        projects = [ProjectRecord(id=1, name="A")]
        tasks = [_task(1, planned_progress=-40, actual_progress=250)]

        assert compute_portfolio_kpis(projects, tasks).average_progress == 100.0
        row = build_portfolio_summary(projects, tasks)[0]
        assert row.planned_progress == 0.0
        assert row.actual_progress == 100.0
