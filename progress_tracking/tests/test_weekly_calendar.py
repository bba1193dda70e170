"""
Tests for the week-of-month bucket model, calendar view and weekly summaries.
"""
import pytest
from datetime import date

from progress_tracking.engine.records import SnapshotRecord, TaskRecord, WeeklyStatus
from progress_tracking.engine.weekly_calendar import (
    bucket_in_range,
    build_calendar,
    current_week,
    resolve_range,
    summarize_week,
    week_date_range,
    weekly_trend,
)
from progress_tracking.errors import ValidationError


def _snapshot(task_id, year, month, week, planned=0.0, actual=0.0, actual_status="R", project_id=1):
    return SnapshotRecord(
        id=None, task_id=task_id, project_id=project_id, year=year, month=month, week_number=week,
        planned_status=WeeklyStatus.PLANNED, actual_status=WeeklyStatus(actual_status),
        planned_progress=planned, actual_progress=actual,
    )


def _task(task_id, name, order_index=0):
    return TaskRecord(id=task_id, project_id=1, name=name, order_index=order_index)


class TestBuckets:

    def test_week_of_month_boundaries(self):
        expected = {1: 1, 7: 1, 8: 2, 14: 2, 15: 3, 21: 3, 22: 4, 28: 4, 31: 4}
        for day, week in expected.items():
            assert current_week(date(2025, 1, day)) == (2025, 1, week)

    def test_week_date_ranges(self):
        assert week_date_range(2025, 1, 1) == (date(2025, 1, 1), date(2025, 1, 7))
        assert week_date_range(2025, 1, 2) == (date(2025, 1, 8), date(2025, 1, 14))
        assert week_date_range(2025, 1, 3) == (date(2025, 1, 15), date(2025, 1, 21))

    def test_fourth_week_runs_to_month_end(self):
        """The last bucket is 7 to 10 days long."""
        assert week_date_range(2025, 1, 4) == (date(2025, 1, 22), date(2025, 1, 31))
        assert week_date_range(2024, 2, 4) == (date(2024, 2, 22), date(2024, 2, 29))
        assert week_date_range(2025, 2, 4) == (date(2025, 2, 22), date(2025, 2, 28))

    def test_invalid_week_number(self):
        with pytest.raises(ValidationError):
            week_date_range(2025, 1, 5)
        with pytest.raises(ValidationError):
            week_date_range(2025, 1, 0)

    def test_range_is_inclusive_across_years(self):
        assert bucket_in_range(2024, 11, 2024, 11, 2025, 2)
        assert bucket_in_range(2024, 12, 2024, 11, 2025, 2)
        assert bucket_in_range(2025, 2, 2024, 11, 2025, 2)
        assert not bucket_in_range(2024, 10, 2024, 11, 2025, 2)
        assert not bucket_in_range(2025, 3, 2024, 11, 2025, 2)

    def test_resolve_range(self):
        today = date(2025, 3, 12)
        assert resolve_range(today) == (2025, 3, 2025, 3)
        assert resolve_range(today, 2025, 1) == (2025, 1, 2025, 1)
        assert resolve_range(today, 2024, 11, 2025, 2) == (2024, 11, 2025, 2)


class TestBuildCalendar:

    def test_tasks_without_snapshots_are_listed(self):
        """A range with no snapshots still yields one entry per task with empty weeks."""
        tasks = [_task(1, "Survey"), _task(2, "Design", 1)]
        calendar = build_calendar(tasks, [], 2025, 3, 2025, 3)

        assert [entry.id for entry in calendar] == [1, 2]
        assert all(entry.weeks == [] for entry in calendar)

    def test_weeks_filtered_and_ordered(self):
        tasks = [_task(1, "Survey")]
        snapshots = [
            _snapshot(1, 2025, 3, 2),
            _snapshot(1, 2025, 2, 4),
            _snapshot(1, 2025, 3, 1),
            _snapshot(1, 2025, 4, 1),
        ]
        calendar = build_calendar(tasks, snapshots, 2025, 2, 2025, 3)

        assert [(w.year, w.month, w.week) for w in calendar[0].weeks] == [(2025, 2, 4), (2025, 3, 1), (2025, 3, 2)]

    def test_task_order_is_preserved(self):
        tasks = [_task(3, "Install", 0), _task(1, "Survey", 1)]
        calendar = build_calendar(tasks, [_snapshot(1, 2025, 3, 1)], 2025, 3, 2025, 3)

        assert [entry.name for entry in calendar] == ["Install", "Survey"]
        assert len(calendar[1].weeks) == 1

    def test_to_dict(self):
        calendar = build_calendar([_task(1, "Survey")], [_snapshot(1, 2025, 3, 1, 20, 10, "RP")], 2025, 3, 2025, 3)
        data = calendar[0].to_dict()

        assert data['weeks'][0] == {
            'year': 2025, 'month': 3, 'week': 1,
            'planned_status': "P", 'actual_status': "RP",
            'planned_progress': 20, 'actual_progress': 10, 'comments': None,
        }


class TestWeeklySummary:

    def test_empty_bucket_is_zero(self):
        summary = summarize_week([]).to_dict()
        assert summary == {
            'total_tasks': 0,
            'completed_tasks': 0,
            'average_planned_progress': 0.0,
            'average_actual_progress': 0.0,
            'deviation': 0.0,
            'status_counts': {"P": 0, "R": 0, "RP": 0},
        }

    def test_counts_and_averages(self):
        snapshots = [
            _snapshot(1, 2025, 3, 2, planned=100, actual=100, actual_status="R"),
            _snapshot(2, 2025, 3, 2, planned=50, actual=20, actual_status="RP"),
            _snapshot(3, 2025, 3, 2, planned=0, actual=0, actual_status="P"),
        ]
        summary = summarize_week(snapshots)

        assert summary.total_tasks == 3
        assert summary.completed_tasks == 1
        assert summary.average_planned_progress == 50.0
        assert summary.average_actual_progress == 40.0
        assert summary.deviation == -10.0
        assert summary.status_counts == {"P": 1, "R": 1, "RP": 1}

    def test_rounding(self):
        snapshots = [_snapshot(i, 2025, 3, 2, actual=a) for i, a in enumerate([10, 10, 20], start=1)]
        assert summarize_week(snapshots).average_actual_progress == 13.33


class TestWeeklyTrend:

    def test_empty_history(self):
        assert weekly_trend([]) == []

    def test_buckets_in_chronological_order(self):
        snapshots = [
            _snapshot(1, 2025, 3, 1, planned=40, actual=20),
            _snapshot(2, 2025, 3, 1, planned=60, actual=40),
            _snapshot(1, 2024, 12, 4, planned=10, actual=10),
        ]
        trend = weekly_trend(snapshots)

        assert [(t['year'], t['month'], t['week']) for t in trend] == [(2024, 12, 4), (2025, 3, 1)]
        assert trend[1]['snapshots'] == 2
        assert trend[1]['average_planned_progress'] == 50.0
        assert trend[1]['average_actual_progress'] == 30.0
        assert trend[1]['deviation'] == -20.0
