"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - EARNED VALUE & KPI AGGREGATION
════════════════════════════════════════════════════════════════════════════════════════════════════

Rolls task-level progress into project and portfolio metrics.

KPI DEFINITIONS
═══════════════

Per-Project (Project Aggregator):
─────────────────────────────────

Let W_p = Σ_{t ∈ T(p)} w_t   (w_t = 1 when unset).

1. Earned Value:

       EV_p = Σ_t a_t · w_t / W_p

2. Planned Value (PV_t from the planned-value rule in engine.status):

       PV_p = Σ_t PV_t · w_t / W_p

3. Schedule Variance:

       SV_p = EV_p − PV_p          (negative ⇒ behind schedule)

4. Counts: completed, critical, delayed (= Delayed ∪ Critical) and the
   unweighted total of delay days.

If T(p) = ∅ every metric is 0. Percentages are rounded to 2 decimals.
Progress values are clamped to [0, 100] before weighting; a negative
weight raises ValidationError.

Portfolio (KPI Aggregator):
───────────────────────────

1. Completed projects:  |{p : T(p) ≠ ∅ ∧ ∀t ∈ T(p) : s_t = Completed}|
2. Delayed projects:    |{p : ∃t ∈ T(p) : s_t ∈ {Delayed, Critical}}|
3. High priority:       |{p : ∃t ∈ T(p) : s_t = Critical}|
4. Average progress:    (Σ_p EV_p) / |P|, with EV_p = 0 for empty projects
5. Total delay days:    Σ_t d_t
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from progress_tracking.engine.records import ProjectRecord, TaskRecord, TaskStatus
from progress_tracking.engine.status import clamp_progress, effective_weight, task_planned_value
from progress_tracking.errors import ValidationError

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ProjectMetrics:
    """Earned-value metrics of a single project."""
    total_tasks: int = 0
    completed_tasks: int = 0
    average_progress: float = 0.0
    planned_value: float = 0.0
    earned_value: float = 0.0
    schedule_variance: float = 0.0
    total_delay_days: int = 0
    critical_tasks: int = 0
    delayed_tasks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_tasks': self.total_tasks,
            'completed_tasks': self.completed_tasks,
            'average_progress': round(self.average_progress, 2),
            'planned_value': round(self.planned_value, 2),
            'earned_value': round(self.earned_value, 2),
            'schedule_variance': round(self.schedule_variance, 2),
            'total_delay_days': self.total_delay_days,
            'critical_tasks': self.critical_tasks,
            'delayed_tasks': self.delayed_tasks,
        }


@dataclass
class PortfolioKPIs:
    """Portfolio-wide rollup across every project."""
    total_projects: int = 0
    completed_projects: int = 0
    delayed_projects: int = 0
    average_progress: float = 0.0
    total_delay_days: int = 0
    high_priority_projects: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_projects': self.total_projects,
            'completed_projects': self.completed_projects,
            'delayed_projects': self.delayed_projects,
            'average_progress': round(self.average_progress, 2),
            'total_delay_days': self.total_delay_days,
            'high_priority_projects': self.high_priority_projects,
        }


@dataclass
class ProjectProgressSummary:
    """Per-project row of the portfolio summary used by dashboard charts."""
    project_id: int
    name: str
    category: Optional[str] = None
    planned_progress: float = 0.0
    actual_progress: float = 0.0
    total_tasks: int = 0
    status_count: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.project_id,
            'name': self.name,
            'category': self.category,
            'planned_progress': round(self.planned_progress, 2),
            'actual_progress': round(self.actual_progress, 2),
            'status_count': dict(self.status_count),
            'total_tasks': self.total_tasks,
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# WEIGHTED AGGREGATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def _weights(tasks: Sequence[TaskRecord]) -> np.ndarray:
    for t in tasks:
        if t.weight is not None and t.weight < 0:
            raise ValidationError(f"Task {t.id} has a negative weight ({t.weight})")
    return np.array([effective_weight(t.weight) for t in tasks], dtype=float)


def _actual(task: TaskRecord) -> float:
    return clamp_progress(task.actual_progress or 0.0)


def _planned(task: TaskRecord, today: date) -> float:
    return clamp_progress(task_planned_value(task, today) or 0.0)


def weighted_average(values: Sequence[float], weights: np.ndarray) -> float:
    """Σ v·w / Σ w, guarded so an empty or weightless set yields 0.0."""
    total_weight = float(weights.sum()) if len(weights) else 0.0
    if total_weight <= 0:
        return 0.0
    return float(np.dot(np.asarray(values, dtype=float), weights) / total_weight)


def earned_value(tasks: Sequence[TaskRecord]) -> float:
    """Weighted actual progress (EV) of a task set."""
    tasks = list(tasks)
    return weighted_average([_actual(t) for t in tasks], _weights(tasks))


def planned_value(tasks: Sequence[TaskRecord], today: date) -> float:
    """Weighted planned value (PV) of a task set as of today."""
    tasks = list(tasks)
    return weighted_average([_planned(t, today) for t in tasks], _weights(tasks))


def _round2(value: float) -> float:
    return round(value, 2)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PROJECT AGGREGATOR
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def compute_project_metrics(tasks: Iterable[TaskRecord], today: date) -> ProjectMetrics:
    """
    Compute PV, EV, SV and status counts for the tasks of one project.

    Args:
        tasks: Every task of the project. A missing task must fail the
               caller's read, never be silently dropped here.
        today: Reference date for the planned-value rule.

    Returns:
        ProjectMetrics, all zeros for an empty project.

    Example:
        >>> from progress_tracking.engine.records import TaskRecord
        >>> tasks = [
        ...     TaskRecord(id=1, project_id=1, name="a", weight=1, actual_progress=100),
        ...     TaskRecord(id=2, project_id=1, name="b", weight=3, actual_progress=0),
        ... ]
        >>> compute_project_metrics(tasks, date(2025, 1, 1)).earned_value
        25.0
    """
    tasks = list(tasks)
    if not tasks:
        return ProjectMetrics()

    weights = _weights(tasks)
    ev = weighted_average([_actual(t) for t in tasks], weights)
    pv = weighted_average([_planned(t, today) for t in tasks], weights)

    statuses = [t.status for t in tasks]

    return ProjectMetrics(
        total_tasks=len(tasks),
        completed_tasks=sum(1 for s in statuses if s == TaskStatus.COMPLETED),
        average_progress=_round2(ev),
        planned_value=_round2(pv),
        earned_value=_round2(ev),
        schedule_variance=_round2(ev - pv),
        total_delay_days=int(sum(t.delay_days or 0 for t in tasks)),
        critical_tasks=sum(1 for s in statuses if s == TaskStatus.CRITICAL),
        delayed_tasks=sum(1 for s in statuses if s in (TaskStatus.DELAYED, TaskStatus.CRITICAL)),
    )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# KPI AGGREGATOR
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def group_tasks_by_project(tasks: Iterable[TaskRecord]) -> Dict[int, List[TaskRecord]]:
    grouped: Dict[int, List[TaskRecord]] = defaultdict(list)
    for task in tasks:
        grouped[task.project_id].append(task)
    return grouped


def compute_portfolio_kpis(projects: Sequence[ProjectRecord], tasks: Iterable[TaskRecord]) -> PortfolioKPIs:
    """Portfolio-wide rollup built on the same weighting as the project aggregator."""
    projects = list(projects)
    by_project = group_tasks_by_project(tasks)

    if not projects:
        return PortfolioKPIs()

    completed = delayed = high_priority = 0
    progresses: List[float] = []
    total_delay = 0

    for project in projects:
        project_tasks = by_project.get(project.id, [])
        statuses = [t.status for t in project_tasks]

        if project_tasks and all(s == TaskStatus.COMPLETED for s in statuses):
            completed += 1
        if any(s in (TaskStatus.DELAYED, TaskStatus.CRITICAL) for s in statuses):
            delayed += 1
        if any(s == TaskStatus.CRITICAL for s in statuses):
            high_priority += 1

        progresses.append(earned_value(project_tasks))
        total_delay += sum(t.delay_days or 0 for t in project_tasks)

    average = float(np.mean(progresses)) if progresses else 0.0
    if np.isnan(average):
        average = 0.0

    kpis = PortfolioKPIs(
        total_projects=len(projects),
        completed_projects=completed,
        delayed_projects=delayed,
        average_progress=_round2(average),
        total_delay_days=int(total_delay),
        high_priority_projects=high_priority,
    )
    logger.debug(f"Portfolio KPIs computed for {len(projects)} projects")
    return kpis


def build_portfolio_summary(
    projects: Sequence[ProjectRecord],
    tasks: Iterable[TaskRecord],
) -> List[ProjectProgressSummary]:
    """Weighted planned (stored values) vs actual progress and status counts per project."""
    by_project = group_tasks_by_project(tasks)
    summary = []

    for project in projects:
        project_tasks = by_project.get(project.id, [])
        weights = _weights(project_tasks)

        status_count = {status.value: 0 for status in TaskStatus}
        for task in project_tasks:
            status_count[task.status.value] += 1

        summary.append(ProjectProgressSummary(
            project_id=project.id,
            name=project.name,
            category=project.category,
            planned_progress=_round2(weighted_average(
                [clamp_progress(t.planned_progress or 0.0) for t in project_tasks], weights,
            )),
            actual_progress=_round2(weighted_average([_actual(t) for t in project_tasks], weights)),
            total_tasks=len(project_tasks),
            status_count=status_count,
        ))

    return summary
