"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - ALERT ENGINE
════════════════════════════════════════════════════════════════════════════════════════════════════

Derives operational alerts from the current task state.

ALERT RULES
═══════════

Each task is checked against five independent rules; one task may raise
several alerts.

    critical_deviation   a_t ≤ π_t − 30                               high
    significant_delay    d_t > 7                                      high
    upcoming_deadline    0 ≤ (estimated_date − today) ≤ 7             high if ≤ 3, else medium
    overdue              estimated_date < today ∧ s_t ≠ Completed     high
    critical_status      s_t = Critical                               high

Alerts are never stored. The result is sorted by severity rank
(high=3, medium=2, low=1), descending, and the sort is stable so alerts of
equal severity keep their discovery order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from progress_tracking.engine.records import TaskRecord, TaskStatus
from progress_tracking.engine.status import days_until

logger = logging.getLogger(__name__)

DEVIATION_THRESHOLD = 30.0
SIGNIFICANT_DELAY_DAYS = 7
UPCOMING_WINDOW_DAYS = 7
UPCOMING_HIGH_DAYS = 3


class AlertType(str, Enum):
    CRITICAL_DEVIATION = "critical_deviation"
    SIGNIFICANT_DELAY = "significant_delay"
    UPCOMING_DEADLINE = "upcoming_deadline"
    OVERDUE = "overdue"
    CRITICAL_STATUS = "critical_status"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_RANK = {Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}


@dataclass(frozen=True)
class Alert:
    type: AlertType
    severity: Severity
    message: str
    project_id: int
    task_id: Optional[int]
    project_name: str
    task_name: str
    days_remaining: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type.value,
            'severity': self.severity.value,
            'message': self.message,
            'project_id': self.project_id,
            'task_id': self.task_id,
            'project_name': self.project_name,
            'task_name': self.task_name,
        }
        if self.days_remaining is not None:
            data['days_remaining'] = self.days_remaining
        return data


def _alert(task: TaskRecord, project_name: str, kind: AlertType, severity: Severity, message: str,
           days_remaining: Optional[int] = None) -> Alert:
    return Alert(
        type=kind,
        severity=severity,
        message=message,
        project_id=task.project_id,
        task_id=task.id,
        project_name=project_name,
        task_name=task.name,
        days_remaining=days_remaining,
    )


def task_alerts(task: TaskRecord, project_name: str, today: date) -> List[Alert]:
    """Evaluate every rule for one task, in rule order."""
    alerts: List[Alert] = []
    actual = task.actual_progress or 0.0
    planned = task.planned_progress or 0.0
    label = f'"{task.name}" in project "{project_name}"'

    if actual <= planned - DEVIATION_THRESHOLD:
        alerts.append(_alert(
            task, project_name, AlertType.CRITICAL_DEVIATION, Severity.HIGH,
            f"Critical deviation on {label}: actual progress ({actual:g}%) "
            f"is far below planned ({planned:g}%)",
        ))

    if (task.delay_days or 0) > SIGNIFICANT_DELAY_DAYS:
        alerts.append(_alert(
            task, project_name, AlertType.SIGNIFICANT_DELAY, Severity.HIGH,
            f"Significant delay on {label}: {task.delay_days} days late",
        ))

    if task.estimated_date is not None:
        remaining = days_until(task.estimated_date, today)

        if 0 <= remaining <= UPCOMING_WINDOW_DAYS:
            severity = Severity.HIGH if remaining <= UPCOMING_HIGH_DAYS else Severity.MEDIUM
            alerts.append(_alert(
                task, project_name, AlertType.UPCOMING_DEADLINE, severity,
                f"Deadline approaching for {label}: due in {remaining} day(s)",
                days_remaining=remaining,
            ))

        if remaining < 0 and task.status != TaskStatus.COMPLETED:
            alerts.append(_alert(
                task, project_name, AlertType.OVERDUE, Severity.HIGH,
                f"Overdue: {label} has passed its estimated date",
            ))

    if task.status == TaskStatus.CRITICAL:
        alerts.append(_alert(
            task, project_name, AlertType.CRITICAL_STATUS, Severity.HIGH,
            f"Critical status: {label} is in critical state",
        ))

    return alerts


def generate_alerts(
    tasks: Iterable[TaskRecord],
    project_names: Mapping[int, str],
    today: date,
    project_id: Optional[int] = None,
) -> List[Alert]:
    """
    Scan tasks and return the prioritized alert list.

    Args:
        tasks: Task records to scan
        project_names: project_id -> project name
        today: Reference date for deadline rules
        project_id: If given, only tasks of this project are scanned

    Returns:
        Alerts sorted by severity (high first), discovery order within a severity
    """
    alerts: List[Alert] = []
    scanned = 0
    for task in tasks:
        if project_id is not None and task.project_id != project_id:
            continue
        scanned += 1
        alerts.extend(task_alerts(task, project_names.get(task.project_id, ""), today))

    # sorted() is stable: equal severities keep discovery order
    ordered = sorted(alerts, key=lambda a: SEVERITY_RANK[a.severity], reverse=True)
    logger.debug(f"Generated {len(ordered)} alerts from {scanned} tasks")
    return ordered
