"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - STATUS CLASSIFIER & DELAY CALCULATOR
════════════════════════════════════════════════════════════════════════════════════════════════════

Leaf functions of the engine. All of them are pure: "today" is always an
argument, never read from the clock.

STATUS RULES
════════════

Evaluated in this order (first match wins):

    1. a_t ≥ 100                      → Completed
    2. δ_t ≤ −30  ∨  d_t > 10         → Critical
    3. δ_t < −10  ∨  d_t > 0          → Delayed
    4. otherwise                      → InProgress

A task at 100% is Completed regardless of its delay history.

DELAY
═════

    d_t = max(0, today − estimated_date)      (calendar days, dates only)
    d_t = 0                                    if no estimated date

PLANNED VALUE RULE
══════════════════

    PV_t = π_t      if no estimated date
    PV_t = 100      if estimated_date ≤ today
    PV_t = π_t      otherwise
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from progress_tracking.engine.records import TaskRecord, TaskStatus

CRITICAL_DEVIATION = -30.0
DELAYED_DEVIATION = -10.0
CRITICAL_DELAY_DAYS = 10

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def classify_status(planned_progress: float, actual_progress: float, delay_days: int) -> TaskStatus:
    """Derive the task status from progress and delay."""
    if actual_progress >= 100:
        return TaskStatus.COMPLETED

    deviation = actual_progress - planned_progress

    if deviation <= CRITICAL_DEVIATION or delay_days > CRITICAL_DELAY_DAYS:
        return TaskStatus.CRITICAL

    if deviation < DELAYED_DEVIATION or delay_days > 0:
        return TaskStatus.DELAYED

    return TaskStatus.IN_PROGRESS


def compute_delay_days(estimated_date: Optional[DateLike], today: DateLike) -> int:
    """Whole days the estimated date lies in the past; 0 if not yet passed or unset."""
    if estimated_date is None:
        return 0
    diff = (_as_date(today) - _as_date(estimated_date)).days
    return diff if diff > 0 else 0


def days_until(estimated_date: DateLike, today: DateLike) -> int:
    """Signed day count from today to the estimated date."""
    return (_as_date(estimated_date) - _as_date(today)).days


def task_planned_value(task: TaskRecord, today: DateLike) -> float:
    if task.estimated_date is None:
        return task.planned_progress
    if _as_date(task.estimated_date) <= _as_date(today):
        return 100.0
    return task.planned_progress


def effective_weight(weight: Optional[float]) -> float:
    # Unset or zero weight counts as 1.0 in every aggregation
    return weight if weight else 1.0


def clamp_progress(value: float) -> float:
    return max(0.0, min(100.0, float(value)))
