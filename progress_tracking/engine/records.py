"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - ENGINE RECORDS
════════════════════════════════════════════════════════════════════════════════════════════════════

Plain, immutable records consumed and produced by the computation core.

The engine never touches the database: record managers load ORM rows,
convert them into these records, run the pure functions and write the
result back.

Notation used across the engine:
─────────────────────────────────

    T(p)            Tasks of project p
    w_t             Weight of task t (aggregation multiplier, no unit)
    a_t, π_t        Actual and planned progress of task t, in [0, 100]
    d_t             Delay days of task t (≥ 0)
    δ_t = a_t − π_t Deviation of task t
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# ENUMS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class TaskStatus(str, Enum):
    """Derived task health status."""
    COMPLETED = "Completed"
    IN_PROGRESS = "InProgress"
    DELAYED = "Delayed"
    CRITICAL = "Critical"


class WeeklyStatus(str, Enum):
    """Status code recorded in a weekly snapshot. Opaque to the engine."""
    PLANNED = "P"
    ACTUAL = "R"
    RESCHEDULED = "RP"


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# RECORDS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProjectRecord:
    id: int
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class TaskRecord:
    """
    Snapshot of a task's state.

    status and delay_days are derived fields; they are only ever produced by
    ``engine.transitions`` and must not be set from caller input.
    """
    id: Optional[int]
    project_id: int
    name: str
    responsible: Optional[str] = None
    weight: float = 1.0
    planned_progress: float = 0.0
    actual_progress: float = 0.0
    status: TaskStatus = TaskStatus.IN_PROGRESS
    estimated_date: Optional[date] = None
    delay_days: int = 0
    comments: Optional[str] = None
    evidence: Optional[str] = None

    # Hierarchy fields, persisted but not used by the algorithms
    parent_task_id: Optional[int] = None
    order_index: int = 0
    priority: int = 2
    is_macro_process: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def deviation(self) -> float:
        return self.actual_progress - self.planned_progress

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "responsible": self.responsible,
            "weight": self.weight,
            "planned_progress": self.planned_progress,
            "actual_progress": self.actual_progress,
            "status": self.status.value,
            "estimated_date": self.estimated_date.isoformat() if self.estimated_date else None,
            "delay_days": self.delay_days,
            "comments": self.comments,
            "evidence": self.evidence,
            "parent_task_id": self.parent_task_id,
            "order_index": self.order_index,
            "priority": self.priority,
            "is_macro_process": self.is_macro_process,
        }


@dataclass(frozen=True)
class SnapshotRecord:
    """One weekly progress slot of a task, keyed by (task_id, year, month, week_number)."""
    id: Optional[int]
    task_id: int
    project_id: int
    year: int
    month: int
    week_number: int
    planned_status: WeeklyStatus
    actual_status: WeeklyStatus
    planned_progress: float = 0.0
    actual_progress: float = 0.0
    comments: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def bucket(self) -> tuple:
        return (self.year, self.month, self.week_number)
