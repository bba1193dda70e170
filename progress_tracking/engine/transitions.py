"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - RECORD TRANSITIONS
════════════════════════════════════════════════════════════════════════════════════════════════════

Pure state transitions for tasks and weekly snapshots.

    apply_task_patch : (TaskRecord, Patch, today, now) → TaskRecord

A patch is a mapping of field → new value. Absent keys and ``None`` values
leave the prior value in place (COALESCE semantics). Derived fields are then
recomputed from the merged state:

    d_t' = patch.delay_days                         if supplied
         = max(0, today − estimated_date')          otherwise
    s_t' = classify(π_t', a_t', d_t')

The prior record is never mutated; a new frozen record is returned.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from progress_tracking.engine.records import SnapshotRecord, TaskRecord, WeeklyStatus
from progress_tracking.engine.status import classify_status, clamp_progress, compute_delay_days
from progress_tracking.errors import ValidationError

logger = logging.getLogger(__name__)

TASK_PATCH_FIELDS = frozenset({
    "name",
    "responsible",
    "weight",
    "planned_progress",
    "actual_progress",
    "estimated_date",
    "delay_days",
    "comments",
    "evidence",
    "parent_task_id",
    "order_index",
    "priority",
    "is_macro_process",
})

SNAPSHOT_PATCH_FIELDS = frozenset({
    "planned_status",
    "actual_status",
    "planned_progress",
    "actual_progress",
    "comments",
})

DERIVED_TASK_FIELDS = frozenset({"status"})


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# HELPERS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def _supplied(patch: Mapping[str, Any], allowed: frozenset) -> Dict[str, Any]:
    derived = DERIVED_TASK_FIELDS.intersection(patch)
    if derived:
        raise ValidationError(f"Derived fields cannot be set directly: {sorted(derived)}")

    unknown = set(patch) - allowed
    if unknown:
        raise ValidationError(f"Unknown fields in patch: {sorted(unknown)}")

    return {key: value for key, value in patch.items() if value is not None}


def validate_weight(weight: float) -> float:
    if weight < 0:
        raise ValidationError(f"Task weight must not be negative (got {weight})")
    return float(weight)


def _validate_delay(delay_days: int) -> int:
    if delay_days < 0:
        raise ValidationError(f"delay_days must not be negative (got {delay_days})")
    return int(delay_days)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# TASKS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def new_task(
    project_id: int,
    name: str,
    now: datetime,
    responsible: Optional[str] = None,
    weight: float = 1.0,
    planned_progress: float = 0.0,
    estimated_date: Optional[date] = None,
    **extra: Any,
) -> TaskRecord:
    """
    Build the initial state of a task.

    A fresh task has no actual progress and no delay; its status is the
    classifier's verdict for (planned, 0, 0).
    """
    fields = _supplied(extra, TASK_PATCH_FIELDS - {"actual_progress", "delay_days"})
    planned = clamp_progress(planned_progress)

    return TaskRecord(
        id=None,
        project_id=project_id,
        name=name,
        responsible=responsible,
        weight=validate_weight(weight if weight is not None else 1.0),
        planned_progress=planned,
        actual_progress=0.0,
        status=classify_status(planned, 0.0, 0),
        estimated_date=estimated_date,
        delay_days=0,
        created_at=now,
        updated_at=now,
        **fields,
    )


def apply_task_patch(
    prior: TaskRecord,
    patch: Mapping[str, Any],
    today: date,
    now: datetime,
) -> TaskRecord:
    """Merge a patch onto a task and recompute delay_days and status."""
    changes = _supplied(patch, TASK_PATCH_FIELDS)

    if "weight" in changes:
        changes["weight"] = validate_weight(changes["weight"])
    for key in ("planned_progress", "actual_progress"):
        if key in changes:
            changes[key] = clamp_progress(changes[key])

    merged = replace(prior, **changes)

    if "delay_days" in changes:
        delay_days = _validate_delay(changes["delay_days"])
    else:
        delay_days = compute_delay_days(merged.estimated_date, today)

    status = classify_status(merged.planned_progress, merged.actual_progress, delay_days)

    if status != prior.status:
        logger.debug(f"Task {prior.id} status {prior.status.value} -> {status.value}")

    return replace(merged, delay_days=delay_days, status=status, updated_at=now)


def refresh_task(prior: TaskRecord, today: date, now: datetime) -> TaskRecord:
    """Recompute derived fields against a new 'today' without changing inputs."""
    return apply_task_patch(prior, {}, today, now)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# WEEKLY SNAPSHOTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def new_snapshot(
    task_id: int,
    project_id: int,
    year: int,
    month: int,
    week_number: int,
    patch: Mapping[str, Any],
    now: datetime,
) -> SnapshotRecord:
    """Create a snapshot for an empty bucket; both status codes are required."""
    fields = _supplied(patch, SNAPSHOT_PATCH_FIELDS)

    missing = [key for key in ("planned_status", "actual_status") if key not in fields]
    if missing:
        raise ValidationError(
            f"New snapshot for task {task_id} ({year}-{month:02d} W{week_number}) requires {missing}",
            errors=[f"{key} is required" for key in missing],
        )

    return SnapshotRecord(
        id=None,
        task_id=task_id,
        project_id=project_id,
        year=year,
        month=month,
        week_number=week_number,
        planned_status=WeeklyStatus(fields["planned_status"]),
        actual_status=WeeklyStatus(fields["actual_status"]),
        planned_progress=clamp_progress(fields.get("planned_progress", 0.0)),
        actual_progress=clamp_progress(fields.get("actual_progress", 0.0)),
        comments=fields.get("comments"),
        created_at=now,
        updated_at=now,
    )


def apply_snapshot_patch(prior: SnapshotRecord, patch: Mapping[str, Any], now: datetime) -> SnapshotRecord:
    changes = _supplied(patch, SNAPSHOT_PATCH_FIELDS)

    for key in ("planned_status", "actual_status"):
        if key in changes:
            changes[key] = WeeklyStatus(changes[key])
    for key in ("planned_progress", "actual_progress"):
        if key in changes:
            changes[key] = clamp_progress(changes[key])

    return replace(prior, updated_at=now, **changes)
