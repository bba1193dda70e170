"""Pydantic schemas for projects, tasks and weekly snapshots."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from progress_tracking.engine.records import TaskStatus, WeeklyStatus

MAX_TEXT_LENGTH = 1000


class PatchModel(BaseModel):
    """Base for partial updates: unset or null fields mean "leave unchanged"."""

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


# ═══════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═══════════════════════════════════════════════════════════════════════════════

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Project name must not be blank")
        return v


class ProjectPatch(PatchModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)


class ProjectRead(BaseModel):
    id: int
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ═══════════════════════════════════════════════════════════════════════════════
# TASKS
# ═══════════════════════════════════════════════════════════════════════════════

class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    responsible: Optional[str] = Field(None, max_length=255)
    weight: float = Field(default=1.0, gt=0)
    planned_progress: float = Field(default=0.0, ge=0, le=100)
    estimated_date: Optional[date] = None
    comments: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    evidence: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    parent_task_id: Optional[int] = None
    order_index: int = Field(default=0, ge=0)
    priority: int = Field(default=2, ge=1, le=3)
    is_macro_process: bool = False


class TaskPatch(PatchModel):
    """
    Partial task update.

    ``status`` is not a field: it is always derived. ``delay_days`` may be
    supplied to override the computed delay.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    responsible: Optional[str] = Field(None, max_length=255)
    weight: Optional[float] = Field(None, gt=0)
    planned_progress: Optional[float] = Field(None, ge=0, le=100)
    actual_progress: Optional[float] = Field(None, ge=0, le=100)
    estimated_date: Optional[date] = None
    delay_days: Optional[int] = Field(None, ge=0)
    comments: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    evidence: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    parent_task_id: Optional[int] = None
    order_index: Optional[int] = Field(None, ge=0)
    priority: Optional[int] = Field(None, ge=1, le=3)
    is_macro_process: Optional[bool] = None


class TaskRead(BaseModel):
    id: int
    project_id: int
    name: str
    responsible: Optional[str] = None
    weight: float = 1.0
    planned_progress: float = 0.0
    actual_progress: float = 0.0
    status: TaskStatus
    estimated_date: Optional[date] = None
    delay_days: int = 0
    comments: Optional[str] = None
    evidence: Optional[str] = None
    parent_task_id: Optional[int] = None
    order_index: int = 0
    priority: int = 2
    is_macro_process: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProjectWithTasks(ProjectRead):
    tasks: List[TaskRead] = []


# ═══════════════════════════════════════════════════════════════════════════════
# WEEKLY SNAPSHOTS
# ═══════════════════════════════════════════════════════════════════════════════

class SnapshotPatch(PatchModel):
    planned_status: Optional[WeeklyStatus] = None
    actual_status: Optional[WeeklyStatus] = None
    planned_progress: Optional[float] = Field(None, ge=0, le=100)
    actual_progress: Optional[float] = Field(None, ge=0, le=100)
    comments: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)


class SnapshotBucket(BaseModel):
    year: int = Field(..., ge=2020, le=2030)
    month: int = Field(..., ge=1, le=12)
    week_number: int = Field(..., ge=1, le=4)


class SnapshotUpsert(SnapshotBucket, SnapshotPatch):
    """One item of a bulk upsert: a task, a bucket and the fields to write."""
    task_id: int


class SnapshotRead(BaseModel):
    id: int
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

    class Config:
        from_attributes = True


class CalendarRange(BaseModel):
    start_year: Optional[int] = Field(None, ge=2020, le=2030)
    start_month: Optional[int] = Field(None, ge=1, le=12)
    end_year: Optional[int] = Field(None, ge=2020, le=2030)
    end_month: Optional[int] = Field(None, ge=1, le=12)
