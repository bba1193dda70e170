"""
════════════════════════════════════════════════════════════════════════════════════════════════════
PROGRESS TRACKING MODELS - Projects, weighted tasks and weekly snapshots
════════════════════════════════════════════════════════════════════════════════════════════════════

Models:
- Project: Container of tasks
- Task: Weighted unit of work with derived status and delay
- WeeklySnapshot: Progress of one task in one (year, month, week) bucket

Deleting a project deletes its tasks; deleting a task deletes its snapshots.
The converters at the bottom map rows to the immutable engine records and back.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, Float, ForeignKey, Integer,
    String, Text, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from progress_tracking.database import Base
from progress_tracking.engine.records import (
    ProjectRecord,
    SnapshotRecord,
    TaskRecord,
    TaskStatus,
    WeeklyStatus,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ═══════════════════════════════════════════════════════════════════════════════
# PROJECT MODEL
# ═══════════════════════════════════════════════════════════════════════════════

class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    snapshots = relationship("WeeklySnapshot", viewonly=True)

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name})>"


# ═══════════════════════════════════════════════════════════════════════════════
# TASK MODEL
# ═══════════════════════════════════════════════════════════════════════════════

class Task(Base):
    """
    A weighted task of a project.

    status and delay_days are derived and only written from the engine's
    transition output.
    """
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    responsible = Column(String(255), nullable=True)
    weight = Column(Float, nullable=False, default=1.0)
    planned_progress = Column(Float, nullable=False, default=0.0)  # 0-100
    actual_progress = Column(Float, nullable=False, default=0.0)   # 0-100
    status = Column(
        Enum(TaskStatus, values_callable=_enum_values, name="task_status"),
        nullable=False,
        default=TaskStatus.IN_PROGRESS,
    )
    estimated_date = Column(Date, nullable=True)
    delay_days = Column(Integer, nullable=False, default=0)
    comments = Column(Text, nullable=True)
    evidence = Column(Text, nullable=True)

    # Hierarchy
    parent_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=2)  # 1 high .. 3 low
    is_macro_process = Column(Boolean, nullable=False, default=False)

    # Metadata
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    snapshots = relationship("WeeklySnapshot", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_task_project_order', 'project_id', 'order_index'),
        Index('ix_task_status', 'status'),
    )

    def __repr__(self):
        return f"<Task(id={self.id}, name={self.name}, status={self.status})>"


# ═══════════════════════════════════════════════════════════════════════════════
# WEEKLY SNAPSHOT MODEL
# ═══════════════════════════════════════════════════════════════════════════════

class WeeklySnapshot(Base):
    """Progress of a task in one week-of-month bucket. One row per bucket."""
    __tablename__ = "weekly_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)        # 1-12
    week_number = Column(Integer, nullable=False)  # 1-4

    planned_status = Column(
        Enum(WeeklyStatus, values_callable=_enum_values, name="weekly_status_planned"),
        nullable=False,
    )
    actual_status = Column(
        Enum(WeeklyStatus, values_callable=_enum_values, name="weekly_status_actual"),
        nullable=False,
    )
    planned_progress = Column(Float, nullable=False, default=0.0)
    actual_progress = Column(Float, nullable=False, default=0.0)
    comments = Column(Text, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    task = relationship("Task", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint('task_id', 'year', 'month', 'week_number', name='uix_snapshot_bucket'),
        Index('ix_snapshot_project_period', 'project_id', 'year', 'month'),
        Index('ix_snapshot_task_period', 'task_id', 'year', 'month'),
    )

    def __repr__(self):
        return (f"<WeeklySnapshot(task_id={self.task_id}, "
                f"bucket={self.year}-{self.month:02d}-W{self.week_number})>")


# ═══════════════════════════════════════════════════════════════════════════════
# ROW <-> RECORD CONVERSION
# ═══════════════════════════════════════════════════════════════════════════════

TASK_RECORD_FIELDS = (
    "name", "responsible", "weight", "planned_progress", "actual_progress", "status",
    "estimated_date", "delay_days", "comments", "evidence", "parent_task_id",
    "order_index", "priority", "is_macro_process", "updated_at",
)

SNAPSHOT_RECORD_FIELDS = (
    "planned_status", "actual_status", "planned_progress", "actual_progress",
    "comments", "updated_at",
)


def project_to_record(row: Project) -> ProjectRecord:
    return ProjectRecord(
        id=row.id,
        name=row.name,
        category=row.category,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def task_to_record(row: Task) -> TaskRecord:
    return TaskRecord(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        responsible=row.responsible,
        weight=row.weight,
        planned_progress=row.planned_progress or 0.0,
        actual_progress=row.actual_progress or 0.0,
        status=TaskStatus(row.status) if row.status is not None else TaskStatus.IN_PROGRESS,
        estimated_date=row.estimated_date,
        delay_days=row.delay_days or 0,
        comments=row.comments,
        evidence=row.evidence,
        parent_task_id=row.parent_task_id,
        order_index=row.order_index or 0,
        priority=row.priority if row.priority is not None else 2,
        is_macro_process=bool(row.is_macro_process),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def snapshot_to_record(row: WeeklySnapshot) -> SnapshotRecord:
    return SnapshotRecord(
        id=row.id,
        task_id=row.task_id,
        project_id=row.project_id,
        year=row.year,
        month=row.month,
        week_number=row.week_number,
        planned_status=WeeklyStatus(row.planned_status),
        actual_status=WeeklyStatus(row.actual_status),
        planned_progress=row.planned_progress or 0.0,
        actual_progress=row.actual_progress or 0.0,
        comments=row.comments,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def task_from_record(record: TaskRecord) -> Task:
    return Task(
        project_id=record.project_id,
        created_at=record.created_at,
        **{name: getattr(record, name) for name in TASK_RECORD_FIELDS},
    )


def snapshot_from_record(record: SnapshotRecord) -> WeeklySnapshot:
    return WeeklySnapshot(
        task_id=record.task_id,
        project_id=record.project_id,
        year=record.year,
        month=record.month,
        week_number=record.week_number,
        created_at=record.created_at,
        **{name: getattr(record, name) for name in SNAPSHOT_RECORD_FIELDS},
    )


def write_task_record(row: Task, record: TaskRecord) -> Task:
    """Copy the mutable state of a record onto an existing row."""
    for name in TASK_RECORD_FIELDS:
        setattr(row, name, getattr(record, name))
    return row


def write_snapshot_record(row: WeeklySnapshot, record: SnapshotRecord) -> WeeklySnapshot:
    for name in SNAPSHOT_RECORD_FIELDS:
        setattr(row, name, getattr(record, name))
    return row
