"""
════════════════════════════════════════════════════════════════════════════════════════════════════
                    PROGRESS TRACKING - COMPUTATION CORE
════════════════════════════════════════════════════════════════════════════════════════════════════

Pure functions over immutable records. Nothing in this package reads the
clock or touches the database; the service layer supplies "today"/"now" and
persists the results.

ARCHITECTURE
════════════

    ┌──────────────────────────────────────────────────────────────────────────┐
    │                         COMPUTATION CORE                                  │
    │                                                                           │
    │  ┌──────────────┐  ┌──────────────┐  ┌──────────────┐  ┌──────────────┐  │
    │  │ status       │  │ transitions  │  │ earned_value │  │ alerts       │  │
    │  │              │  │              │  │              │  │              │  │
    │  │ • classifier │  │ • new_task   │  │ • PV / EV    │  │ • 5 rules    │  │
    │  │ • delay      │  │ • task patch │  │ • SV         │  │ • severity   │  │
    │  │ • PV rule    │  │ • snapshots  │  │ • KPIs       │  │   ordering   │  │
    │  └──────────────┘  └──────────────┘  └──────────────┘  └──────────────┘  │
    │                                                                           │
    │  ┌──────────────────────────┐  ┌──────────────────────────┐               │
    │  │ weekly_calendar          │  │ cache                    │               │
    │  │ • buckets, ranges        │  │ • TTL entries            │               │
    │  │ • calendar, summaries    │  │ • invalidate hook        │               │
    │  └──────────────────────────┘  └──────────────────────────┘               │
    └──────────────────────────────────────────────────────────────────────────┘
"""

from .records import (
    ProjectRecord,
    SnapshotRecord,
    TaskRecord,
    TaskStatus,
    WeeklyStatus,
)
from .status import (
    classify_status,
    compute_delay_days,
    days_until,
    effective_weight,
    task_planned_value,
)
from .transitions import (
    apply_snapshot_patch,
    apply_task_patch,
    new_snapshot,
    new_task,
    refresh_task,
)
from .earned_value import (
    PortfolioKPIs,
    ProjectMetrics,
    ProjectProgressSummary,
    build_portfolio_summary,
    compute_portfolio_kpis,
    compute_project_metrics,
)
from .alerts import (
    Alert,
    AlertType,
    Severity,
    generate_alerts,
)
from .weekly_calendar import (
    CalendarEntry,
    CalendarWeek,
    WeeklySummary,
    build_calendar,
    bucket_in_range,
    current_week,
    summarize_week,
    week_date_range,
    weekly_trend,
)
from .cache import TTLCache

__all__ = [
    # Records
    "ProjectRecord",
    "TaskRecord",
    "SnapshotRecord",
    "TaskStatus",
    "WeeklyStatus",
    # Status
    "classify_status",
    "compute_delay_days",
    "days_until",
    "effective_weight",
    "task_planned_value",
    # Transitions
    "new_task",
    "apply_task_patch",
    "refresh_task",
    "new_snapshot",
    "apply_snapshot_patch",
    # Earned value
    "ProjectMetrics",
    "PortfolioKPIs",
    "ProjectProgressSummary",
    "compute_project_metrics",
    "compute_portfolio_kpis",
    "build_portfolio_summary",
    # Alerts
    "Alert",
    "AlertType",
    "Severity",
    "generate_alerts",
    # Weekly calendar
    "CalendarEntry",
    "CalendarWeek",
    "WeeklySummary",
    "current_week",
    "week_date_range",
    "bucket_in_range",
    "build_calendar",
    "summarize_week",
    "weekly_trend",
    # Cache
    "TTLCache",
]
