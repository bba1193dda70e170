"""
════════════════════════════════════════════════════════════════════════════════════════════════════
Progress Tracking - Weighted task progress, earned value and weekly history
════════════════════════════════════════════════════════════════════════════════════════════════════

Modules:
- config: environment settings and logging bootstrap
- database: SQLAlchemy engine, sessions and declarative base
- models: ORM tables (projects, tasks, weekly_snapshots)
- schemas: pydantic input/output schemas
- engine: pure status, earned-value, alert and calendar computations
- services: record managers binding the engine to the database
"""

from __future__ import annotations

__version__ = "0.1.0"
