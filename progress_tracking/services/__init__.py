"""
Record managers binding the computation core to the SQLAlchemy store.

- project_service: projects and per-project metrics
- task_service: tasks, with derived status/delay recomputed on every write
- snapshot_service: weekly snapshot buckets, calendar and weekly summaries
- dashboard_service: cached portfolio KPIs, alerts and weekly views
"""
