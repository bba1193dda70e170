"""
Progress Tracking - Settings
============================

Runtime configuration for the tracking engine.

Values come from environment variables (a local ``.env`` file is honoured
through python-dotenv) or fall back to conservative defaults.

Configuration via environment variables:
    PROGRESS_DATABASE_URL=sqlite:///progress_tracking.db
    PROGRESS_CACHE_TTL_SECONDS=30
    PROGRESS_CACHE_INVALIDATE_ON_WRITE=false
    PROGRESS_LOG_LEVEL=INFO
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class Settings:
    """
    Engine settings.

    cache_ttl_seconds bounds how stale portfolio KPIs/alerts may be.
    invalidate_on_write clears the dashboard caches after every mutation.
    """
    database_url: str = "sqlite:///progress_tracking.db"
    cache_ttl_seconds: float = 30.0
    invalidate_on_write: bool = False
    log_level: str = "INFO"


_settings: Optional[Settings] = None


def _load_from_env() -> Settings:
    load_dotenv()
    settings = Settings()

    url = os.environ.get("PROGRESS_DATABASE_URL")
    if url:
        settings.database_url = url

    ttl = os.environ.get("PROGRESS_CACHE_TTL_SECONDS")
    if ttl:
        try:
            settings.cache_ttl_seconds = float(ttl)
        except ValueError:
            logger.warning(f"Invalid value for PROGRESS_CACHE_TTL_SECONDS: {ttl}")

    invalidate = os.environ.get("PROGRESS_CACHE_INVALIDATE_ON_WRITE")
    if invalidate:
        settings.invalidate_on_write = invalidate.lower() in ("true", "1", "yes")

    level = os.environ.get("PROGRESS_LOG_LEVEL")
    if level:
        settings.log_level = level.upper()

    return settings


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = _load_from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and workers using the engine."""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
