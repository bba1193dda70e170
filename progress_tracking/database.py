"""SQLAlchemy engine, session factory and declarative base."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from progress_tracking.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def make_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


def get_engine() -> Engine:
    """Return the configured engine, creating it and binding SessionLocal on first use."""
    global _engine
    if _engine is None:
        _engine = make_engine(get_settings().database_url)
        SessionLocal.configure(bind=_engine)
    return _engine


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables."""
    # Models must be registered on Base before create_all
    from progress_tracking import models  # noqa: F401

    target = engine or get_engine()
    Base.metadata.create_all(bind=target, checkfirst=True)
    logger.info("Progress tracking tables ready")


def open_session() -> Session:
    """New session on the configured engine, for callers that were not handed one."""
    get_engine()
    return SessionLocal()
