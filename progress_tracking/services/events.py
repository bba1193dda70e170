"""Write notifications from the record managers to cache owners."""
from __future__ import annotations

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

WriteListener = Callable[[str], None]

_listeners: List[WriteListener] = []


def add_write_listener(listener: WriteListener) -> None:
    if listener not in _listeners:
        _listeners.append(listener)


def remove_write_listener(listener: WriteListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def notify_write(entity: str) -> None:
    """Called after a committed mutation of ``entity`` ("project", "task" or "snapshot")."""
    for listener in list(_listeners):
        listener(entity)
    if _listeners:
        logger.debug(f"Notified {len(_listeners)} listener(s) of {entity} write")
