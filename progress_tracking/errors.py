"""Error taxonomy for the progress tracking engine."""
from __future__ import annotations

from typing import List, Optional


class ProgressTrackingError(Exception):
    """Base class for all engine errors."""


class NotFoundError(ProgressTrackingError):
    """Raised when a referenced project, task or snapshot does not exist."""
    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(ProgressTrackingError):
    """Raised when input reaching the engine cannot be computed on safely."""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]
