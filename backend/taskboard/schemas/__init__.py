"""Public schema exports shared across API route modules."""

from taskboard.schemas.errors import ErrorResponse
from taskboard.schemas.health import HealthStatusResponse
from taskboard.schemas.tasks import TaskRead, TaskWrite

__all__ = [
    "ErrorResponse",
    "HealthStatusResponse",
    "TaskRead",
    "TaskWrite",
]
