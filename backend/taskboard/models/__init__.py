"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from taskboard.models.tasks import Task, TaskStatus

__all__ = [
    "Task",
    "TaskStatus",
]
