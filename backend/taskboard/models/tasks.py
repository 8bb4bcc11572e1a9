"""Task model and its lifecycle status tokens."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class TaskStatus(str, Enum):
    """Closed set of task lifecycle statuses, stored as their uppercase token.

    Unknown tokens never raise: they degrade to ``TODO``. There is no
    transition graph, so any status may replace any other.
    """

    TODO = "TODO"
    INPROGRESS = "INPROGRESS"
    BLOCKED = "BLOCKED"
    DONE = "DONE"

    @classmethod
    def _missing_(cls, value: object) -> TaskStatus:
        return cls.TODO

    @classmethod
    def parse(cls, token: object) -> TaskStatus:
        """Decode a status token, falling back to ``TODO`` for anything unknown."""
        if isinstance(token, cls):
            return token
        if not isinstance(token, str):
            return cls.TODO
        return cls(token)

    def __str__(self) -> str:
        return self.value


class Task(SQLModel, table=True):
    """Persisted task row; ``deleted_at`` set means the task is soft-deleted."""

    __tablename__ = "tasks"  # pyright: ignore[reportAssignmentType]

    id: int | None = Field(default=None, primary_key=True)
    title: str
    content: str
    deadline: datetime | None = Field(default=None, sa_type=DateTime())
    status: str = Field(default=TaskStatus.TODO.value)
    deleted_at: datetime | None = Field(default=None, sa_type=DateTime())

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None
