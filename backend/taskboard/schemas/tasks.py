"""Schemas for task create/replace payloads and task read responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator
from sqlmodel import SQLModel

from taskboard.core.time import to_naive_local
from taskboard.models.tasks import TaskStatus

RUNTIME_ANNOTATION_TYPES = (datetime,)


def _lenient_status(value: object) -> TaskStatus:
    return TaskStatus.parse(value)


class TaskWrite(SQLModel):
    """Payload for creating a task or replacing an active task's mutable fields."""

    title: str = Field(examples=["Write release notes"])
    content: str = Field(examples=["Summarize the changes merged since the last tag."])
    deadline: datetime | None = Field(
        default=None,
        description="Local timestamp without offset; offsets are converted to local time.",
        examples=["2024-05-01T09:30:00"],
    )
    status: TaskStatus = Field(
        default=TaskStatus.TODO,
        description="Status token. Unknown tokens are stored as `TODO`.",
    )

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> TaskStatus:
        return _lenient_status(value)

    @field_validator("deadline")
    @classmethod
    def _local_deadline(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return to_naive_local(value)


class TaskRead(SQLModel):
    """Task payload returned by read endpoints."""

    id: int
    title: str
    content: str
    deadline: datetime | None = None
    status: TaskStatus
    deleted_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> TaskStatus:
        return _lenient_status(value)
