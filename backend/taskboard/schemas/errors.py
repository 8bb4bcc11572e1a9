"""Error payload schema shared by every non-2xx API response."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Error envelope emitted by the installed exception handlers."""

    detail: str | dict[str, object] | list[object] = Field(
        description="Human-readable message, or validation error details for 422s.",
        examples=["Task with id 42 not found"],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
