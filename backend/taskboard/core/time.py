"""Naive local-time helpers matching the `timestamp without time zone` columns."""

from __future__ import annotations

from datetime import datetime


def localnow() -> datetime:
    """Return the current local wall-clock time without tzinfo."""
    return datetime.now()


def to_naive_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
