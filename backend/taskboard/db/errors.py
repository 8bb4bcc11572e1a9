"""Store-level error taxonomy surfaced by the pool and persistence operations."""

from __future__ import annotations


class StoreError(Exception):
    """Any backend failure: constraint violation, connection loss, bad query."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TaskNotFoundError(StoreError):
    """No active task row matched the requested id."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task with id {task_id} not found")
        self.task_id = task_id


class ConnectionUnavailableError(StoreError):
    """The pool could not hand out a live connection."""


class PoolExhaustedError(ConnectionUnavailableError):
    """Every pooled connection stayed busy past the checkout timeout."""
