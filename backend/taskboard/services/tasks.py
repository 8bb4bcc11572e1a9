"""Task persistence operations executed through a request-scoped session.

Every read and update filters to active rows (``deleted_at IS NULL``).
Soft-delete is the exception: it stamps ``deleted_at`` on the row whatever
its current state, so deleting an already deleted task reports one affected
row and refreshes the deletion time.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from taskboard.core.logging import get_logger
from taskboard.core.time import localnow
from taskboard.db.errors import StoreError, TaskNotFoundError
from taskboard.models.tasks import Task

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel.ext.asyncio.session import AsyncSession

    from taskboard.schemas.tasks import TaskWrite

logger = get_logger(__name__)


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to {action}: {exc}") from exc


def _active() -> ColumnElement[bool]:
    return col(Task.deleted_at).is_(None)


async def create_task(session: AsyncSession, payload: TaskWrite) -> Task:
    """Insert a new active task and return the stored row."""
    task = Task(
        title=payload.title,
        content=payload.content,
        deadline=payload.deadline,
        status=payload.status.value,
    )
    with _store_errors("create task"):
        session.add(task)
        await session.commit()
        await session.refresh(task)
    logger.info("task.created id=%s status=%s", task.id, task.status)
    return task


async def list_active_tasks(session: AsyncSession) -> list[Task]:
    """Return every task that has not been soft-deleted, in store order."""
    with _store_errors("get tasks"):
        return list(await session.exec(select(Task).where(_active())))


async def get_task(session: AsyncSession, task_id: int) -> Task:
    """Return the active task with `task_id` or raise `TaskNotFoundError`."""
    statement = (
        select(Task)
        .where(col(Task.id) == task_id, _active())
        .execution_options(populate_existing=True)
    )
    with _store_errors("get task"):
        task = (await session.exec(statement)).first()
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


async def update_task(session: AsyncSession, task_id: int, payload: TaskWrite) -> Task:
    """Replace the mutable fields of an active task and return the re-read row."""
    statement = (
        update(Task)
        .where(col(Task.id) == task_id, _active())
        .values(
            title=payload.title,
            content=payload.content,
            deadline=payload.deadline,
            status=payload.status.value,
        )
    )
    with _store_errors("update task"):
        result = await session.exec(statement)
        if result.rowcount == 0:
            await session.rollback()
            raise TaskNotFoundError(task_id)
        await session.commit()
    logger.info("task.updated id=%s status=%s", task_id, payload.status.value)
    return await get_task(session, task_id)


async def soft_delete_task(session: AsyncSession, task_id: int) -> int:
    """Stamp `deleted_at` on the task row and return the affected row count."""
    statement = update(Task).where(col(Task.id) == task_id).values(deleted_at=localnow())
    with _store_errors("delete task"):
        result = await session.exec(statement)
        await session.commit()
    affected = result.rowcount
    logger.info("task.soft_deleted id=%s affected=%s", task_id, affected)
    return affected
