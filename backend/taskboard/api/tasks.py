"""Task CRUD endpoints backed by the soft-delete persistence operations.

Each handler borrows one pooled connection (through ``SESSION_DEP``), runs a
single persistence operation and serializes its result. Not-found and store
failures propagate as ``StoreError`` subclasses and are turned into 404/500
responses by the handlers installed in ``taskboard.core.error_handling``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Response, status

from taskboard.api.deps import SESSION_DEP
from taskboard.db.errors import TaskNotFoundError
from taskboard.schemas.errors import ErrorResponse
from taskboard.schemas.tasks import TaskRead, TaskWrite
from taskboard.services import tasks as task_service

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

router = APIRouter(prefix="/tasks", tags=["tasks"])

_NOT_FOUND_RESPONSE = {
    status.HTTP_404_NOT_FOUND: {
        "model": ErrorResponse,
        "description": "No active task has this id.",
    },
}
_STORE_ERROR_RESPONSE = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "model": ErrorResponse,
        "description": "No database connection could be obtained, or the store failed.",
    },
}


@router.get("", response_model=list[TaskRead], responses=_STORE_ERROR_RESPONSE)
async def list_tasks(session: AsyncSession = SESSION_DEP) -> list[TaskRead]:
    """List every task that has not been soft-deleted."""
    tasks = await task_service.list_active_tasks(session)
    return [TaskRead.model_validate(task, from_attributes=True) for task in tasks]


@router.post("", response_model=TaskRead, responses=_STORE_ERROR_RESPONSE)
async def create_task(
    payload: TaskWrite,
    session: AsyncSession = SESSION_DEP,
) -> TaskRead:
    """Create a task; status defaults to `TODO`."""
    task = await task_service.create_task(session, payload)
    return TaskRead.model_validate(task, from_attributes=True)


@router.get(
    "/{task_id}",
    response_model=TaskRead,
    responses={**_NOT_FOUND_RESPONSE, **_STORE_ERROR_RESPONSE},
)
async def get_task(task_id: int, session: AsyncSession = SESSION_DEP) -> TaskRead:
    """Get an active task by id."""
    task = await task_service.get_task(session, task_id)
    return TaskRead.model_validate(task, from_attributes=True)


@router.put(
    "/{task_id}",
    response_model=TaskRead,
    responses={**_NOT_FOUND_RESPONSE, **_STORE_ERROR_RESPONSE},
)
async def update_task(
    task_id: int,
    payload: TaskWrite,
    session: AsyncSession = SESSION_DEP,
) -> TaskRead:
    """Replace title, content, deadline and status of an active task."""
    task = await task_service.update_task(session, task_id, payload)
    return TaskRead.model_validate(task, from_attributes=True)


@router.delete(
    "/{task_id}",
    response_class=Response,
    responses={
        status.HTTP_200_OK: {"description": "Task soft-deleted; empty body."},
        **_NOT_FOUND_RESPONSE,
        **_STORE_ERROR_RESPONSE,
    },
)
async def delete_task(task_id: int, session: AsyncSession = SESSION_DEP) -> Response:
    """Soft-delete a task by stamping its deletion time."""
    affected = await task_service.soft_delete_task(session, task_id)
    if affected == 0:
        raise TaskNotFoundError(task_id)
    return Response(status_code=status.HTTP_200_OK)
