"""REST endpoints for the local task collection."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..schemas.tasks import TaskListResponse, TaskResponse
from ..services.session import EngagementSession
from ..tasks.models import TaskInput, TaskPatch

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def get_session(request: Request) -> EngagementSession:
    """Dependency to access the active engagement session."""
    session = getattr(request.app.state, "engagement_session", None)
    if session is None:  # pragma: no cover - startup failure
        raise RuntimeError("Engagement session is not configured")
    return session


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    session: EngagementSession = Depends(get_session),
) -> TaskListResponse:
    """Return every task in the local collection, newest first."""
    return TaskListResponse(tasks=session.tasks)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def capture_task(
    payload: TaskInput,
    session: EngagementSession = Depends(get_session),
) -> TaskResponse:
    """Capture a task; while offline the response carries its placeholder."""
    task = await session.capture_task(payload)
    return TaskResponse(task=task)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    payload: TaskPatch,
    session: EngagementSession = Depends(get_session),
) -> TaskResponse:
    task = await session.update_task(task_id, payload.to_fields())
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task '{task_id}' not found",
        )
    return TaskResponse(task=task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    session: EngagementSession = Depends(get_session),
) -> Response:
    if not await session.delete_task(task_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task '{task_id}' not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router", "get_session"]
