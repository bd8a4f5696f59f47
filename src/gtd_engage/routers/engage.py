"""Endpoints for suggestions, filtering, context and task actions."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from ..errors import InvalidFilterError, UnknownActionError
from ..schemas.tasks import (
    ContextUpdate,
    FilteredTasksResponse,
    SuggestionsResponse,
    TaskResponse,
)
from ..services.session import EngagementSession
from ..tasks.models import EngagementContext, TaskAction, TaskFilter

router = APIRouter(prefix="/api/engage", tags=["engage"])


def get_session(request: Request) -> EngagementSession:
    """Dependency to access the active engagement session."""
    session = getattr(request.app.state, "engagement_session", None)
    if session is None:  # pragma: no cover - startup failure
        raise RuntimeError("Engagement session is not configured")
    return session


@router.get("/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    session: EngagementSession = Depends(get_session),
) -> SuggestionsResponse:
    """Rank actionable tasks for the current context."""
    return SuggestionsResponse(
        context=session.context,
        suggestions=session.suggestions(limit),
    )


@router.get("/tasks", response_model=FilteredTasksResponse)
async def get_filtered_tasks(
    session: EngagementSession = Depends(get_session),
) -> FilteredTasksResponse:
    return FilteredTasksResponse(filters=session.filters, tasks=session.filtered_tasks)


@router.get("/context", response_model=EngagementContext)
async def get_context(
    session: EngagementSession = Depends(get_session),
) -> EngagementContext:
    return session.context


@router.put("/context", response_model=EngagementContext)
async def update_context(
    payload: ContextUpdate,
    session: EngagementSession = Depends(get_session),
) -> EngagementContext:
    """Merge the supplied fields into the engagement context."""
    return session.update_context(**payload.model_dump(exclude_none=True))


@router.get("/filters", response_model=TaskFilter)
async def get_filters(
    session: EngagementSession = Depends(get_session),
) -> TaskFilter:
    return session.filters


@router.put("/filters", response_model=TaskFilter)
async def replace_filters(
    payload: dict[str, Any] = Body(...),
    session: EngagementSession = Depends(get_session),
) -> TaskFilter:
    """Replace the active filter."""
    try:
        return session.replace_filters(payload)
    except InvalidFilterError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.delete("/filters", response_model=TaskFilter)
async def reset_filters(
    session: EngagementSession = Depends(get_session),
) -> TaskFilter:
    """Restore the default filter (next actions and projects)."""
    return session.reset_filters()


@router.post("/tasks/{task_id}/actions", response_model=TaskResponse)
async def execute_action(
    task_id: str,
    action: TaskAction,
    session: EngagementSession = Depends(get_session),
) -> TaskResponse:
    """Run complete/defer/delegate/update against a task."""
    try:
        task = await session.execute_action(task_id, action)
    except (UnknownActionError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task '{task_id}' not found",
        )
    return TaskResponse(task=task)


__all__ = ["router"]
