"""Focus timer endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..errors import TimerStateError
from ..schemas.timer import TimerStart, TimerStatus, TimerStop
from ..services.session import EngagementSession
from ..tasks.models import TimerSession

router = APIRouter(prefix="/api/timer", tags=["timer"])


def get_session(request: Request) -> EngagementSession:
    """Dependency to access the active engagement session."""
    session = getattr(request.app.state, "engagement_session", None)
    if session is None:  # pragma: no cover - startup failure
        raise RuntimeError("Engagement session is not configured")
    return session


def _conflict(exc: TimerStateError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("", response_model=TimerStatus)
async def get_timer(
    session: EngagementSession = Depends(get_session),
) -> TimerStatus:
    return TimerStatus.from_timer(session.timer)


@router.post("/start", response_model=TimerStatus, status_code=status.HTTP_201_CREATED)
async def start_timer(
    payload: TimerStart,
    session: EngagementSession = Depends(get_session),
) -> TimerStatus:
    try:
        started = await session.start_timer(payload.task_id, payload.target_minutes)
    except TimerStateError as exc:
        raise _conflict(exc) from exc
    if started is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task '{payload.task_id}' not found",
        )
    return TimerStatus.from_timer(session.timer)


@router.post("/pause", response_model=TimerStatus)
async def pause_timer(
    session: EngagementSession = Depends(get_session),
) -> TimerStatus:
    try:
        await session.pause_timer()
    except TimerStateError as exc:
        raise _conflict(exc) from exc
    return TimerStatus.from_timer(session.timer)


@router.post("/resume", response_model=TimerStatus)
async def resume_timer(
    session: EngagementSession = Depends(get_session),
) -> TimerStatus:
    try:
        await session.resume_timer()
    except TimerStateError as exc:
        raise _conflict(exc) from exc
    return TimerStatus.from_timer(session.timer)


@router.post("/stop", response_model=TimerSession)
async def stop_timer(
    payload: Optional[TimerStop] = None,
    session: EngagementSession = Depends(get_session),
) -> TimerSession:
    """Stop the timer and return the finished session."""
    try:
        return await session.stop_timer(payload.notes if payload else None)
    except TimerStateError as exc:
        raise _conflict(exc) from exc


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def reset_timer(
    session: EngagementSession = Depends(get_session),
) -> Response:
    await session.reset_timer()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
