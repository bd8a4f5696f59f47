"""Offline queue and connectivity endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..errors import UnknownQueuedActionError
from ..schemas.sync import FlushResponse, FlushResult, OnlinePayload, SyncStatus
from ..services.session import EngagementSession
from ..tasks.models import FlushReport, OfflineQueuedAction

router = APIRouter(prefix="/api/sync", tags=["sync"])


def get_session(request: Request) -> EngagementSession:
    """Dependency to access the active engagement session."""
    session = getattr(request.app.state, "engagement_session", None)
    if session is None:  # pragma: no cover - startup failure
        raise RuntimeError("Engagement session is not configured")
    return session


def _status(session: EngagementSession) -> SyncStatus:
    return SyncStatus(
        is_online=session.is_online,
        pending_count=session.pending_count,
        subscription=session.subscription_state,
        last_error=session.last_error,
        last_synced_at=session.last_synced_at,
        queued_actions=session.queued_actions,
        failed_actions=session.failed_actions,
    )


def _flush_response(session: EngagementSession, report: FlushReport) -> FlushResponse:
    return FlushResponse(result=FlushResult.from_report(report), status=_status(session))


@router.get("/status", response_model=SyncStatus)
async def get_status(
    session: EngagementSession = Depends(get_session),
) -> SyncStatus:
    return _status(session)


@router.post("/flush", response_model=FlushResponse)
async def flush_queue(
    session: EngagementSession = Depends(get_session),
) -> FlushResponse:
    """Replay queued actions now."""
    report = await session.sync_now()
    return _flush_response(session, report)


@router.put("/online", response_model=FlushResponse)
async def set_online(
    payload: OnlinePayload,
    session: EngagementSession = Depends(get_session),
) -> FlushResponse:
    """Record connectivity; going online triggers a flush."""
    report = await session.set_online(payload.online)
    return _flush_response(session, report or FlushReport())


@router.delete("/actions", status_code=status.HTTP_204_NO_CONTENT)
async def clear_queue(
    session: EngagementSession = Depends(get_session),
) -> Response:
    await session.clear_queue()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/actions/{correlation_id}", response_model=OfflineQueuedAction)
async def remove_action(
    correlation_id: str,
    session: EngagementSession = Depends(get_session),
) -> OfflineQueuedAction:
    try:
        return await session.remove_action(correlation_id)
    except UnknownQueuedActionError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post("/actions/{correlation_id}/retry", response_model=OfflineQueuedAction)
async def retry_action(
    correlation_id: str,
    session: EngagementSession = Depends(get_session),
) -> OfflineQueuedAction:
    """Move a failed action back to pending."""
    try:
        return await session.retry_action(correlation_id)
    except UnknownQueuedActionError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


__all__ = ["router"]
