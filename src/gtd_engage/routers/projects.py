"""REST endpoints for projects."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..errors import ProjectHasTasksError, RemoteStoreError
from ..schemas.projects import ProjectListResponse, ProjectResponse
from ..services.session import EngagementSession
from ..tasks.models import ProjectInput
from ..tasks.projects import ProjectService

router = APIRouter(prefix="/api/projects", tags=["projects"])


def get_project_service(request: Request) -> ProjectService:
    """Dependency to access the session's project service."""
    session: EngagementSession | None = getattr(
        request.app.state, "engagement_session", None
    )
    if session is None:  # pragma: no cover - startup failure
        raise RuntimeError("Engagement session is not configured")
    return session.projects


def _bad_gateway(exc: RemoteStoreError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    service: ProjectService = Depends(get_project_service),
) -> ProjectListResponse:
    try:
        projects = await service.list_projects()
    except RemoteStoreError as exc:
        raise _bad_gateway(exc) from exc
    return ProjectListResponse(projects=projects)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectInput,
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    try:
        project = await service.create_project(payload)
    except RemoteStoreError as exc:
        raise _bad_gateway(exc) from exc
    return ProjectResponse(project=project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    service: ProjectService = Depends(get_project_service),
) -> Response:
    """Delete a project that no task references."""
    try:
        await service.delete_project(project_id)
    except ProjectHasTasksError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except RemoteStoreError as exc:
        raise _bad_gateway(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
