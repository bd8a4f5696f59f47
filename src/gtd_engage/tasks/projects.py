"""Project CRUD with the attached-task delete guard."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from ..errors import ProjectHasTasksError, RemoteStoreError
from ..services.remote import PROJECTS_TABLE, TASKS_TABLE, RemoteStore, Row, call_remote
from .models import Project, ProjectInput

logger = logging.getLogger(__name__)


def _project(row: Row) -> Project:
    try:
        return Project.model_validate(row)
    except ValidationError as exc:
        raise RemoteStoreError(f"Store returned an invalid project: {exc}") from exc


class ProjectService:
    """Keeps a cached list of the user's projects in step with the store."""

    def __init__(self, remote: RemoteStore, *, user_id: str) -> None:
        self._remote = remote
        self._user_id = user_id
        self._projects: list[Project] = []

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    async def list_projects(self) -> list[Project]:
        rows = await call_remote(
            lambda: self._remote.select(
                PROJECTS_TABLE,
                filters={"user_id": self._user_id},
                order="created_at.desc",
            ),
            description="Fetching projects",
        )
        self._projects = [_project(row) for row in rows]
        return self.projects

    async def create_project(self, data: ProjectInput | Mapping[str, Any]) -> Project:
        project_input = (
            data if isinstance(data, ProjectInput) else ProjectInput.model_validate(data)
        )
        values = {**project_input.model_dump(mode="json"), "user_id": self._user_id}
        row = await call_remote(
            lambda: self._remote.insert(PROJECTS_TABLE, values),
            description="Creating project",
        )
        project = _project(row)
        self._projects.insert(0, project)
        logger.info("Created project %s", project.id)
        return project

    async def update_project(
        self, project_id: str, fields: Mapping[str, Any]
    ) -> Project:
        row = await call_remote(
            lambda: self._remote.update(PROJECTS_TABLE, project_id, dict(fields)),
            description=f"Updating project {project_id}",
        )
        project = _project(row)
        self._projects = [
            project if existing.id == project.id else existing
            for existing in self._projects
        ]
        return project

    async def count_tasks(self, project_id: str) -> int:
        return await call_remote(
            lambda: self._remote.count(TASKS_TABLE, filters={"project_id": project_id}),
            description=f"Counting tasks for project {project_id}",
        )

    async def delete_project(self, project_id: str) -> None:
        """Delete a project, refusing while tasks still reference it."""

        task_count = await self.count_tasks(project_id)
        if task_count > 0:
            raise ProjectHasTasksError(project_id, task_count)

        await call_remote(
            lambda: self._remote.delete(PROJECTS_TABLE, project_id),
            description=f"Deleting project {project_id}",
        )
        self._projects = [p for p in self._projects if p.id != project_id]
        logger.info("Deleted project %s", project_id)

    def get(self, project_id: str) -> Optional[Project]:
        for project in self._projects:
            if project.id == project_id:
                return project
        return None


__all__ = ["ProjectService"]
