"""Project endpoint bodies."""

from __future__ import annotations

from pydantic import BaseModel

from ..tasks.models import Project


class ProjectListResponse(BaseModel):
    projects: list[Project]


class ProjectResponse(BaseModel):
    project: Project


__all__ = ["ProjectListResponse", "ProjectResponse"]
