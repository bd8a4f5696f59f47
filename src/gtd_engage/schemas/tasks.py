"""Request and response bodies for the task and engagement endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..tasks.models import (
    EnergyLevel,
    EngagementContext,
    Location,
    Task,
    TaskDuration,
    TaskFilter,
    TaskSuggestion,
)


class TaskListResponse(BaseModel):
    tasks: list[Task]


class TaskResponse(BaseModel):
    task: Task


class FilteredTasksResponse(BaseModel):
    """Tasks passing the active filter, in collection order."""

    filters: TaskFilter
    tasks: list[Task]


class SuggestionsResponse(BaseModel):
    context: EngagementContext
    suggestions: list[TaskSuggestion]


class ContextUpdate(BaseModel):
    """Partial engagement context; omitted fields keep their value."""

    model_config = ConfigDict(extra="forbid")

    current_location: Optional[Location] = None
    current_energy: Optional[EnergyLevel] = None
    available_time: Optional[TaskDuration] = None


__all__ = [
    "ContextUpdate",
    "FilteredTasksResponse",
    "SuggestionsResponse",
    "TaskListResponse",
    "TaskResponse",
]
