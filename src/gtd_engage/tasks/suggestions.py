"""Filtering and scoring of tasks against the engagement context.

Both pipelines are pure functions over a task sequence; ``now`` is injectable
so callers (and tests) control what "today" and "overdue" mean.
"""

from __future__ import annotations

import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..errors import InvalidFilterError
from ..utils.datetime_utils import days_between, utc_now
from .models import (
    DURATION_MINUTES,
    EnergyLevel,
    EngagementContext,
    Location,
    Task,
    TaskContext,
    TaskFilter,
    TaskStatus,
    TaskSuggestion,
)

LOCATION_CONTEXTS: dict[Location, frozenset[TaskContext]] = {
    Location.HOME: frozenset(
        {TaskContext.HOME, TaskContext.CALLS, TaskContext.COMPUTER, TaskContext.ANYWHERE}
    ),
    Location.OFFICE: frozenset(
        {TaskContext.OFFICE, TaskContext.CALLS, TaskContext.COMPUTER, TaskContext.ANYWHERE}
    ),
    Location.MOBILE: frozenset(
        {TaskContext.CALLS, TaskContext.ERRANDS, TaskContext.ANYWHERE}
    ),
}

# (current energy, task energy) pairs that earn partial credit.
_COMPATIBLE_ENERGY = {
    (EnergyLevel.HIGH, EnergyLevel.MEDIUM),
    (EnergyLevel.MEDIUM, EnergyLevel.LOW),
}

BASE_NEXT_ACTION = 50
BASE_PROJECT = 30
OVERDUE_BONUS = 100
DUE_TODAY_BONUS = 75
DUE_SOON_BONUS = 25
DUE_SOON_DAYS = 3
LOCATION_BONUS = 20
ENERGY_EXACT_BONUS = 15
ENERGY_COMPATIBLE_BONUS = 5
TIME_FIT_BONUS = 15
TIME_CLOSE_BONUS = 5
TIME_CLOSE_RATIO = 1.2
STALE_DAYS = 7
STALE_BONUS = 5


def _local_now(
    now: Optional[datetime.datetime], tz: Optional[datetime.tzinfo]
) -> datetime.datetime:
    current = now or utc_now()
    if current.tzinfo is None:
        current = current.replace(tzinfo=datetime.timezone.utc)
    return current.astimezone(tz) if tz is not None else current


def _is_due_today(due: datetime.datetime, local_now: datetime.datetime) -> bool:
    return due.astimezone(local_now.tzinfo).date() == local_now.date()


def build_filter(data: TaskFilter | Mapping[str, Any] | None) -> TaskFilter:
    """Validate a filter definition, raising InvalidFilterError when malformed."""

    if data is None:
        return TaskFilter()
    if isinstance(data, TaskFilter):
        return data
    try:
        return TaskFilter.model_validate(dict(data))
    except ValidationError as exc:
        raise InvalidFilterError(str(exc)) from exc


def task_matches_filter(
    task: Task,
    filters: TaskFilter,
    *,
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> bool:
    """AND of every populated filter dimension."""

    if filters.status and task.status not in filters.status:
        return False
    if filters.context and task.context not in filters.context:
        return False
    if filters.energy_level and task.energy_level not in filters.energy_level:
        return False
    if (
        filters.estimated_duration
        and task.estimated_duration not in filters.estimated_duration
    ):
        return False
    if filters.priority and task.priority not in filters.priority:
        return False

    if filters.due_today or filters.overdue:
        if task.due_date is None:
            return False
        local_now = _local_now(now, tz)
        if filters.due_today and not _is_due_today(task.due_date, local_now):
            return False
        if filters.overdue and not task.due_date < local_now:
            return False

    if filters.has_project is not None:
        if bool(task.project_id) != filters.has_project:
            return False

    if filters.tags:
        # OR within the tag dimension.
        if not task.tags or not set(filters.tags).intersection(task.tags):
            return False

    return True


def apply_task_filters(
    tasks: Iterable[Task],
    filters: TaskFilter | Mapping[str, Any] | None,
    *,
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> list[Task]:
    """Return the tasks passing ``filters``, in source order."""

    resolved = build_filter(filters)
    return [
        task for task in tasks if task_matches_filter(task, resolved, now=now, tz=tz)
    ]


def score_task(
    task: Task,
    context: EngagementContext,
    *,
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> tuple[int, list[str]]:
    """Additive score and the reasons behind it.

    Only ``next_action`` and ``project`` tasks are scored; everything else
    returns ``(0, [])``.
    """
    if task.status is TaskStatus.NEXT_ACTION:
        score, reasons = BASE_NEXT_ACTION, ["Ready for action"]
    elif task.status is TaskStatus.PROJECT:
        score, reasons = BASE_PROJECT, ["Project work available"]
    else:
        return 0, []

    if task.priority is not None:
        score += (6 - task.priority) * 10
        if task.priority <= 2:
            reasons.append("High priority")

    local_now = _local_now(now, tz)

    if task.due_date is not None:
        due = task.due_date
        if due < local_now:
            score += OVERDUE_BONUS
            reasons.append("Overdue!")
        elif _is_due_today(due, local_now):
            score += DUE_TODAY_BONUS
            reasons.append("Due today")
        elif due <= local_now + datetime.timedelta(days=DUE_SOON_DAYS):
            score += DUE_SOON_BONUS
            reasons.append("Due soon")

    if task.context is not None:
        if task.context in LOCATION_CONTEXTS[context.current_location]:
            score += LOCATION_BONUS
            reasons.append(f"Perfect for {context.current_location.value}")

    if task.energy_level is not None:
        if task.energy_level is context.current_energy:
            score += ENERGY_EXACT_BONUS
            reasons.append("Matches your energy level")
        elif (context.current_energy, task.energy_level) in _COMPATIBLE_ENERGY:
            score += ENERGY_COMPATIBLE_BONUS
            reasons.append("Good energy match")

    if task.estimated_duration is not None:
        available = DURATION_MINUTES[context.available_time]
        needed = DURATION_MINUTES[task.estimated_duration]
        if needed <= available:
            score += TIME_FIT_BONUS
            reasons.append("Fits in available time")
        elif needed <= available * TIME_CLOSE_RATIO:
            score += TIME_CLOSE_BONUS
            reasons.append("Close time match")

    if days_between(task.created_at, local_now) > STALE_DAYS:
        score += STALE_BONUS
        reasons.append("Needs attention")

    return max(0, score), reasons


def suggest_tasks(
    tasks: Sequence[Task],
    context: EngagementContext,
    *,
    limit: Optional[int] = None,
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> list[TaskSuggestion]:
    """Rank actionable tasks by descending score.

    The sort is stable: equal scores keep their order from ``tasks``.
    """
    current = now or utc_now()
    scored: list[TaskSuggestion] = []
    for task in tasks:
        if not task.is_actionable:
            continue
        score, reasons = score_task(task, context, now=current, tz=tz)
        scored.append(TaskSuggestion(task=task, score=score, reasons=reasons))

    ranked = sorted(scored, key=lambda suggestion: -suggestion.score)
    if limit is not None:
        ranked = ranked[: max(0, limit)]
    return ranked


__all__ = [
    "LOCATION_CONTEXTS",
    "apply_task_filters",
    "build_filter",
    "score_task",
    "suggest_tasks",
    "task_matches_filter",
]
