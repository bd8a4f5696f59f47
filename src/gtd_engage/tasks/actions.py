"""Translate high-level task actions into concrete field mutations."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Mapping, Optional, Protocol

from ..errors import UnknownActionError
from ..utils.datetime_utils import utc_now
from .models import ActionType, Task, TaskAction, TaskPatch, TaskStatus

logger = logging.getLogger(__name__)


class TaskMutator(Protocol):
    """Applies a field patch optimistically and delivers it (or queues it)."""

    def get_task(self, task_id: str) -> Optional[Task]: ...

    async def update_task(
        self, task_id: str, patch: Mapping[str, Any], *, label: str = "update"
    ) -> Optional[Task]: ...


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def resolve_action_type(action: TaskAction) -> ActionType:
    try:
        return ActionType(action.type)
    except ValueError:
        raise UnknownActionError(action.type) from None


def build_action_patch(
    action: TaskAction,
    task: Optional[Task] = None,
    *,
    now: Optional[datetime.datetime] = None,
) -> dict[str, Any]:
    """Return the field patch an action stands for.

    ``task`` is the current local record; ``defer`` uses it to append to the
    existing notes. Raises :class:`UnknownActionError` for unsupported types
    and ``ValueError`` for malformed action data.
    """
    action_type = resolve_action_type(action)
    data = action.data or {}

    if action_type is ActionType.COMPLETE:
        patch = TaskPatch(status=TaskStatus.COMPLETED, completed_at=now or utc_now())
        return patch.to_fields()

    if action_type is ActionType.DEFER:
        new_due = _first(data, "new_due_date", "newDueDate", "due_date")
        reason = _first(data, "reason")
        if new_due is None and reason is None:
            raise ValueError("defer needs a new due date or a reason")

        fields: dict[str, Any] = {}
        if new_due is not None:
            fields["due_date"] = new_due
        if reason is not None:
            note = f"Deferred: {reason}"
            existing = task.notes if task is not None else None
            fields["notes"] = f"{existing}\n{note}" if existing else note
        return TaskPatch.model_validate(fields).to_fields()

    if action_type is ActionType.DELEGATE:
        delegate_to = _first(data, "delegate_to", "delegateTo")
        fields = {"status": TaskStatus.WAITING_FOR}
        if delegate_to:
            fields["notes"] = f"Delegated to: {delegate_to}"
            fields["waiting_for"] = str(delegate_to)
        else:
            fields["notes"] = "Delegated"
        return TaskPatch.model_validate(fields).to_fields()

    return TaskPatch.model_validate(dict(data)).to_fields()


class ActionExecutor:
    """Run ``complete``/``defer``/``delegate``/``update`` against a task."""

    def __init__(self, mutator: TaskMutator) -> None:
        self._mutator = mutator

    async def execute(
        self, task_id: str, action: TaskAction | Mapping[str, Any]
    ) -> Optional[Task]:
        resolved = (
            action if isinstance(action, TaskAction) else TaskAction.model_validate(action)
        )
        action_type = resolve_action_type(resolved)
        patch = build_action_patch(resolved, self._mutator.get_task(task_id))

        try:
            return await self._mutator.update_task(
                task_id, patch, label=action_type.value
            )
        except Exception:
            logger.exception("Failed to execute %s on task %s", action_type.value, task_id)
            raise


__all__ = [
    "ActionExecutor",
    "TaskMutator",
    "build_action_patch",
    "resolve_action_type",
]
