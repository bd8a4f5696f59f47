"""Exception hierarchy for the task synchronization core."""

from __future__ import annotations

from typing import Optional


class GTDEngageError(Exception):
    """Base class for every error raised by the package."""


class RemoteStoreError(GTDEngageError):
    """Transient failure while talking to the hosted store.

    Raised for transport errors as well as API rejections; the message is the
    string the store returned.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnknownActionError(GTDEngageError):
    """Raised when a task action type is not part of the supported vocabulary."""

    def __init__(self, action_type: object):
        super().__init__(f"Unknown action type: {action_type}")
        self.action_type = action_type


class InvalidFilterError(GTDEngageError, ValueError):
    """Raised for malformed task filters (unknown keys or values)."""


class ProjectHasTasksError(GTDEngageError):
    """Raised before deleting a project that still owns tasks."""

    def __init__(self, project_id: str, task_count: int):
        super().__init__(
            f"Cannot delete project with {task_count} associated tasks. "
            "Please remove or reassign tasks first."
        )
        self.project_id = project_id
        self.task_count = task_count


class UnknownQueuedActionError(GTDEngageError, KeyError):
    """Raised when a correlation id does not match any queued action."""

    def __init__(self, correlation_id: str):
        super().__init__(correlation_id)
        self.correlation_id = correlation_id

    def __str__(self) -> str:
        return f"No queued action with correlation id '{self.correlation_id}'"


class TimerStateError(GTDEngageError):
    """Raised when a timer operation does not fit the current timer state."""


__all__ = [
    "GTDEngageError",
    "InvalidFilterError",
    "ProjectHasTasksError",
    "RemoteStoreError",
    "TimerStateError",
    "UnknownActionError",
    "UnknownQueuedActionError",
]
