"""Task domain package: local collection, sync, queue and suggestions."""

from .actions import ActionExecutor, build_action_patch
from .context import ContextModel
from .feed import ChangeFeedSubscriber, SubscriptionHandle, SubscriptionState
from .models import (
    EngagementContext,
    OfflineQueuedAction,
    Project,
    Task,
    TaskAction,
    TaskFilter,
    TaskStatus,
    TaskSuggestion,
)
from .queue import OfflineActionQueue
from .store import LocalTaskStore
from .timer import TaskTimer
from .suggestions import apply_task_filters, score_task, suggest_tasks

__all__ = [
    "ActionExecutor",
    "ChangeFeedSubscriber",
    "ContextModel",
    "EngagementContext",
    "LocalTaskStore",
    "OfflineActionQueue",
    "OfflineQueuedAction",
    "Project",
    "SubscriptionHandle",
    "SubscriptionState",
    "Task",
    "TaskAction",
    "TaskFilter",
    "TaskStatus",
    "TaskSuggestion",
    "TaskTimer",
    "apply_task_filters",
    "build_action_patch",
    "score_task",
    "suggest_tasks",
]
