"""Durable FIFO queue of mutations that could not be confirmed synchronously."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import ValidationError

from ..errors import UnknownQueuedActionError
from ..services.storage import KeyValueStorage
from .models import (
    FlushReport,
    MutationKind,
    OfflineQueuedAction,
    QueuedActionState,
    Task,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "gtd_offline_actions"
CORRELATION_PREFIX = "offline-"
DEFAULT_MAX_RETRIES = 3

Deliver = Callable[[OfflineQueuedAction], Awaitable[Optional[Task]]]
"""Sends one action to the remote store; returns the server record if any."""


def new_correlation_id() -> str:
    return f"{CORRELATION_PREFIX}{uuid.uuid4().hex}"


def _created_id(action: OfflineQueuedAction) -> Optional[str]:
    # Creates queued without a task id are addressed by their correlation id.
    if action.kind is not MutationKind.CREATE:
        return None
    return action.target_task_id or action.correlation_id


class OfflineActionQueue:
    """Ordered queue of offline mutations, written through to local storage.

    Lifecycle of an action::

        pending -> in_flight -> removed            (confirmed)
                             -> pending, retries+1 (retryable failure)
                             -> failed             (retries >= max_retries)

    Failed actions stay in the queue for inspection until removed or retried
    explicitly. ``flush`` never retries inside a single pass.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._max_retries = max(1, int(max_retries))
        self._actions: list[OfflineQueuedAction] = []
        self._flush_lock = asyncio.Lock()
        self._held: set[str] = set()

    # ---------------------------------------------------------------- storage

    async def load(self) -> None:
        """Rehydrate the queue from durable storage."""

        raw = await self._storage.get(self._storage_key)
        if not raw:
            self._actions = []
            return

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable offline queue: %s", exc)
            self._actions = []
            return

        loaded: list[OfflineQueuedAction] = []
        for item in items if isinstance(items, list) else []:
            try:
                action = OfflineQueuedAction.model_validate(item)
            except ValidationError as exc:
                logger.warning("Skipping invalid offline action: %s", exc)
                continue
            if action.state is QueuedActionState.IN_FLIGHT:
                # Interrupted mid-delivery; resend (at-least-once).
                action.state = QueuedActionState.PENDING
            loaded.append(action)

        self._actions = loaded
        logger.info(
            "Restored %d offline actions (%d failed)",
            len(loaded),
            len(self.failed),
        )

    async def _save(self) -> None:
        payload = [action.model_dump(mode="json") for action in self._actions]
        await self._storage.set(self._storage_key, json.dumps(payload))

    # ------------------------------------------------------------------ views

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def actions(self) -> list[OfflineQueuedAction]:
        return [action.model_copy() for action in self._actions]

    @property
    def pending(self) -> list[OfflineQueuedAction]:
        return [a.model_copy() for a in self._actions if not a.is_terminal]

    @property
    def failed(self) -> list[OfflineQueuedAction]:
        return [a.model_copy() for a in self._actions if a.is_terminal]

    @property
    def pending_count(self) -> int:
        return sum(1 for action in self._actions if not action.is_terminal)

    def __len__(self) -> int:
        return len(self._actions)

    def get(self, correlation_id: str) -> Optional[OfflineQueuedAction]:
        for action in self._actions:
            if action.correlation_id == correlation_id:
                return action.model_copy()
        return None

    def _find(self, correlation_id: str) -> OfflineQueuedAction:
        for action in self._actions:
            if action.correlation_id == correlation_id:
                return action
        raise UnknownQueuedActionError(correlation_id)

    # -------------------------------------------------------------- mutations

    async def enqueue(
        self,
        kind: MutationKind,
        payload: Mapping[str, Any],
        *,
        target_task_id: Optional[str] = None,
        label: Optional[str] = None,
        correlation_id: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> str:
        """Append an action and persist the queue; returns its correlation id.

        For creates, ``target_task_id`` is the id the new task is known by
        locally; later actions on that id wait until the create is confirmed.
        ``last_error`` records a failed attempt made before queueing.
        """

        if kind is not MutationKind.CREATE and not target_task_id:
            raise ValueError(f"{kind.value} actions need a target task id")

        action = OfflineQueuedAction(
            correlation_id=correlation_id or new_correlation_id(),
            kind=kind,
            label=label or kind.value,
            target_task_id=target_task_id,
            payload=dict(payload),
            last_error=last_error,
        )
        self._actions.append(action)
        await self._save()
        logger.info(
            "Queued offline %s action %s (target=%s)",
            action.label,
            action.correlation_id,
            action.target_task_id,
        )
        return action.correlation_id

    async def remove(self, correlation_id: str) -> OfflineQueuedAction:
        action = self._find(correlation_id)
        self._actions = [a for a in self._actions if a is not action]
        await self._save()
        return action

    async def remove_for_task(self, task_id: str) -> list[OfflineQueuedAction]:
        """Drop the queued create of ``task_id`` and every action behind it."""

        dropped = [
            a for a in self._actions if task_id in (a.target_task_id, _created_id(a))
        ]
        if dropped:
            self._actions = [a for a in self._actions if not any(a is d for d in dropped)]
            await self._save()
        return dropped

    async def clear(self) -> None:
        self._actions = []
        await self._storage.remove(self._storage_key)

    async def retry(self, correlation_id: str) -> OfflineQueuedAction:
        """Return a terminally failed action to the pending state."""

        action = self._find(correlation_id)
        action.state = QueuedActionState.PENDING
        action.retries = 0
        await self._save()
        return action.model_copy()

    # ------------------------------------------------------- create tracking

    def hold(self, task_id: str) -> None:
        """Mark ``task_id`` as being created outside the queue."""

        self._held.add(task_id)

    def release(self, task_id: str) -> None:
        self._held.discard(task_id)

    def queued_create(self, task_id: str) -> Optional[OfflineQueuedAction]:
        for action in self._actions:
            if action.kind is MutationKind.CREATE and _created_id(action) == task_id:
                return action.model_copy()
        return None

    def has_unsent(self, task_id: str) -> bool:
        """True while ``task_id`` awaits a create or has undelivered actions."""

        if task_id in self._held:
            return True
        return any(
            (action.kind is MutationKind.CREATE and _created_id(action) == task_id)
            or (action.target_task_id == task_id and not action.is_terminal)
            for action in self._actions
        )

    def pending_for(self, task_id: str) -> list[OfflineQueuedAction]:
        """Non-terminal update/delete actions targeting ``task_id``, in order."""

        return [
            action.model_copy()
            for action in self._actions
            if action.kind is not MutationKind.CREATE
            and action.target_task_id == task_id
            and not action.is_terminal
        ]

    async def retarget(self, old_id: str, new_id: str) -> None:
        if old_id != new_id and self._retarget(old_id, new_id):
            await self._save()

    def _retarget(self, old_id: str, new_id: str) -> bool:
        moved = False
        for action in self._actions:
            if action.kind is not MutationKind.CREATE and action.target_task_id == old_id:
                action.target_task_id = new_id
                moved = True
        return moved

    def _is_blocked(self, action: OfflineQueuedAction) -> bool:
        """True while the action's target has not been created remotely yet."""

        if action.kind is MutationKind.CREATE or not action.target_task_id:
            return False
        if action.target_task_id in self._held:
            return True
        return any(
            other.kind is MutationKind.CREATE
            and _created_id(other) == action.target_task_id
            for other in self._actions
        )

    # ------------------------------------------------------------------ flush

    async def flush(self, deliver: Deliver) -> FlushReport:
        """Attempt every pending action once, in FIFO order, one at a time."""

        async with self._flush_lock:
            report = FlushReport()
            snapshot = [a for a in self._actions if a.state is QueuedActionState.PENDING]

            for action in snapshot:
                if not any(a is action for a in self._actions):
                    continue  # removed while an earlier action was in flight
                if self._is_blocked(action):
                    report.deferred.append(action.correlation_id)
                    continue

                action.state = QueuedActionState.IN_FLIGHT
                await self._save()

                try:
                    result = await deliver(action)
                except asyncio.CancelledError:
                    action.state = QueuedActionState.PENDING
                    raise
                except Exception as exc:
                    message = str(exc) or exc.__class__.__name__
                    action.retries += 1
                    action.last_error = message
                    report.errors[action.correlation_id] = message
                    if action.retries >= self._max_retries:
                        action.state = QueuedActionState.FAILED
                        report.failed.append(action.correlation_id)
                        logger.error(
                            "Offline action %s failed permanently after %d attempts: %s",
                            action.correlation_id,
                            action.retries,
                            message,
                        )
                    else:
                        action.state = QueuedActionState.PENDING
                        report.retried.append(action.correlation_id)
                        logger.warning(
                            "Offline action %s failed (attempt %d/%d): %s",
                            action.correlation_id,
                            action.retries,
                            self._max_retries,
                            message,
                        )
                else:
                    self._actions = [a for a in self._actions if a is not action]
                    if action.kind is MutationKind.CREATE and result is not None:
                        self._retarget(_created_id(action), result.id)
                    report.confirmed.append(action.correlation_id)
                    logger.debug("Offline action %s confirmed", action.correlation_id)

                await self._save()

            if report.attempted:
                logger.info(
                    "Flushed offline queue: %d confirmed, %d retrying, %d failed, %d deferred",
                    len(report.confirmed),
                    len(report.retried),
                    len(report.failed),
                    len(report.deferred),
                )
            return report


__all__ = [
    "CORRELATION_PREFIX",
    "DEFAULT_MAX_RETRIES",
    "Deliver",
    "OfflineActionQueue",
    "STORAGE_KEY",
    "new_correlation_id",
]
