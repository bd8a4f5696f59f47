"""In-memory collection of the current user's tasks.

The store is the single shared mutable resource of a session: optimistic
writes, server responses and change-feed reconciliation all go through the
methods below, which never raise for ids that are already gone.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..utils.datetime_utils import utc_now
from .models import ChangeEvent, ChangeEventType, Task

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "temp-"


def new_placeholder_id() -> str:
    return f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex}"


def new_task_id() -> str:
    """Client-generated primary key, sent with the insert so replays converge."""

    return str(uuid.uuid4())


class LocalTaskStore:
    """Tasks indexed by id.

    The backing dict keeps insertion order oldest-to-newest, so the public
    view is the reverse of it (newest first).
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._items: dict[str, Task] = {}
        self._version = 0
        self.load(tasks)

    # ------------------------------------------------------------------ views

    @property
    def tasks(self) -> list[Task]:
        """Snapshot of the collection, newest first."""

        return list(reversed(self._items.values()))

    @property
    def version(self) -> int:
        """Counter bumped on every effective mutation."""

        return self._version

    def get(self, task_id: str) -> Optional[Task]:
        return self._items.get(task_id)

    def __getitem__(self, task_id: str) -> Task:
        return self._items[task_id]

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks)

    # ------------------------------------------------------------- mutations

    def _touch(self) -> None:
        self._version += 1

    def load(self, tasks: Iterable[Task]) -> None:
        """Replace the collection with a full server snapshot."""

        ordered = sorted(tasks, key=lambda task: task.created_at)
        self._items = {}
        for task in ordered:
            self._items[task.id] = task
        self._touch()
        logger.debug("Loaded %d tasks into local store", len(self._items))

    def add(
        self,
        partial: Mapping[str, Any],
        *,
        placeholder_id: Optional[str] = None,
    ) -> str:
        """Optimistically insert a placeholder task and return its id."""

        task_id = placeholder_id or new_placeholder_id()
        now = utc_now()
        data = dict(partial)
        data.update(id=task_id, created_at=now, updated_at=now)
        data.setdefault("status", "captured")
        task = Task.model_validate(data)

        self._items.pop(task_id, None)
        self._items[task_id] = task
        self._touch()
        return task_id

    def update(self, task_id: str, patch: Mapping[str, Any]) -> bool:
        """Optimistically merge ``patch`` into a task; absent ids are ignored."""

        current = self._items.get(task_id)
        if current is None:
            return False
        self._items[task_id] = current.merged(patch)
        self._touch()
        return True

    def remove(self, task_id: str) -> bool:
        if self._items.pop(task_id, None) is None:
            return False
        self._touch()
        return True

    def upsert(self, record: Task) -> None:
        """Apply an authoritative server record (replace or prepend)."""

        self._items[record.id] = record
        self._touch()

    def confirm(self, placeholder_id: str, record: Task) -> None:
        """Swap a placeholder for its server-confirmed record.

        The record keeps the placeholder's position. If the change feed
        already delivered the record, the placeholder is just dropped.
        """
        if placeholder_id == record.id:
            self.upsert(record)
            return

        if record.id in self._items:
            self._items[record.id] = record
            self._items.pop(placeholder_id, None)
            self._touch()
            return

        if placeholder_id not in self._items:
            self._items[record.id] = record
            self._touch()
            return

        self._items = {
            (record.id if key == placeholder_id else key): (
                record if key == placeholder_id else value
            )
            for key, value in self._items.items()
        }
        self._touch()

    def apply_event(self, event: ChangeEvent) -> bool:
        """Reconcile one remote change event; returns True if the view changed."""

        if event.event_type is ChangeEventType.DELETE:
            return event.old_id is not None and self.remove(event.old_id)

        record = event.record
        if record is None:
            logger.warning("Ignoring %s event without a record", event.event_type.value)
            return False

        if event.event_type is ChangeEventType.INSERT:
            if record.id in self._items:
                return False
            self._items[record.id] = record
            self._touch()
            return True

        existing = self._items.get(record.id)
        if existing is None or existing == record:
            return False
        self._items[record.id] = record
        self._touch()
        return True


__all__ = ["LocalTaskStore", "PLACEHOLDER_PREFIX", "new_placeholder_id", "new_task_id"]
