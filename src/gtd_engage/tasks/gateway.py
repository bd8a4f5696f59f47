"""Remote task mutations that write their confirmed results into the local store."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from ..errors import RemoteStoreError
from ..services.remote import TASKS_TABLE, RemoteStore, Row, call_remote
from .models import Task
from .store import LocalTaskStore

logger = logging.getLogger(__name__)


class TaskGateway:
    """CRUD against the hosted ``tasks`` table for a single user.

    Successful calls are applied to the local store straight away, without
    waiting for the change feed echo. Failures are remembered in
    :attr:`last_error` and re-raised as :class:`RemoteStoreError`.
    """

    def __init__(
        self,
        remote: RemoteStore,
        store: LocalTaskStore,
        *,
        user_id: str,
        table: str = TASKS_TABLE,
    ) -> None:
        self._remote = remote
        self._store = store
        self._user_id = user_id
        self._table = table
        self._last_error: Optional[str] = None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def _record(self, row: Row) -> Task:
        try:
            return Task.model_validate(row)
        except ValidationError as exc:
            raise RemoteStoreError(f"Store returned an invalid task: {exc}") from exc

    async def _call(self, description: str, operation: Any) -> Any:
        self._last_error = None
        try:
            return await call_remote(operation, description=description)
        except RemoteStoreError as exc:
            self._last_error = exc.message
            logger.warning("%s failed: %s", description, exc.message)
            raise

    async def fetch_all(self) -> list[Task]:
        """Replace the local collection with the user's tasks, newest first."""

        rows = await self._call(
            "Fetching tasks",
            lambda: self._remote.select(
                self._table,
                filters={"user_id": self._user_id},
                order="created_at.desc",
            ),
        )

        tasks: list[Task] = []
        for row in rows:
            try:
                tasks.append(Task.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping invalid task row %s: %s", row.get("id"), exc)
        self._store.load(tasks)
        logger.info("Fetched %d tasks for %s", len(tasks), self._user_id)
        return self._store.tasks

    async def create(
        self,
        fields: Mapping[str, Any],
        *,
        placeholder_id: Optional[str] = None,
    ) -> Task:
        """Insert a task; the result replaces ``placeholder_id`` when given."""

        values = {**fields, "user_id": self._user_id}
        row = await self._call(
            "Creating task", lambda: self._remote.insert(self._table, values)
        )
        record = self._record(row)
        if placeholder_id is not None:
            self._store.confirm(placeholder_id, record)
        else:
            self._store.upsert(record)
        return record

    async def update(self, task_id: str, fields: Mapping[str, Any]) -> Task:
        row = await self._call(
            f"Updating task {task_id}",
            lambda: self._remote.update(self._table, task_id, dict(fields)),
        )
        record = self._record(row)
        # A local delete may have happened while the call was in flight.
        if record.id in self._store:
            self._store.upsert(record)
        return record

    async def delete(self, task_id: str) -> None:
        await self._call(
            f"Deleting task {task_id}",
            lambda: self._remote.delete(self._table, task_id),
        )
        self._store.remove(task_id)


__all__ = ["TaskGateway"]
