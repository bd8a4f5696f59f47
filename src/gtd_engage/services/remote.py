"""Boundary to the hosted row store (CRUD + change subscription)."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from ..errors import RemoteStoreError

Row = dict[str, Any]
ChangeCallback = Callable[[Mapping[str, Any]], None]
"""Receives ``{"eventType": "insert"|"update"|"delete", "new": row, "old": row}``."""


class RemoteRegistration(Protocol):
    """Opaque handle for one live change subscription."""

    table: str
    scope: Optional[str]


class RemoteStore(Protocol):
    """Row-oriented CRUD interface plus a per-table change stream.

    Every call may raise :class:`RemoteStoreError` carrying the store's
    message. The change stream may silently stop delivering; reconnecting is
    the implementation's job.
    """

    async def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row: ...

    async def update(
        self, table: str, row_id: str, values: Mapping[str, Any]
    ) -> Row: ...

    async def delete(self, table: str, row_id: str) -> None: ...

    async def count(
        self, table: str, *, filters: Optional[Mapping[str, Any]] = None
    ) -> int: ...

    async def subscribe(
        self, table: str, scope: Optional[str], callback: ChangeCallback
    ) -> RemoteRegistration: ...

    async def unsubscribe(self, registration: RemoteRegistration) -> None: ...

    async def aclose(self) -> None: ...


async def call_remote(
    operation: Callable[[], Awaitable[Any]], *, description: str
) -> Any:
    """Run a remote call, folding unexpected exceptions into RemoteStoreError."""

    try:
        return await operation()
    except RemoteStoreError:
        raise
    except (OSError, ValueError) as exc:
        raise RemoteStoreError(f"{description} failed: {exc}") from exc


TASKS_TABLE = "tasks"
PROJECTS_TABLE = "projects"

__all__ = [
    "ChangeCallback",
    "PROJECTS_TABLE",
    "RemoteRegistration",
    "RemoteStore",
    "RemoteStoreError",
    "Row",
    "TASKS_TABLE",
    "call_remote",
]
