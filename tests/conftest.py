import asyncio
import itertools
import pathlib
import sys
from typing import Any, Callable, Mapping, Optional

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from gtd_engage.errors import RemoteStoreError  # noqa: E402
from gtd_engage.utils.datetime_utils import normalize_rfc3339, utc_now  # noqa: E402


class FakeRegistration:
    def __init__(self, table: str, scope: Optional[str], callback: Callable) -> None:
        self.table = table
        self.scope = scope
        self.callback = callback


class FakeRemoteStore:
    """In-memory stand-in for the hosted row store."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.registrations: list[FakeRegistration] = []
        self.calls: list[tuple[str, str]] = []
        self.offline = False
        self.failures: list[RemoteStoreError] = []
        self.subscribe_calls = 0
        self.subscribe_gate: Optional[asyncio.Event] = None
        self.subscribe_error: Optional[BaseException] = None
        self.insert_gate: Optional[asyncio.Event] = None
        self.lost_response: Optional[RemoteStoreError] = None
        self._ids = itertools.count(1)

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if self.offline:
            raise RemoteStoreError("Network unavailable")
        if self.failures:
            raise self.failures.pop(0)

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self.tables.setdefault(table, {})

    def seed(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        now = normalize_rfc3339(utc_now())
        stored = {"created_at": now, "updated_at": now, **row}
        self._table(table)[stored["id"]] = stored
        return dict(stored)

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    async def select(self, table, *, filters=None, order=None):
        self._check("select", table)
        rows = [dict(r) for r in self._table(table).values() if self._matches(r, filters)]
        if order == "created_at.desc":
            rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows

    async def insert(self, table, values):
        self._check("insert", table)
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        row_id = values.get("id") or f"{table}-{next(self._ids)}"
        existing = self._table(table).get(row_id)
        if existing is not None:
            existing.update(values)
            row = dict(existing)
        else:
            row = self.seed(table, {**values, "id": row_id})
        if self.lost_response is not None:
            # Committed, but the caller never sees the response.
            error, self.lost_response = self.lost_response, None
            self.emit({"eventType": "INSERT", "new": row, "old": {}})
            raise error
        return row

    async def update(self, table, row_id, values):
        self._check("update", table)
        rows = self._table(table)
        if row_id not in rows:
            raise RemoteStoreError(f"No {table} row with id {row_id}", status_code=404)
        rows[row_id] = {
            **rows[row_id],
            **values,
            "updated_at": normalize_rfc3339(utc_now()),
        }
        return dict(rows[row_id])

    async def delete(self, table, row_id):
        self._check("delete", table)
        self._table(table).pop(row_id, None)

    async def count(self, table, *, filters=None):
        self._check("count", table)
        return sum(1 for r in self._table(table).values() if self._matches(r, filters))

    async def subscribe(self, table, scope, callback):
        self.subscribe_calls += 1
        if self.subscribe_gate is not None:
            await self.subscribe_gate.wait()
        if self.subscribe_error is not None:
            raise self.subscribe_error
        registration = FakeRegistration(table, scope, callback)
        self.registrations.append(registration)
        return registration

    async def unsubscribe(self, registration):
        if registration in self.registrations:
            self.registrations.remove(registration)

    async def aclose(self):
        self.registrations.clear()

    def emit(self, payload: Mapping[str, Any]) -> None:
        for registration in list(self.registrations):
            registration.callback(payload)


class MemoryStorage:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value):
        self.values[key] = value

    async def remove(self, key):
        self.values.pop(key, None)

    async def close(self):
        return None


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()
