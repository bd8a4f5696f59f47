"""Local durable key-value storage used for the offline queue and session state."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Protocol

import aiosqlite

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """String-keyed get/set/remove surface; callers store JSON strings."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def close(self) -> None: ...


class JsonFileStorage:
    """Persist every key into a single JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()
        self._values: dict[str, str] = {}
        self._load_from_disk()

    def _load_from_disk(self) -> None:
        if not self._path.exists():
            self._values = {}
            return

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read local storage file %s: %s", self._path, exc)
            self._values = {}
            return

        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed local storage file %s", self._path)
            self._values = {}
            return

        self._values = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _save_to_disk(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        serialized = json.dumps(self._values, indent=2, sort_keys=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(serialized + "\n", encoding="utf-8")
        tmp_path.replace(self._path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._values[key] = value
            self._save_to_disk()

    async def remove(self, key: str) -> None:
        async with self._lock:
            if self._values.pop(key, None) is not None:
                self._save_to_disk()

    async def close(self) -> None:
        return None


class SqliteStorage:
    """Key-value storage backed by a single SQLite table."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure the table exists."""
        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        await self._connection.commit()

    async def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            await self.initialize()
        if self._connection is None:
            raise RuntimeError(f"Could not open local storage at {self._path}")
        return self._connection

    async def get(self, key: str) -> Optional[str]:
        conn = await self._conn()
        async with conn.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = await self._conn()
        await conn.execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value),
        )
        await conn.commit()

    async def remove(self, key: str) -> None:
        conn = await self._conn()
        await conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


def create_storage(backend: str, path: Path) -> KeyValueStorage:
    """Build the storage implementation named by ``backend`` (json|sqlite)."""

    if backend == "sqlite":
        return SqliteStorage(path)
    if backend == "json":
        return JsonFileStorage(path)
    raise ValueError(f"Unsupported local storage backend: {backend}")


__all__ = ["JsonFileStorage", "KeyValueStorage", "SqliteStorage", "create_storage"]
