"""Tests for the local key-value storage backends."""

from __future__ import annotations

import json

import pytest

from gtd_engage.services.storage import JsonFileStorage, SqliteStorage, create_storage

pytestmark = pytest.mark.anyio


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def test_json_storage_round_trips_through_disk(tmp_path) -> None:
    path = tmp_path / "state" / "local.json"
    storage = JsonFileStorage(path)

    await storage.set("gtd_offline_actions", "[]")
    await storage.set("gtd_session_state", '{"last_synced_at": null}')
    await storage.remove("gtd_session_state")

    assert json.loads(path.read_text(encoding="utf-8")) == {"gtd_offline_actions": "[]"}
    reopened = JsonFileStorage(path)
    assert await reopened.get("gtd_offline_actions") == "[]"
    assert await reopened.get("gtd_session_state") is None


async def test_json_storage_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "local.json"
    path.write_text("{not json", encoding="utf-8")

    storage = JsonFileStorage(path)

    assert await storage.get("anything") is None


async def test_sqlite_storage(tmp_path) -> None:
    storage = SqliteStorage(tmp_path / "local.db")
    await storage.initialize()
    try:
        await storage.set("key", "one")
        await storage.set("key", "two")
        assert await storage.get("key") == "two"

        await storage.remove("key")
        assert await storage.get("key") is None
    finally:
        await storage.close()


def test_create_storage_selects_backend(tmp_path) -> None:
    assert isinstance(create_storage("json", tmp_path / "a.json"), JsonFileStorage)
    assert isinstance(create_storage("sqlite", tmp_path / "a.db"), SqliteStorage)
    with pytest.raises(ValueError):
        create_storage("redis", tmp_path / "a")
