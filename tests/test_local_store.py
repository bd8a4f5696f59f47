"""Tests for the in-memory task collection."""

from __future__ import annotations

import datetime

from gtd_engage.tasks.models import ChangeEvent, ChangeEventType, Task, TaskStatus
from gtd_engage.tasks.store import PLACEHOLDER_PREFIX, LocalTaskStore

UTC = datetime.timezone.utc


def _task(task_id: str, *, days_ago: int = 0, **fields) -> Task:
    created = datetime.datetime(2025, 1, 20, 9, 0, tzinfo=UTC) - datetime.timedelta(
        days=days_ago
    )
    return Task(
        id=task_id,
        title=fields.pop("title", task_id.title()),
        created_at=created,
        updated_at=created,
        **fields,
    )


def test_load_orders_newest_first() -> None:
    store = LocalTaskStore([_task("old", days_ago=3), _task("new"), _task("mid", days_ago=1)])

    assert [t.id for t in store.tasks] == ["new", "mid", "old"]
    assert len(store) == 3
    assert "mid" in store


def test_add_creates_captured_placeholder_at_front() -> None:
    store = LocalTaskStore([_task("a")])

    placeholder_id = store.add({"title": "Call dentist"})

    assert placeholder_id.startswith(PLACEHOLDER_PREFIX)
    first = store.tasks[0]
    assert first.id == placeholder_id
    assert first.status is TaskStatus.CAPTURED
    assert first.title == "Call dentist"


def test_update_missing_id_is_noop() -> None:
    store = LocalTaskStore([_task("a")])
    version = store.version

    assert store.update("missing", {"title": "x"}) is False
    assert store.remove("missing") is False
    assert store.version == version


def test_update_refreshes_updated_at_only() -> None:
    original = _task("a")
    store = LocalTaskStore([original])

    assert store.update("a", {"priority": 2})

    updated = store.get("a")
    assert updated is not None
    assert updated.priority == 2
    assert updated.created_at == original.created_at
    assert updated.updated_at > original.updated_at


def test_confirm_keeps_position_of_placeholder() -> None:
    store = LocalTaskStore([_task("a", days_ago=2), _task("b", days_ago=1)])
    placeholder_id = store.add({"title": "New"})
    store.add({"title": "Newer"}, placeholder_id="temp-newer")

    store.confirm(placeholder_id, _task("srv-1", title="New"))

    assert [t.id for t in store.tasks] == ["temp-newer", "srv-1", "b", "a"]
    assert placeholder_id not in store


def test_confirm_after_feed_delivered_record_drops_placeholder() -> None:
    store = LocalTaskStore()
    placeholder_id = store.add({"title": "Call dentist"})
    record = _task("srv-1", title="Call dentist")

    store.apply_event(ChangeEvent(event_type=ChangeEventType.INSERT, record=record))
    store.confirm(placeholder_id, record)

    assert [t.id for t in store.tasks] == ["srv-1"]


def test_apply_event_insert_is_idempotent() -> None:
    store = LocalTaskStore([_task("a")])
    event = ChangeEvent(event_type=ChangeEventType.INSERT, record=_task("a", title="Other"))

    assert store.apply_event(event) is False
    assert store.get("a").title == "A"


def test_apply_event_update_replaces_wholesale() -> None:
    store = LocalTaskStore([_task("a", notes="local", priority=1)])
    store.update("a", {"title": "Optimistic"})

    server = _task("a", title="Server")
    assert store.apply_event(ChangeEvent(event_type=ChangeEventType.UPDATE, record=server))

    current = store.get("a")
    assert current == server
    assert current.notes is None


def test_apply_event_for_absent_ids_is_noop() -> None:
    store = LocalTaskStore([_task("a")])

    update = ChangeEvent(event_type=ChangeEventType.UPDATE, record=_task("ghost"))
    delete = ChangeEvent(event_type=ChangeEventType.DELETE, old_id="ghost")

    assert store.apply_event(update) is False
    assert store.apply_event(delete) is False
    assert [t.id for t in store.tasks] == ["a"]


def test_apply_event_without_payload_is_ignored() -> None:
    store = LocalTaskStore([_task("a")])
    version = store.version

    assert store.apply_event(ChangeEvent(event_type=ChangeEventType.INSERT)) is False
    assert store.apply_event(ChangeEvent(event_type=ChangeEventType.UPDATE)) is False
    assert store.apply_event(ChangeEvent(event_type=ChangeEventType.DELETE)) is False
    assert store.version == version
    assert [t.id for t in store.tasks] == ["a"]


def test_apply_event_delete_removes_task() -> None:
    store = LocalTaskStore([_task("a"), _task("b", days_ago=1)])

    assert store.apply_event(ChangeEvent(event_type=ChangeEventType.DELETE, old_id="a"))
    assert [t.id for t in store.tasks] == ["b"]


def test_completed_at_follows_status() -> None:
    store = LocalTaskStore([_task("a", status=TaskStatus.COMPLETED)])
    assert store.get("a").completed_at is not None

    store.update("a", {"status": "next_action"})
    assert store.get("a").completed_at is None
