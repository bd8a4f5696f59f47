"""Tests for task model parsing and normalisation."""

from __future__ import annotations

import datetime

import pytest
from pydantic import ValidationError

from gtd_engage.tasks.models import (
    ChangeEvent,
    ChangeEventType,
    Task,
    TaskDuration,
    TaskInput,
    TaskPatch,
    TaskStatus,
)


def test_task_ignores_unknown_columns_and_parses_timestamps() -> None:
    task = Task.model_validate(
        {
            "id": "t1",
            "title": "  Write report ",
            "due_date": "2025-03-01",
            "created_at": "2025-02-01T10:00:00+02:00",
            "project_id": "",
            "some_new_column": 42,
        }
    )

    assert task.title == "Write report"
    assert task.project_id is None
    assert task.due_date == datetime.datetime(2025, 3, 1, tzinfo=datetime.timezone.utc)
    assert task.created_at.hour == 8


def test_task_rejects_out_of_range_priority() -> None:
    with pytest.raises(ValidationError):
        Task(id="t1", title="x", priority=6)


def test_completed_task_gets_completed_at() -> None:
    task = Task(id="t1", title="x", status=TaskStatus.COMPLETED)
    assert task.completed_at == task.updated_at


def test_patch_only_reports_explicit_fields() -> None:
    patch = TaskPatch.model_validate({"notes": None, "priority": 2})
    assert patch.to_fields() == {"notes": None, "priority": 2}


def test_patch_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        TaskPatch.model_validate({"colour": "red"})


def test_task_input_drops_unset_fields() -> None:
    payload = TaskInput(title="Call dentist").to_remote()
    assert payload == {"title": "Call dentist", "status": "captured"}


def test_duration_minutes() -> None:
    assert TaskDuration.TWO_HOURS_PLUS.minutes == 120


def test_change_event_from_payload() -> None:
    insert = ChangeEvent.from_payload(
        {"eventType": "INSERT", "new": {"id": "t1", "title": "x"}, "old": {}}
    )
    delete = ChangeEvent.from_payload({"eventType": "delete", "new": {}, "old": {"id": "t1"}})

    assert insert.event_type is ChangeEventType.INSERT
    assert insert.task_id == "t1"
    assert delete.old_id == "t1"


@pytest.mark.parametrize(
    "payload",
    [
        {"eventType": "upsert", "new": {"id": "t1", "title": "x"}},
        {"eventType": "delete", "old": {}},
        {"eventType": "update", "new": {}},
    ],
)
def test_change_event_rejects_malformed_payloads(payload) -> None:
    with pytest.raises(ValueError):
        ChangeEvent.from_payload(payload)
