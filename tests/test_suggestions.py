"""Tests for task filtering and suggestion scoring."""

from __future__ import annotations

import datetime
from zoneinfo import ZoneInfo

import pytest

from gtd_engage.errors import InvalidFilterError
from gtd_engage.tasks.models import (
    EngagementContext,
    Task,
    TaskFilter,
    TaskStatus,
)
from gtd_engage.tasks.suggestions import (
    apply_task_filters,
    build_filter,
    score_task,
    suggest_tasks,
)

UTC = datetime.timezone.utc
NOW = datetime.datetime(2025, 6, 10, 15, 0, tzinfo=UTC)


def _task(task_id: str, **fields) -> Task:
    fields.setdefault("status", TaskStatus.NEXT_ACTION)
    fields.setdefault("created_at", NOW - datetime.timedelta(days=1))
    return Task(id=task_id, title=task_id, **fields)


def test_example_ranking() -> None:
    context = EngagementContext(
        current_location="office", current_energy="high", available_time="30min"
    )
    task_a = _task(
        "A",
        priority=1,
        due_date=NOW - datetime.timedelta(days=1),
        context="office",
        energy_level="high",
        estimated_duration="15min",
    )
    task_b = _task(
        "B",
        priority=5,
        context="home",
        energy_level="low",
        estimated_duration="2hour+",
    )

    ranked = suggest_tasks([task_b, task_a], context, now=NOW)

    assert [s.task.id for s in ranked] == ["A", "B"]
    assert ranked[0].score == 250
    assert "Overdue!" in ranked[0].reasons
    assert ranked[1].score == 60
    assert ranked[1].reasons == ["Ready for action"]


def test_reasons_follow_scoring_order() -> None:
    context = EngagementContext()
    task = _task(
        "t",
        priority=2,
        due_date=NOW + datetime.timedelta(hours=3),
        context="computer",
        energy_level="low",
        estimated_duration="30min",
        created_at=NOW - datetime.timedelta(days=10),
    )

    score, reasons = score_task(task, context, now=NOW)

    assert score == 50 + 40 + 75 + 20 + 5 + 15 + 5
    assert reasons == [
        "Ready for action",
        "High priority",
        "Due today",
        "Perfect for home",
        "Good energy match",
        "Fits in available time",
        "Needs attention",
    ]


def test_project_base_and_due_soon() -> None:
    context = EngagementContext(available_time="1hour")
    task = _task("p", status=TaskStatus.PROJECT, estimated_duration="2hour+")
    assert score_task(task, context, now=NOW) == (30, ["Project work available"])

    context = EngagementContext(available_time="15min")
    close = _task("c", estimated_duration="15min", due_date=NOW + datetime.timedelta(days=2))
    score, reasons = score_task(close, context, now=NOW)
    assert score == 50 + 25 + 15
    assert reasons == ["Ready for action", "Due soon", "Fits in available time"]


def test_non_actionable_tasks_are_not_suggested() -> None:
    tasks = [
        _task("captured", status=TaskStatus.CAPTURED),
        _task("done", status=TaskStatus.COMPLETED),
        _task("next"),
    ]

    ranked = suggest_tasks(tasks, EngagementContext(), now=NOW)

    assert [s.task.id for s in ranked] == ["next"]
    assert score_task(tasks[0], EngagementContext(), now=NOW) == (0, [])


def test_ties_keep_input_order_and_limit_applies() -> None:
    tasks = [_task(f"t{i}") for i in range(5)]

    ranked = suggest_tasks(tasks, EngagementContext(), limit=3, now=NOW)

    assert [s.task.id for s in ranked] == ["t0", "t1", "t2"]


def test_higher_priority_never_scores_lower() -> None:
    context = EngagementContext()
    scores = [
        score_task(_task("t", priority=p), context, now=NOW)[0] for p in range(1, 6)
    ]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.parametrize("priority", [None, 1, 3, 5])
def test_score_never_drops_as_due_date_approaches(priority) -> None:
    context = EngagementContext(current_location="office")
    due_dates = [
        None,
        NOW + datetime.timedelta(days=2),
        NOW + datetime.timedelta(hours=2),
        NOW - datetime.timedelta(days=1),
    ]
    scores = [
        score_task(_task("t", priority=priority, due_date=due), context, now=NOW)[0]
        for due in due_dates
    ]

    assert scores == sorted(scores)
    assert scores[-1] - scores[0] == 100


def test_filter_dimensions_are_anded() -> None:
    tasks = [
        _task("a", context="home", tags=["errand", "quick"], project_id="p1"),
        _task("b", context="office", tags=["quick"]),
        _task("c", status=TaskStatus.SOMEDAY, context="home"),
    ]

    result = apply_task_filters(
        tasks,
        {"status": ["next_action"], "context": ["home", "office"], "tags": ["quick"]},
        now=NOW,
    )
    assert [t.id for t in result] == ["a", "b"]

    with_project = apply_task_filters(tasks, {"has_project": True}, now=NOW)
    without_project = apply_task_filters(tasks, {"has_project": False}, now=NOW)
    assert [t.id for t in with_project] == ["a"]
    assert [t.id for t in without_project] == ["b", "c"]


def test_empty_filter_passes_everything() -> None:
    tasks = [_task("a"), _task("b", status=TaskStatus.SOMEDAY)]
    assert apply_task_filters(tasks, TaskFilter(status=[]), now=NOW) == tasks
    assert apply_task_filters(tasks, None, now=NOW) == tasks


def test_due_today_uses_local_calendar_day() -> None:
    tz = ZoneInfo("America/New_York")
    # 2025-06-10 23:30 in New York is already 2025-06-11 in UTC.
    late_evening = datetime.datetime(2025, 6, 11, 3, 30, tzinfo=UTC)
    tasks = [_task("tonight", due_date=late_evening), _task("no-date")]

    assert [t.id for t in apply_task_filters(tasks, {"due_today": True}, now=NOW, tz=tz)] == [
        "tonight"
    ]
    assert apply_task_filters(tasks, {"due_today": True}, now=NOW, tz=UTC) == []


def test_overdue_filter() -> None:
    tasks = [
        _task("late", due_date=NOW - datetime.timedelta(minutes=1)),
        _task("later", due_date=NOW + datetime.timedelta(minutes=1)),
    ]
    assert [t.id for t in apply_task_filters(tasks, {"overdue": True}, now=NOW)] == ["late"]


def test_invalid_filter_is_rejected() -> None:
    with pytest.raises(InvalidFilterError):
        build_filter({"colour": ["red"]})
    with pytest.raises(InvalidFilterError):
        build_filter({"status": ["sleeping"]})
