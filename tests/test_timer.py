"""Tests for the persisted task focus timer."""

from __future__ import annotations

import datetime
import json

import pytest

from gtd_engage.errors import TimerStateError
from gtd_engage.tasks.timer import (
    TARGET_REACHED_NOTE,
    TIMER_STORAGE_KEY,
    TaskTimer,
    format_elapsed,
)

pytestmark = pytest.mark.anyio

UTC = datetime.timezone.utc


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime.datetime(2025, 6, 10, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += datetime.timedelta(**delta)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def timer(memory_storage, clock) -> TaskTimer:
    return TaskTimer(memory_storage, clock=clock)


async def test_pause_excludes_idle_time(timer, clock) -> None:
    await timer.start("t1")
    clock.advance(minutes=10)
    await timer.pause()
    clock.advance(minutes=30)

    assert timer.is_paused
    assert timer.elapsed_seconds() == 600

    await timer.resume()
    clock.advance(minutes=5)

    assert not timer.is_paused
    assert timer.elapsed_seconds() == 900


async def test_stop_rounds_duration_and_clears_storage(timer, clock, memory_storage) -> None:
    await timer.start("t1")
    assert TIMER_STORAGE_KEY in memory_storage.values

    clock.advance(minutes=24, seconds=30)
    finished = await timer.stop("Wrote draft")

    assert finished.duration_minutes == 25
    assert finished.ended_at == clock.now
    assert finished.notes == "Wrote draft"
    assert not timer.is_active
    assert TIMER_STORAGE_KEY not in memory_storage.values


async def test_state_errors(timer) -> None:
    with pytest.raises(TimerStateError):
        await timer.pause()
    with pytest.raises(TimerStateError):
        await timer.stop()

    await timer.start("t1")
    with pytest.raises(TimerStateError):
        await timer.start("t2")
    with pytest.raises(TimerStateError):
        await timer.resume()

    await timer.pause()
    with pytest.raises(TimerStateError):
        await timer.pause()


async def test_running_session_is_restored_paused(memory_storage, clock) -> None:
    first = TaskTimer(memory_storage, clock=clock)
    started = await first.start("t1", target_minutes=45)
    clock.advance(minutes=20)

    second = TaskTimer(memory_storage, clock=clock)
    restored = await second.load()

    assert restored.id == started.id
    assert second.is_paused
    assert second.elapsed_seconds() == 1200
    clock.advance(hours=1)
    assert second.elapsed_seconds() == 1200
    saved = json.loads(memory_storage.values[TIMER_STORAGE_KEY])
    assert saved["resumed_at"] is None


async def test_day_old_session_is_discarded(memory_storage, clock) -> None:
    await TaskTimer(memory_storage, clock=clock).start("t1")
    clock.advance(hours=25)

    timer = TaskTimer(memory_storage, clock=clock)

    assert await timer.load() is None
    assert not timer.is_active
    assert TIMER_STORAGE_KEY not in memory_storage.values


async def test_unreadable_session_is_discarded(memory_storage, clock) -> None:
    memory_storage.values[TIMER_STORAGE_KEY] = "{not json"
    timer = TaskTimer(memory_storage, clock=clock)

    assert await timer.load() is None
    assert TIMER_STORAGE_KEY not in memory_storage.values


async def test_check_target_stops_when_reached(timer, clock) -> None:
    await timer.start("t1", target_minutes=25)
    clock.advance(minutes=24)
    assert await timer.check_target() is None

    clock.advance(minutes=1)
    assert timer.target_reached
    finished = await timer.check_target()

    assert finished.notes == TARGET_REACHED_NOTE
    assert finished.duration_minutes == 25
    assert not timer.is_active


async def test_check_target_ignores_paused_timer(timer, clock) -> None:
    await timer.start("t1", target_minutes=1)
    clock.advance(minutes=2)
    await timer.pause()

    assert await timer.check_target() is None
    assert timer.is_active


async def test_reset_discards_session(timer, memory_storage) -> None:
    await timer.start("t1")
    await timer.reset()

    assert timer.current is None
    assert timer.elapsed_seconds() == 0.0
    assert TIMER_STORAGE_KEY not in memory_storage.values


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "00:00"), (59.9, "00:59"), (754, "12:34"), (3600, "01:00:00"), (45296, "12:34:56")],
)
def test_format_elapsed(seconds, expected) -> None:
    assert format_elapsed(seconds) == expected
