"""Schemas for the task focus timer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..tasks.models import TimerSession
from ..tasks.timer import TaskTimer, format_elapsed


class TimerStart(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_id: str = Field(..., min_length=1)
    target_minutes: Optional[int] = Field(default=None, ge=1)


class TimerStop(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = None


class TimerStatus(BaseModel):
    """Snapshot of the timer as shown to the user."""

    active: bool
    paused: bool
    elapsed_seconds: int
    formatted: str
    target_reached: bool
    session: Optional[TimerSession] = None

    @classmethod
    def from_timer(cls, timer: TaskTimer) -> "TimerStatus":
        elapsed = timer.elapsed_seconds()
        return cls(
            active=timer.is_active,
            paused=timer.is_paused,
            elapsed_seconds=int(elapsed),
            formatted=format_elapsed(elapsed),
            target_reached=timer.target_reached,
            session=timer.current,
        )


__all__ = ["TimerStart", "TimerStatus", "TimerStop"]
