"""Focus timer for the task being worked on, persisted across restarts."""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Callable, Optional

from pydantic import ValidationError

from ..errors import TimerStateError
from ..services.storage import KeyValueStorage
from ..utils.datetime_utils import utc_now
from .models import TimerSession

logger = logging.getLogger(__name__)

TIMER_STORAGE_KEY = "current_timer_session"
RESTORE_WINDOW = datetime.timedelta(hours=24)
TARGET_REACHED_NOTE = "Timer completed"


def format_elapsed(seconds: float) -> str:
    """Render ``seconds`` as MM:SS, or HH:MM:SS from one hour on."""

    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class TaskTimer:
    """Start/pause/resume/stop timer for a single task at a time.

    The running session is written to storage on every change. A session
    restored at startup comes back paused, and one started more than a day
    ago is discarded.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        clock: Callable[[], datetime.datetime] = utc_now,
        storage_key: str = TIMER_STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._storage_key = storage_key
        self._session: Optional[TimerSession] = None

    @property
    def current(self) -> Optional[TimerSession]:
        return self._session.model_copy() if self._session is not None else None

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def is_paused(self) -> bool:
        return self._session is not None and self._session.is_paused

    def elapsed_seconds(self) -> float:
        if self._session is None:
            return 0.0
        return self._session.elapsed_seconds(self._clock())

    @property
    def target_reached(self) -> bool:
        session = self._session
        if session is None or session.target_minutes is None:
            return False
        return self.elapsed_seconds() >= session.target_minutes * 60

    async def load(self) -> Optional[TimerSession]:
        raw = await self._storage.get(self._storage_key)
        if not raw:
            return None

        try:
            session = TimerSession.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable timer session: %s", exc)
            await self._storage.remove(self._storage_key)
            return None

        now = self._clock()
        if now - session.started_at >= RESTORE_WINDOW:
            logger.info("Discarding timer session %s older than a day", session.id)
            await self._storage.remove(self._storage_key)
            return None

        if session.resumed_at is not None:
            # Keep the time that ran up to now but wait for an explicit resume.
            session.accumulated_seconds = session.elapsed_seconds(now)
            session.resumed_at = None
        self._session = session
        await self._save()
        logger.info("Restored paused timer for task %s", session.task_id)
        return self.current

    async def _save(self) -> None:
        if self._session is None:
            await self._storage.remove(self._storage_key)
            return
        await self._storage.set(self._storage_key, self._session.model_dump_json())

    def _require(self) -> TimerSession:
        if self._session is None:
            raise TimerStateError("No timer is running")
        return self._session

    async def start(
        self, task_id: str, target_minutes: Optional[int] = None
    ) -> TimerSession:
        if self._session is not None:
            raise TimerStateError(
                f"A timer is already running for task {self._session.task_id}"
            )
        now = self._clock()
        self._session = TimerSession(
            id=f"timer-{uuid.uuid4().hex}",
            task_id=task_id,
            started_at=now,
            resumed_at=now,
            target_minutes=target_minutes,
        )
        await self._save()
        logger.debug("Timer started for task %s", task_id)
        return self._session.model_copy()

    async def pause(self) -> TimerSession:
        session = self._require()
        if session.is_paused:
            raise TimerStateError("Timer is already paused")
        session.accumulated_seconds = session.elapsed_seconds(self._clock())
        session.resumed_at = None
        await self._save()
        return session.model_copy()

    async def resume(self) -> TimerSession:
        session = self._require()
        if not session.is_paused:
            raise TimerStateError("Timer is not paused")
        session.resumed_at = self._clock()
        await self._save()
        return session.model_copy()

    async def stop(self, notes: Optional[str] = None) -> TimerSession:
        """End the session and return it with its rounded duration."""

        session = self._require()
        now = self._clock()
        elapsed = session.elapsed_seconds(now)
        finished = session.model_copy(
            update={
                "accumulated_seconds": elapsed,
                "resumed_at": None,
                "ended_at": now,
                "duration_minutes": int(elapsed / 60 + 0.5),
                "notes": notes,
            }
        )
        self._session = None
        await self._save()
        logger.info(
            "Timer for task %s stopped after %d minutes",
            finished.task_id,
            finished.duration_minutes,
        )
        return finished

    async def reset(self) -> None:
        self._session = None
        await self._save()

    async def check_target(self) -> Optional[TimerSession]:
        """Stop a running session whose target duration has elapsed."""

        if self._session is None or self._session.is_paused or not self.target_reached:
            return None
        return await self.stop(TARGET_REACHED_NOTE)


__all__ = [
    "RESTORE_WINDOW",
    "TARGET_REACHED_NOTE",
    "TIMER_STORAGE_KEY",
    "TaskTimer",
    "format_elapsed",
]
