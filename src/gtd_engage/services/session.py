"""One user's engagement session: store, sync, queue and derived views."""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from ..config import Settings
from ..errors import RemoteStoreError
from ..tasks.actions import ActionExecutor
from ..tasks.context import ContextModel
from ..tasks.feed import ChangeFeedSubscriber, SubscriptionHandle, SubscriptionState
from ..tasks.gateway import TaskGateway
from ..tasks.models import (
    EngagementContext,
    FlushReport,
    MutationKind,
    OfflineQueuedAction,
    Task,
    TaskAction,
    TaskFilter,
    TaskInput,
    TaskPatch,
    TaskStatus,
    TaskSuggestion,
    TimerSession,
)
from ..tasks.projects import ProjectService
from ..tasks.queue import OfflineActionQueue
from ..tasks.store import PLACEHOLDER_PREFIX, LocalTaskStore, new_task_id
from ..tasks.suggestions import apply_task_filters, build_filter, suggest_tasks
from ..tasks.timer import TaskTimer
from ..utils.datetime_utils import (
    normalize_rfc3339,
    parse_rfc3339_datetime,
    resolve_timezone,
    utc_now,
)
from .remote import RemoteStore
from .scheduler import PeriodicJob
from .storage import KeyValueStorage, create_storage
from .supabase import SupabaseStore

logger = logging.getLogger(__name__)

SESSION_STATE_KEY = "gtd_session_state"
DEFAULT_FILTER_STATUSES = (TaskStatus.NEXT_ACTION, TaskStatus.PROJECT)


def default_filter() -> TaskFilter:
    return TaskFilter(status=list(DEFAULT_FILTER_STATUSES))


class EngagementSession:
    """Everything a task-engagement UI talks to for a single signed-in user.

    Mutations are applied to the local store first. While online they are
    sent straight to the remote store; offline, or when that call fails,
    they are queued and replayed by :meth:`sync_now` (run periodically and
    whenever connectivity returns).
    """

    def __init__(
        self,
        remote: RemoteStore,
        storage: KeyValueStorage,
        *,
        user_id: str,
        max_retries: int = 3,
        sync_interval: float = 30.0,
        max_suggestions: int = 10,
        timezone: Optional[datetime.tzinfo] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        owns_resources: bool = False,
    ) -> None:
        self._remote = remote
        self._storage = storage
        self._user_id = user_id
        self._max_suggestions = max_suggestions
        self._tz = timezone or datetime.timezone.utc
        self._clock = clock
        self._owns_resources = owns_resources

        self.store = LocalTaskStore()
        self._gateway = TaskGateway(remote, self.store, user_id=user_id)
        self._feed = ChangeFeedSubscriber(remote, self.store)
        self._queue = OfflineActionQueue(storage, max_retries=max_retries)
        self._context = ContextModel()
        self._filters = default_filter()
        self._filters_version = 0
        self._executor = ActionExecutor(self)
        self._projects = ProjectService(remote, user_id=user_id)
        self._timer = TaskTimer(storage, clock=clock)
        self._sync_job = PeriodicJob(
            sync_interval, self._scheduled_sync, name="offline-sync"
        )

        self._handle: Optional[SubscriptionHandle] = None
        self._online = True
        self._last_error: Optional[str] = None
        self._last_synced_at: Optional[datetime.datetime] = None
        self._suggestion_cache: Optional[tuple[tuple[Any, ...], list[TaskSuggestion]]] = None
        self._filtered_cache: Optional[tuple[tuple[Any, ...], list[Task]]] = None

    @classmethod
    def from_settings(
        cls, settings: Settings, *, storage_path: Optional[Path] = None
    ) -> "EngagementSession":
        access_token = (
            settings.supabase_access_token.get_secret_value()
            if settings.supabase_access_token is not None
            else None
        )
        remote = SupabaseStore(
            str(settings.supabase_url),
            settings.supabase_anon_key.get_secret_value(),
            access_token=access_token,
            timeout=settings.request_timeout,
            heartbeat_seconds=settings.realtime_heartbeat_seconds,
        )
        storage = create_storage(
            settings.local_storage_backend,
            storage_path or settings.local_storage_path,
        )
        return cls(
            remote,
            storage,
            user_id=settings.user_id,
            max_retries=settings.offline_max_retries,
            sync_interval=settings.sync_interval_seconds,
            max_suggestions=settings.max_suggestions,
            timezone=resolve_timezone(settings.timezone),
            owns_resources=True,
        )

    # -------------------------------------------------------------- lifecycle

    async def start(self) -> None:
        await self._queue.load()
        await self._load_state()
        await self._timer.load()

        try:
            await self._gateway.fetch_all()
        except RemoteStoreError as exc:
            self._last_error = exc.message
            logger.warning("Initial task fetch failed: %s", exc.message)

        await self._ensure_subscribed()
        self._sync_job.start()

        if self._online and self._queue.pending_count:
            await self.sync_now()

    async def close(self) -> None:
        await self._sync_job.cancel()
        await self._feed.unsubscribe(self._handle)
        self._handle = None
        await self._save_state()
        if self._owns_resources:
            await self._remote.aclose()
            await self._storage.close()

    async def _ensure_subscribed(self) -> None:
        if self._feed.state is not SubscriptionState.UNSUBSCRIBED:
            return
        try:
            self._handle = await self._feed.subscribe(self._user_id)
        except RemoteStoreError as exc:
            self._last_error = exc.message
            logger.warning("Change feed subscription failed: %s", exc.message)

    async def _load_state(self) -> None:
        raw = await self._storage.get(SESSION_STATE_KEY)
        if not raw:
            return
        try:
            state = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable session state: %s", exc)
            return
        if isinstance(state, dict):
            self._last_synced_at = parse_rfc3339_datetime(state.get("last_synced_at"))

    async def _save_state(self) -> None:
        state = {
            "last_synced_at": (
                normalize_rfc3339(self._last_synced_at)
                if self._last_synced_at is not None
                else None
            )
        }
        await self._storage.set(SESSION_STATE_KEY, json.dumps(state))

    # ------------------------------------------------------------------ views

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def tasks(self) -> list[Task]:
        return self.store.tasks

    @property
    def projects(self) -> ProjectService:
        return self._projects

    @property
    def context(self) -> EngagementContext:
        return self._context.current

    @property
    def filters(self) -> TaskFilter:
        return self._filters

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def pending_count(self) -> int:
        return self._queue.pending_count

    @property
    def queued_actions(self) -> list[OfflineQueuedAction]:
        return self._queue.actions

    @property
    def failed_actions(self) -> list[OfflineQueuedAction]:
        return self._queue.failed

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_synced_at(self) -> Optional[datetime.datetime]:
        return self._last_synced_at

    @property
    def subscription_state(self) -> SubscriptionState:
        return self._feed.state

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.store.get(task_id)

    def update_context(self, **partial: Any) -> EngagementContext:
        return self._context.update(**partial)

    def reset_context(self) -> EngagementContext:
        return self._context.reset()

    def update_filters(self, **partial: Any) -> TaskFilter:
        """Merge ``partial`` into the active filter (InvalidFilterError if bad)."""

        merged = build_filter({**self._filters.model_dump(), **partial})
        return self._set_filters(merged)

    def replace_filters(self, data: TaskFilter | Mapping[str, Any]) -> TaskFilter:
        return self._set_filters(build_filter(data))

    def reset_filters(self) -> TaskFilter:
        return self._set_filters(default_filter())

    def _set_filters(self, filters: TaskFilter) -> TaskFilter:
        self._filters = filters
        self._filters_version += 1
        return filters

    def _minute(self, now: datetime.datetime) -> datetime.datetime:
        return now.replace(second=0, microsecond=0)

    def suggestions(self, limit: Optional[int] = None) -> list[TaskSuggestion]:
        """Ranked suggestions for the current context."""

        resolved = self._max_suggestions if limit is None else limit
        now = self._clock()
        key = (self.store.version, self._context.version, resolved, self._minute(now))
        if self._suggestion_cache is not None and self._suggestion_cache[0] == key:
            return list(self._suggestion_cache[1])

        ranked = suggest_tasks(
            self.store.tasks, self._context.current, limit=resolved, now=now, tz=self._tz
        )
        self._suggestion_cache = (key, ranked)
        return list(ranked)

    @property
    def filtered_tasks(self) -> list[Task]:
        now = self._clock()
        key = (self.store.version, self._filters_version, self._minute(now))
        if self._filtered_cache is not None and self._filtered_cache[0] == key:
            return list(self._filtered_cache[1])

        matches = apply_task_filters(self.store.tasks, self._filters, now=now, tz=self._tz)
        self._filtered_cache = (key, matches)
        return list(matches)

    # -------------------------------------------------------------- mutations

    def _must_queue(self, task_id: str) -> bool:
        """True when a mutation of `task_id` cannot go straight to the store."""

        if not self._online or task_id.startswith(PLACEHOLDER_PREFIX):
            return True
        # Keep per-task ordering behind a pending create or queued edits.
        return self._queue.has_unsent(task_id)

    async def _create(self, fields: Mapping[str, Any], task_id: str) -> Task:
        record = await self._gateway.create(fields, placeholder_id=task_id)
        await self._queue.retarget(task_id, record.id)
        self._replay_queued(record.id)
        return self.store.get(record.id) or record

    def _replay_queued(self, task_id: str) -> None:
        """Re-apply edits still queued for a task whose create just landed."""

        for action in self._queue.pending_for(task_id):
            if action.kind is MutationKind.DELETE:
                self.store.remove(task_id)
            else:
                self.store.update(task_id, action.payload)

    async def capture_task(self, data: TaskInput | Mapping[str, Any]) -> Task:
        """Create a task; offline captures return the queued placeholder.

        The task id is generated here and sent with the insert, so a replayed
        create lands on the same row.
        """
        task_input = data if isinstance(data, TaskInput) else TaskInput.model_validate(data)
        task_id = new_task_id()
        fields = {**task_input.to_remote(), "id": task_id}
        self.store.add(fields, placeholder_id=task_id)
        placeholder = self.store[task_id]
        attempt_error: Optional[str] = None

        if self._online:
            self._queue.hold(task_id)
            try:
                return await self._create(fields, task_id)
            except RemoteStoreError as exc:
                self._last_error = attempt_error = exc.message
                logger.info("Capture failed online, queueing instead: %s", exc.message)
            finally:
                self._queue.release(task_id)

        await self._queue.enqueue(
            MutationKind.CREATE,
            fields,
            target_task_id=task_id,
            label="capture",
            last_error=attempt_error,
        )
        return self.store.get(task_id) or placeholder

    async def quick_capture(self, title: str) -> Task:
        return await self.capture_task(TaskInput(title=title))

    async def update_task(
        self,
        task_id: str,
        patch: Mapping[str, Any],
        *,
        label: str = "update",
    ) -> Optional[Task]:
        """Apply ``patch`` locally, then remotely or via the offline queue.

        Returns ``None`` when the task is not in the local collection.
        """
        fields = TaskPatch.model_validate(dict(patch)).to_fields()
        if not self.store.update(task_id, fields):
            logger.debug("Ignoring %s for unknown task %s", label, task_id)
            return None

        if "status" in fields:
            # The server row gets the same completed_at the local record derived.
            completed_at = self.store[task_id].completed_at
            fields["completed_at"] = (
                normalize_rfc3339(completed_at) if completed_at is not None else None
            )

        if not self._must_queue(task_id):
            try:
                return await self._gateway.update(task_id, fields)
            except RemoteStoreError as exc:
                self._last_error = exc.message

        await self._queue.enqueue(
            MutationKind.UPDATE, fields, target_task_id=task_id, label=label
        )
        return self.store.get(task_id)

    async def delete_task(self, task_id: str) -> bool:
        if not self.store.remove(task_id):
            return False

        create = self._queue.queued_create(task_id)
        if create is not None and create.last_error is None:
            # Never sent anywhere; drop the create and everything behind it.
            await self._queue.remove_for_task(task_id)
            return True

        if not self._must_queue(task_id):
            try:
                await self._gateway.delete(task_id)
                return True
            except RemoteStoreError as exc:
                self._last_error = exc.message

        await self._queue.enqueue(
            MutationKind.DELETE, {}, target_task_id=task_id, label="delete"
        )
        return True

    async def execute_action(
        self, task_id: str, action: TaskAction | Mapping[str, Any]
    ) -> Optional[Task]:
        return await self._executor.execute(task_id, action)

    # ------------------------------------------------------------------ timer

    @property
    def timer(self) -> TaskTimer:
        return self._timer

    async def start_timer(
        self, task_id: str, target_minutes: Optional[int] = None
    ) -> Optional[TimerSession]:
        """Start timing ``task_id``; ``None`` when the task is unknown."""

        if task_id not in self.store:
            return None
        return await self._timer.start(task_id, target_minutes)

    async def pause_timer(self) -> TimerSession:
        return await self._timer.pause()

    async def resume_timer(self) -> TimerSession:
        return await self._timer.resume()

    async def stop_timer(self, notes: Optional[str] = None) -> TimerSession:
        return await self._timer.stop(notes)

    async def reset_timer(self) -> None:
        await self._timer.reset()

    # ------------------------------------------------------------------- sync

    async def _deliver(self, action: OfflineQueuedAction) -> Optional[Task]:
        if action.kind is MutationKind.CREATE:
            task_id = action.target_task_id or action.correlation_id
            return await self._create(action.payload, task_id)
        if action.target_task_id is None:
            raise ValueError(
                f"{action.kind.value} action {action.correlation_id} has no target task"
            )
        if action.kind is MutationKind.UPDATE:
            return await self._gateway.update(action.target_task_id, action.payload)
        await self._gateway.delete(action.target_task_id)
        return None

    async def sync_now(self) -> FlushReport:
        """Replay the offline queue once (no-op while offline)."""

        if not self._online:
            logger.debug("Skipping sync while offline")
            return FlushReport()

        report = await self._queue.flush(self._deliver)
        if report.errors:
            self._last_error = next(reversed(report.errors.values()))
        if report.ok:
            self._last_synced_at = self._clock()
            await self._save_state()
        return report

    async def _scheduled_sync(self) -> None:
        await self._timer.check_target()
        if self._online and self._queue.pending_count:
            await self.sync_now()

    async def set_online(self, online: bool) -> Optional[FlushReport]:
        """Record connectivity; coming back online resubscribes and flushes."""

        was_online, self._online = self._online, online
        if not online or was_online:
            return None

        logger.info("Back online, syncing %d queued actions", self._queue.pending_count)
        await self._ensure_subscribed()
        return await self.sync_now()

    async def remove_action(self, correlation_id: str) -> OfflineQueuedAction:
        return await self._queue.remove(correlation_id)

    async def clear_queue(self) -> None:
        await self._queue.clear()

    async def retry_action(self, correlation_id: str) -> OfflineQueuedAction:
        return await self._queue.retry(correlation_id)


__all__ = ["EngagementSession", "SESSION_STATE_KEY", "default_filter"]
