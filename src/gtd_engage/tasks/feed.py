"""Live subscription to the remote store's task change stream."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from ..errors import RemoteStoreError
from ..services.remote import TASKS_TABLE, RemoteRegistration, RemoteStore
from .models import ChangeEvent
from .store import LocalTaskStore

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


@dataclass(slots=True)
class SubscriptionHandle:
    """Returned by :meth:`ChangeFeedSubscriber.subscribe`."""

    scope: str
    registration: Optional[RemoteRegistration] = None


class ChangeFeedSubscriber:
    """Feed remote insert/update/delete events into a :class:`LocalTaskStore`.

    At most one remote registration exists at a time. The state moves to
    ``subscribing`` before the first await, so overlapping ``subscribe`` calls
    share the in-progress registration instead of creating a second one.
    """

    def __init__(
        self,
        remote: RemoteStore,
        store: LocalTaskStore,
        *,
        table: str = TASKS_TABLE,
    ) -> None:
        self._remote = remote
        self._store = store
        self._table = table
        self._state = SubscriptionState.UNSUBSCRIBED
        self._handle: Optional[SubscriptionHandle] = None
        self._pending: Optional[asyncio.Future[SubscriptionHandle]] = None
        self._scope: Optional[str] = None
        self.events_applied = 0
        self.events_dropped = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        return self._handle

    async def subscribe(self, user_scope: str) -> SubscriptionHandle:
        if self._state is SubscriptionState.SUBSCRIBED and self._handle is not None:
            if self._handle.scope != user_scope:
                logger.warning(
                    "Ignoring subscribe for scope %s; already subscribed for %s",
                    user_scope,
                    self._handle.scope,
                )
            return self._handle

        if self._state is SubscriptionState.SUBSCRIBING and self._pending is not None:
            return await asyncio.shield(self._pending)

        self._state = SubscriptionState.SUBSCRIBING
        self._scope = user_scope
        pending: asyncio.Future[SubscriptionHandle] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending = pending

        try:
            registration = await self._remote.subscribe(
                self._table, user_scope, self._on_payload
            )
        except BaseException as exc:
            self._state = SubscriptionState.UNSUBSCRIBED
            self._pending = None
            self._scope = None
            if isinstance(exc, asyncio.CancelledError):
                pending.cancel()
            else:
                pending.set_exception(exc)
                # Mark retrieved; concurrent waiters still receive it.
                pending.exception()
            raise

        handle = SubscriptionHandle(scope=user_scope, registration=registration)
        self._handle = handle
        self._state = SubscriptionState.SUBSCRIBED
        self._pending = None
        pending.set_result(handle)
        logger.info("Subscribed to %s changes for %s", self._table, user_scope)
        return handle

    async def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        if handle is None or handle is not self._handle:
            logger.debug("unsubscribe called with a stale handle; ignoring")
            return

        self._handle = None
        self._scope = None
        self._state = SubscriptionState.UNSUBSCRIBED

        if handle.registration is None:
            return
        try:
            await self._remote.unsubscribe(handle.registration)
        except RemoteStoreError as exc:
            logger.warning("Failed to close %s subscription: %s", self._table, exc)
        else:
            logger.info("Unsubscribed from %s changes for %s", self._table, handle.scope)

    def _on_payload(self, payload: Mapping[str, Any]) -> None:
        """Normalize and apply one notification; never raises."""

        try:
            event = ChangeEvent.from_payload(payload)
        except (ValueError, ValidationError) as exc:
            self.events_dropped += 1
            logger.warning("Dropping malformed change event: %s", exc)
            return

        record = event.record
        if (
            record is not None
            and self._scope
            and record.user_id
            and record.user_id != self._scope
        ):
            self.events_dropped += 1
            logger.debug("Dropping change event for foreign scope %s", record.user_id)
            return

        changed = self._store.apply_event(event)
        self.events_applied += 1
        logger.debug(
            "Applied %s event for %s (changed=%s)",
            event.event_type.value,
            event.task_id,
            changed,
        )


__all__ = ["ChangeFeedSubscriber", "SubscriptionHandle", "SubscriptionState"]
