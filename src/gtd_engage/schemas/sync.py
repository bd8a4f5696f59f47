"""Schemas describing offline queue and connectivity state."""

from __future__ import annotations

import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..tasks.feed import SubscriptionState
from ..tasks.models import FlushReport, OfflineQueuedAction


class SyncStatus(BaseModel):
    is_online: bool
    pending_count: int
    subscription: SubscriptionState
    last_error: Optional[str] = None
    last_synced_at: Optional[datetime.datetime] = None
    queued_actions: list[OfflineQueuedAction] = Field(default_factory=list)
    failed_actions: list[OfflineQueuedAction] = Field(default_factory=list)


class OnlinePayload(BaseModel):
    online: bool


class FlushResult(BaseModel):
    """Outcome of a single pass over the offline queue."""

    confirmed: list[str] = Field(default_factory=list)
    retried: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    deferred: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: FlushReport) -> "FlushResult":
        return cls(
            confirmed=list(report.confirmed),
            retried=list(report.retried),
            failed=list(report.failed),
            deferred=list(report.deferred),
            errors=dict(report.errors),
        )


class FlushResponse(BaseModel):
    result: FlushResult
    status: SyncStatus


__all__ = ["FlushResponse", "FlushResult", "OnlinePayload", "SyncStatus"]
