"""Domain models for tasks, projects and the engagement layer."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.datetime_utils import coerce_datetime, utc_now


class TaskStatus(str, Enum):
    """GTD lifecycle of a task."""

    CAPTURED = "captured"
    NEXT_ACTION = "next_action"
    PROJECT = "project"
    WAITING_FOR = "waiting_for"
    SOMEDAY = "someday"
    COMPLETED = "completed"


class TaskContext(str, Enum):
    """Situational tag describing where or how a task can be done."""

    CALLS = "calls"
    COMPUTER = "computer"
    ERRANDS = "errands"
    HOME = "home"
    OFFICE = "office"
    ANYWHERE = "anywhere"


class EnergyLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskDuration(str, Enum):
    FIVE_MINUTES = "5min"
    FIFTEEN_MINUTES = "15min"
    THIRTY_MINUTES = "30min"
    ONE_HOUR = "1hour"
    TWO_HOURS_PLUS = "2hour+"

    @property
    def minutes(self) -> int:
        return DURATION_MINUTES[self]


DURATION_MINUTES: dict[TaskDuration, int] = {
    TaskDuration.FIVE_MINUTES: 5,
    TaskDuration.FIFTEEN_MINUTES: 15,
    TaskDuration.THIRTY_MINUTES: 30,
    TaskDuration.ONE_HOUR: 60,
    TaskDuration.TWO_HOURS_PLUS: 120,
}


class Location(str, Enum):
    """Where the user currently is (engagement input only)."""

    HOME = "home"
    OFFICE = "office"
    MOBILE = "mobile"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _timestamp_or_now(value: Any) -> Any:
    coerced = coerce_datetime(value)
    return utc_now() if coerced is None else coerced


class Task(BaseModel):
    """A task record as held in the local collection."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.CAPTURED
    project_id: Optional[str] = None
    context: Optional[TaskContext] = None
    energy_level: Optional[EnergyLevel] = None
    estimated_duration: Optional[TaskDuration] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    due_date: Optional[datetime.datetime] = None
    waiting_for: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator(
        "project_id", "context", "energy_level", "estimated_duration", mode="before"
    )
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("due_date", "completed_at", mode="before")
    @classmethod
    def _parse_optional_timestamp(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        return _timestamp_or_now(value)

    @model_validator(mode="after")
    def _sync_completed_at(self) -> "Task":
        # completed_at is present iff the task is completed.
        if self.status is TaskStatus.COMPLETED:
            if self.completed_at is None:
                self.completed_at = self.updated_at
        elif self.completed_at is not None:
            self.completed_at = None
        return self

    def merged(
        self,
        patch: Mapping[str, Any],
        *,
        touched_at: Optional[datetime.datetime] = None,
    ) -> "Task":
        """Return a new task with ``patch`` applied and ``updated_at`` refreshed."""

        data = self.model_dump()
        data.update(patch)
        data["id"] = self.id
        data["created_at"] = self.created_at
        data["updated_at"] = touched_at or utc_now()
        return Task.model_validate(data)

    @property
    def is_actionable(self) -> bool:
        return self.status in (TaskStatus.NEXT_ACTION, TaskStatus.PROJECT)


class TaskInput(BaseModel):
    """Fields a caller supplies when capturing a new task."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.CAPTURED
    project_id: Optional[str] = None
    context: Optional[TaskContext] = None
    energy_level: Optional[EnergyLevel] = None
    estimated_duration: Optional[TaskDuration] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    due_date: Optional[datetime.datetime] = None
    waiting_for: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due(cls, value: Any) -> Any:
        return coerce_datetime(value)

    def to_remote(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class TaskPatch(BaseModel):
    """Partial update of a task; only explicitly set fields are applied."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    project_id: Optional[str] = None
    context: Optional[TaskContext] = None
    energy_level: Optional[EnergyLevel] = None
    estimated_duration: Optional[TaskDuration] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    due_date: Optional[datetime.datetime] = None
    waiting_for: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime.datetime] = None

    @field_validator("due_date", "completed_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        return coerce_datetime(value)

    def to_fields(self) -> dict[str, Any]:
        """Return the explicitly set fields as JSON-compatible values."""

        return self.model_dump(mode="json", exclude_unset=True)


class Project(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        return _timestamp_or_now(value)


class ProjectInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE


class EngagementContext(BaseModel):
    """The user's current situation, used only as scoring input."""

    model_config = ConfigDict(extra="forbid")

    current_location: Location = Location.HOME
    current_energy: EnergyLevel = EnergyLevel.MEDIUM
    available_time: TaskDuration = TaskDuration.THIRTY_MINUTES


class TaskFilter(BaseModel):
    """Explicit user-chosen predicates; an unset dimension never constrains."""

    model_config = ConfigDict(extra="forbid")

    status: Optional[list[TaskStatus]] = None
    context: Optional[list[TaskContext]] = None
    energy_level: Optional[list[EnergyLevel]] = None
    estimated_duration: Optional[list[TaskDuration]] = None
    priority: Optional[list[int]] = None
    due_today: Optional[bool] = None
    overdue: Optional[bool] = None
    has_project: Optional[bool] = None
    tags: Optional[list[str]] = None


class TaskSuggestion(BaseModel):
    task: Task
    score: int
    reasons: list[str] = Field(default_factory=list)


class ActionType(str, Enum):
    COMPLETE = "complete"
    DEFER = "defer"
    DELEGATE = "delegate"
    UPDATE = "update"


class TaskAction(BaseModel):
    """High-level action requested by the user.

    ``type`` is kept as a plain string so that unsupported values reach the
    executor and fail there with :class:`UnknownActionError`.
    """

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class ChangeEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """Normalized change notification from the remote store."""

    event_type: ChangeEventType
    record: Optional[Task] = None
    old_id: Optional[str] = None

    @property
    def task_id(self) -> Optional[str]:
        if self.record is not None:
            return self.record.id
        return self.old_id

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ChangeEvent":
        """Build an event from ``{eventType, new, old}``.

        Raises ``ValueError`` (or a pydantic ``ValidationError``) when the
        payload is malformed.
        """
        raw_type = payload.get("eventType") or payload.get("event_type") or ""
        event_type = ChangeEventType(str(raw_type).lower())

        if event_type is ChangeEventType.DELETE:
            old = payload.get("old") or {}
            old_id = old.get("id") if isinstance(old, Mapping) else None
            if not old_id:
                raise ValueError("delete event without an old record id")
            return cls(event_type=event_type, old_id=str(old_id))

        new = payload.get("new")
        if not isinstance(new, Mapping) or not new:
            raise ValueError(f"{event_type.value} event without a new record")
        return cls(event_type=event_type, record=Task.model_validate(new))


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class QueuedActionState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


class OfflineQueuedAction(BaseModel):
    """A user mutation waiting to be delivered to the remote store."""

    correlation_id: str
    kind: MutationKind
    label: str
    target_task_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime.datetime = Field(default_factory=utc_now)
    retries: int = 0
    state: QueuedActionState = QueuedActionState.PENDING
    last_error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state is QueuedActionState.FAILED


class TimerSession(BaseModel):
    """Time tracked against one task.

    ``resumed_at`` is set while the clock runs and cleared while paused;
    earlier runs are banked in ``accumulated_seconds``.
    """

    id: str
    task_id: str
    started_at: datetime.datetime
    target_minutes: Optional[int] = Field(default=None, ge=1)
    accumulated_seconds: float = Field(default=0.0, ge=0)
    resumed_at: Optional[datetime.datetime] = None
    ended_at: Optional[datetime.datetime] = None
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("started_at", "resumed_at", "ended_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @property
    def is_paused(self) -> bool:
        return self.ended_at is None and self.resumed_at is None

    def elapsed_seconds(self, now: datetime.datetime) -> float:
        if self.resumed_at is None:
            return self.accumulated_seconds
        running = (now - self.resumed_at).total_seconds()
        return self.accumulated_seconds + max(0.0, running)


@dataclass(slots=True)
class FlushReport:
    """Outcome of one pass over the offline queue."""

    confirmed: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.confirmed) + len(self.retried) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.retried and not self.failed


__all__ = [
    "ActionType",
    "ChangeEvent",
    "ChangeEventType",
    "DURATION_MINUTES",
    "EnergyLevel",
    "EngagementContext",
    "FlushReport",
    "Location",
    "MutationKind",
    "OfflineQueuedAction",
    "Project",
    "ProjectInput",
    "ProjectStatus",
    "QueuedActionState",
    "Task",
    "TaskAction",
    "TaskContext",
    "TaskDuration",
    "TaskFilter",
    "TaskInput",
    "TaskPatch",
    "TaskStatus",
    "TaskSuggestion",
    "TimerSession",
]
