"""Task model: an operation requested against one or more devices."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetcore.models.device import ResourceType
from fleetcore.models.operation import Operation, coerce_operation


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskState(str, Enum):
    """Lifecycle states: PENDING → RUNNING → COMPLETED | FAILED, CANCELED from either"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELED})


class Task(BaseModel):
    """Immutable request: run ``operation`` on every device in ``device_ids``."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique task identifier")
    device_ids: tuple[str, ...] = Field(
        min_length=1, description="Target devices, in execution order (duplicates allowed)"
    )
    operation: Operation = Field(description="What to do on each device")
    priority: int = Field(default=0, description="Higher runs sooner")
    resources: dict[ResourceType, float] = Field(
        default_factory=dict, description="Requested resources (advisory)"
    )
    deadline: Optional[datetime] = Field(default=None, description="Advisory completion deadline")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("operation", mode="before")
    @classmethod
    def _coerce_operation(cls, value):
        return coerce_operation(value)

    def __repr__(self) -> str:
        return (
            f"Task(id={self.id!r}, op={self.operation.name!r}, "
            f"priority={self.priority}, devices={len(self.device_ids)})"
        )


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeviceOutcome(BaseModel):
    """What happened on one target device during execution."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    status: OutcomeStatus
    error: Optional[str] = None
    finished_at: datetime = Field(default_factory=utcnow)


class TaskEntry(BaseModel):
    """Mutable lifecycle record wrapped around a Task."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    task: Task
    state: TaskState = TaskState.PENDING
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error: Optional[BaseException] = Field(default=None, description="Set only when FAILED")
    outcomes: list[DeviceOutcome] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def duration(self) -> Optional[float]:
        """Seconds between start and end, if the task ran to a terminal state."""
        if self.started_at is not None and self.ended_at is not None:
            return (self.ended_at - self.started_at).total_seconds()
        return None

    def snapshot(self) -> "TaskEntry":
        """Copy safe to hand out, with the task (and its resources) deep-copied."""
        return self.model_copy(
            update={"task": self.task.model_copy(deep=True), "outcomes": list(self.outcomes)}
        )

    def __repr__(self) -> str:
        return f"TaskEntry(id={self.task.id!r}, state={self.state.value})"
