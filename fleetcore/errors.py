"""Exception hierarchy for the fleet coordinator.

Every component raises; nothing here is fatal to the process. A task that
fails on a device ends up in the FAILED state with an AggregateFailure
recorded against it.
"""

from typing import Optional


class FleetError(Exception):
    """Base class for all coordinator errors."""


# ── Lookup ────────────────────────────────────────────────────────────

class NotFoundError(FleetError, KeyError):
    """An ID is unknown to the component that was asked about it."""

    kind = "object"

    def __init__(self, object_id: str):
        self.object_id = object_id
        super().__init__(object_id)

    def __str__(self) -> str:
        return f"{self.kind} not found: {self.object_id}"


class TaskNotFoundError(NotFoundError):
    kind = "task"


class DeviceNotFoundError(NotFoundError):
    kind = "device"


# ── Admission / lifecycle ─────────────────────────────────────────────

class TaskValidationError(FleetError, ValueError):
    """Structurally invalid task, rejected at admission."""


class DuplicateTaskError(TaskValidationError):
    """A task with the same ID is already known to the scheduler."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"task already scheduled: {task_id}")


class InvalidTransitionError(FleetError):
    """The task exists but its current state does not allow the transition."""

    def __init__(self, task_id: str, current: str, action: str):
        self.task_id = task_id
        self.current = current
        self.action = action
        super().__init__(f"cannot {action} task {task_id} in state {current}")


# ── Execution ─────────────────────────────────────────────────────────

class ExecutionError(FleetError):
    """One device-level failure, annotated with the offending device."""

    def __init__(self, device_id: str, operation: str, cause: Optional[BaseException] = None):
        self.device_id = device_id
        self.operation = operation
        self.cause = cause
        message = f"operation {operation!r} failed on device {device_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class AggregateFailure(FleetError):
    """All device failures of one task, recorded as the task's error."""

    def __init__(self, task_id: str, failures: list[ExecutionError]):
        if not failures:
            raise ValueError("AggregateFailure needs at least one ExecutionError")
        self.task_id = task_id
        self.failures = list(failures)
        details = "; ".join(str(f) for f in self.failures)
        super().__init__(
            f"task {task_id} failed on {len(self.failures)} device(s): {details}"
        )

    @property
    def device_ids(self) -> list[str]:
        return [f.device_id for f in self.failures]


class TaskCanceledError(FleetError):
    """Execution stopped because the task was canceled mid-flight."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"task {task_id} was canceled during execution")
