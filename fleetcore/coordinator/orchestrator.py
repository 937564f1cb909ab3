"""Orchestrator: runs scheduled tasks on devices and reconciles the outcome.

Policy: fail fast. Devices are visited in ``task.device_ids`` order and the
first device failure ends the task as FAILED. Devices that already succeeded
are not rolled back and the remaining ones are not attempted. Every device
keeps a DeviceOutcome on the task entry so callers can see exactly how far
execution got.

The orchestrator holds no locks of its own and never calls into the device
layer while holding the scheduler's or the state manager's lock; it only uses
their public operations.
"""

from typing import Optional, Union

from fleetcore.coordinator.scheduler import Scheduler
from fleetcore.coordinator.state import StateManager
from fleetcore.errors import (
    AggregateFailure,
    DeviceNotFoundError,
    ExecutionError,
    InvalidTransitionError,
    TaskCanceledError,
    TaskNotFoundError,
)
from fleetcore.execution.base import ExecutionClient
from fleetcore.log import get_logger
from fleetcore.models.device import DeviceMetrics, DeviceState
from fleetcore.models.task import DeviceOutcome, OutcomeStatus, Task, TaskEntry, TaskState

logger = get_logger(__name__)


class Orchestrator:
    """Executes tasks from a Scheduler through an ExecutionClient."""

    def __init__(
        self,
        scheduler: Scheduler,
        state_manager: StateManager,
        client: ExecutionClient,
        refresh_metrics: bool = True,
    ):
        """
        Args:
            refresh_metrics: Pull telemetry from each device after a successful
                             operation and store it with the device state.
        """
        self.scheduler = scheduler
        self.state_manager = state_manager
        self.client = client
        self.refresh_metrics = refresh_metrics

    def execute_task(self, task: Union[Task, str]) -> TaskEntry:
        """Run an already-scheduled task on all of its devices.

        A PENDING task is started first; a RUNNING one proceeds as is. Returns
        the COMPLETED entry. Raises AggregateFailure after recording the task as
        FAILED, or TaskCanceledError if the task was canceled along the way.
        """
        task_id = task if isinstance(task, str) else task.id
        entry = self.scheduler.get_task(task_id)
        if entry.state == TaskState.PENDING:
            entry = self.scheduler.start_task(task_id)
        elif entry.state != TaskState.RUNNING:
            raise InvalidTransitionError(task_id, entry.state.value, "execute")

        # Execute what was admitted, not whatever copy the caller passed in
        task = entry.task
        logger.info(
            "Executing task %s (%s) on %d device(s) via %s",
            task.id, task.operation.name, len(task.device_ids), self.client.name,
        )

        outcomes: list[DeviceOutcome] = []
        failures: list[ExecutionError] = []
        for index, device_id in enumerate(task.device_ids):
            if self._is_canceled(task.id):
                logger.info("Task %s canceled after %d device(s)", task.id, index)
                outcomes.extend(
                    DeviceOutcome(device_id=remaining, status=OutcomeStatus.SKIPPED)
                    for remaining in task.device_ids[index:]
                )
                self._record_canceled(task.id, outcomes)
                raise TaskCanceledError(task.id)

            try:
                self._run_on_device(task, device_id)
            except ExecutionError as exc:
                logger.warning("Task %s: %s", task.id, exc)
                failures.append(exc)
                outcomes.append(DeviceOutcome(
                    device_id=device_id, status=OutcomeStatus.FAILED, error=str(exc.cause or exc),
                ))
                outcomes.extend(
                    DeviceOutcome(device_id=remaining, status=OutcomeStatus.SKIPPED)
                    for remaining in task.device_ids[index + 1:]
                )
                break

            outcomes.append(DeviceOutcome(device_id=device_id, status=OutcomeStatus.SUCCEEDED))

        error = AggregateFailure(task.id, failures) if failures else None
        try:
            final = self.scheduler.complete_task(task.id, error, outcomes)
        except (InvalidTransitionError, TaskNotFoundError) as exc:
            # Canceled while the last device was running
            logger.info("Task %s canceled before its outcome was recorded", task.id)
            self._record_canceled(task.id, outcomes)
            raise TaskCanceledError(task.id) from (error or exc)

        if error is not None:
            raise error
        return final

    def execute_next(self) -> Optional[TaskEntry]:
        """Start and execute the next pending task. None when the queue is empty."""
        entry = self.scheduler.start_next()
        if entry is None:
            return None
        return self.execute_task(entry.id)

    def refresh_device_metrics(self, device_id: str) -> DeviceState:
        """Pull telemetry for one device and store it with its state."""
        self.state_manager.get_device_state(device_id)
        try:
            metrics = self.client.get_device_metrics(device_id)
        except Exception as exc:
            raise ExecutionError(device_id, "get_device_metrics", exc) from exc
        return self.state_manager.refresh_device(device_id, metrics=metrics)

    # ── Device state pass-throughs ────────────────────────────────────

    def get_device_state(self, device_id: str) -> DeviceState:
        return self.state_manager.get_device_state(device_id)

    def update_device_state(self, state: DeviceState) -> DeviceState:
        return self.state_manager.update_device_state(state)

    def list_devices(self) -> list[DeviceState]:
        return self.state_manager.list_devices()

    # ── Internals ─────────────────────────────────────────────────────

    def _run_on_device(self, task: Task, device_id: str) -> None:
        """Execute on one device and refresh its record. Raises ExecutionError."""
        operation = task.operation
        if device_id not in self.state_manager:
            raise ExecutionError(device_id, operation.name, DeviceNotFoundError(device_id))

        try:
            self.client.execute_operation(device_id, operation)
        except Exception as exc:
            raise ExecutionError(device_id, operation.name, exc) from exc

        metrics: Optional[DeviceMetrics] = None
        if self.refresh_metrics:
            try:
                metrics = self.client.get_device_metrics(device_id)
            except Exception as exc:
                raise ExecutionError(device_id, operation.name, exc) from exc

        try:
            self.state_manager.refresh_device(device_id, metrics=metrics)
        except DeviceNotFoundError as exc:
            # Removed while the operation was in flight
            raise ExecutionError(device_id, operation.name, exc) from exc

    def _record_canceled(self, task_id: str, outcomes: list[DeviceOutcome]) -> None:
        try:
            self.scheduler.record_outcomes(task_id, outcomes)
        except (InvalidTransitionError, TaskNotFoundError) as exc:
            logger.debug("Outcomes for task %s not recorded: %s", task_id, exc)

    def _is_canceled(self, task_id: str) -> bool:
        try:
            return self.scheduler.get_task(task_id).state == TaskState.CANCELED
        except TaskNotFoundError:
            # Evicted, which only happens to terminal entries
            return True
