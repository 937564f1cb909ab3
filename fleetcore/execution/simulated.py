"""Simulated execution client: stands in for the device layer in tests and demos.

Models the failures a real fleet shows:
- Random: transient faults at a fixed per-call probability (flaky links, timeouts)
- Forced: a specific device that keeps failing until healed (dead PSU, bad firmware)
- Telemetry: the operation lands but the metrics pull afterwards fails
"""

import random
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from fleetcore.execution.base import ExecutionClient
from fleetcore.models.device import DeviceMetrics
from fleetcore.models.operation import Operation


class DeviceOperationError(RuntimeError):
    """Raised by the simulated device layer when an operation or metrics pull fails."""

    def __init__(self, device_id: str, message: str):
        self.device_id = device_id
        super().__init__(message)


@dataclass(frozen=True)
class ExecutionCall:
    """One execute_operation call as seen by the device layer."""
    device_id: str
    operation: Operation
    succeeded: bool


class SimulatedExecutionClient(ExecutionClient):
    """In-process device layer with seeded, reproducible failure injection.

    Usage:
        client = SimulatedExecutionClient(failure_rate=0.05, seed=42)
        client.fail_device("edge-007", "PSU fault")
        client.execute_operation("edge-007", op)   # raises DeviceOperationError
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        seed: int = 42,
        before_execute: Optional[Callable[[str, Operation], None]] = None,
    ):
        """
        Args:
            failure_rate: Probability that any single operation fails at random.
            seed: RNG seed for reproducibility.
            before_execute: Hook called with (device_id, operation) before each
                            operation is attempted.
        """
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.failure_rate = failure_rate
        self.before_execute = before_execute
        self.rng = random.Random(seed)

        self.calls: list[ExecutionCall] = []
        self.applied: dict[str, list[Operation]] = {}
        self._forced_failures: dict[str, str] = {}
        self._metrics_failures: dict[str, str] = {}
        self._metrics: dict[str, DeviceMetrics] = {}
        self._lock = threading.Lock()

    # ── Failure control ───────────────────────────────────────────────

    def fail_device(self, device_id: str, message: str = "device unreachable") -> None:
        """Make every operation on this device fail until heal_device()."""
        with self._lock:
            self._forced_failures[device_id] = message

    def fail_metrics(self, device_id: str, message: str = "telemetry unavailable") -> None:
        """Make metrics pulls for this device fail until heal_device()."""
        with self._lock:
            self._metrics_failures[device_id] = message

    def heal_device(self, device_id: str) -> None:
        with self._lock:
            self._forced_failures.pop(device_id, None)
            self._metrics_failures.pop(device_id, None)

    def set_metrics(self, device_id: str, metrics: DeviceMetrics) -> None:
        """Pin the readings returned for a device instead of synthetic ones."""
        with self._lock:
            self._metrics[device_id] = metrics

    # ── ExecutionClient ───────────────────────────────────────────────

    def execute_operation(self, device_id: str, operation: Operation) -> None:
        if self.before_execute is not None:
            self.before_execute(device_id, operation)

        with self._lock:
            message = self._forced_failures.get(device_id)
            if message is None and self.rng.random() < self.failure_rate:
                message = "transient fault"

            succeeded = message is None
            self.calls.append(ExecutionCall(device_id, operation, succeeded))
            if succeeded:
                self.applied.setdefault(device_id, []).append(operation)

        if message is not None:
            raise DeviceOperationError(device_id, message)

    def get_device_metrics(self, device_id: str) -> DeviceMetrics:
        with self._lock:
            message = self._metrics_failures.get(device_id)
            if message is not None:
                raise DeviceOperationError(device_id, message)
            if device_id in self._metrics:
                return self._metrics[device_id].model_copy()

            return DeviceMetrics(
                temperature=round(self.rng.uniform(35.0, 70.0), 1),
                power_usage=round(self.rng.uniform(150.0, 450.0), 1),
                cpu_load=round(self.rng.uniform(5.0, 95.0), 1),
                memory_usage=round(self.rng.uniform(10.0, 90.0), 1),
            )

    def calls_for(self, device_id: str) -> list[ExecutionCall]:
        with self._lock:
            return [c for c in self.calls if c.device_id == device_id]
