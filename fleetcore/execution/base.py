"""Execution boundary: abstract interface to the device-side layer."""

from abc import ABC, abstractmethod

from fleetcore.models.device import DeviceMetrics
from fleetcore.models.operation import Operation


class ExecutionClient(ABC):
    """Performs operations on real devices. Subclasses talk to hardware or simulate it.

    Implementations raise on failure; the orchestrator attaches the device
    identity and records the error on the task.
    """

    @abstractmethod
    def execute_operation(self, device_id: str, operation: Operation) -> None:
        """Run one operation on one device. May block on I/O."""
        ...

    def get_device_metrics(self, device_id: str) -> DeviceMetrics:
        """Pull current telemetry from a device.

        Optional. Clients without telemetry keep this default and are run with
        ``refresh_metrics=False``; otherwise every successful operation fails
        its device when the pull raises.
        """
        raise NotImplementedError(f"{self.name} does not report device metrics")

    @property
    def name(self) -> str:
        """Human-readable client name for logs and reports."""
        return self.__class__.__name__
