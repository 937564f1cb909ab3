from fleetcore.execution.base import ExecutionClient
from fleetcore.execution.simulated import (
    DeviceOperationError,
    ExecutionCall,
    SimulatedExecutionClient,
)

__all__ = ["ExecutionClient", "DeviceOperationError", "ExecutionCall", "SimulatedExecutionClient"]
