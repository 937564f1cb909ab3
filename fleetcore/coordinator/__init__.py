from fleetcore.coordinator.scheduler import Scheduler
from fleetcore.coordinator.state import StateManager
from fleetcore.coordinator.orchestrator import Orchestrator

__all__ = ["Scheduler", "StateManager", "Orchestrator"]
