from fleetcore.simulator.generator import ScenarioGenerator

__all__ = ["ScenarioGenerator"]
