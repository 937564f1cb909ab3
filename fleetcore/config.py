"""
Configuration for the fleet coordinator.

Settings resolve in three layers, later ones winning:
defaults → optional YAML file → FLEET_* environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field

from fleetcore.coordinator.orchestrator import Orchestrator
from fleetcore.coordinator.scheduler import Scheduler
from fleetcore.coordinator.state import StateManager
from fleetcore.execution.base import ExecutionClient

ENV_PREFIX = "FLEET_"


class CoordinatorSettings(BaseModel):
    """Tunables for the scheduler, orchestrator and simulated device layer."""

    max_retained_tasks: Optional[int] = Field(
        default=None, ge=0, description="Terminal tasks kept for queries (None = unbounded)"
    )
    refresh_metrics: bool = Field(
        default=True, description="Pull telemetry after each successful device operation"
    )
    log_level: str = Field(default="INFO", description="Root logging level")
    failure_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Random failure rate of the simulated client"
    )
    seed: int = Field(default=42, description="RNG seed for simulation and scenario generation")


def _from_env(env: Mapping[str, str]) -> dict:
    values: dict = {}
    for key in CoordinatorSettings.model_fields:
        raw = env.get(f"{ENV_PREFIX}{key.upper()}")
        if raw is None:
            continue
        if key == "max_retained_tasks" and raw.strip().lower() in ("", "none"):
            values[key] = None
        else:
            values[key] = raw
    return values


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CoordinatorSettings:
    """Build settings from defaults, a YAML file (if given) and the environment."""
    values: dict = {}

    if path is not None:
        with open(path, "r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        values.update(loaded)

    values.update(_from_env(os.environ if env is None else env))
    return CoordinatorSettings.model_validate(values)


@dataclass
class Coordinator:
    """The three wired components."""
    scheduler: Scheduler
    state_manager: StateManager
    orchestrator: Orchestrator


def build_coordinator(settings: CoordinatorSettings, client: ExecutionClient) -> Coordinator:
    scheduler = Scheduler(max_retained=settings.max_retained_tasks)
    state_manager = StateManager()
    orchestrator = Orchestrator(
        scheduler, state_manager, client, refresh_metrics=settings.refresh_metrics,
    )
    return Coordinator(scheduler=scheduler, state_manager=state_manager, orchestrator=orchestrator)
