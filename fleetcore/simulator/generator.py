"""Scenario generator: creates reproducible device/task scenarios for demos and tests."""

import random

from fleetcore.models.device import DeviceMetrics, DeviceState, PhysicalLocation, ResourceType
from fleetcore.models.operation import (
    CommandOperation,
    CoolingModeOperation,
    FanSpeedOperation,
    Operation,
    PowerCycleOperation,
    ThermalPolicyOperation,
    ThermalProfileOperation,
)
from fleetcore.models.task import Task


class ScenarioGenerator:
    """Generates deterministic device/task scenarios using a seeded RNG."""

    def __init__(self, seed: int = 42):
        self.rng = random.Random(seed)
        self._task_counter = 0
        self._device_counter = 0

    def generate_devices(
        self,
        num_devices: int = 8,
        devices_per_rack: int = 4,
        zones: list[str] | None = None,
    ) -> list[DeviceState]:
        """Generate devices packed into racks, racks spread across zones."""
        if zones is None:
            zones = ["zone-a", "zone-b"]

        devices: list[DeviceState] = []

        for i in range(num_devices):
            device_id = f"edge-{self._device_counter:03d}"
            self._device_counter += 1

            rack_index = i // devices_per_rack
            location = PhysicalLocation(
                rack=f"rack-{rack_index:02d}",
                position=i % devices_per_rack,
                zone=zones[rack_index % len(zones)],
            )
            resources = {
                ResourceType.CPU: float(self.rng.choice([4, 8, 16])),
                ResourceType.MEMORY: float(self.rng.choice([8, 16, 32])),
                ResourceType.POWER: round(self.rng.uniform(300.0, 600.0), 0),
            }
            metrics = DeviceMetrics(
                temperature=round(self.rng.uniform(30.0, 60.0), 1),
                power_usage=round(self.rng.uniform(100.0, 400.0), 1),
                cpu_load=round(self.rng.uniform(0.0, 80.0), 1),
                memory_usage=round(self.rng.uniform(10.0, 70.0), 1),
            )

            devices.append(DeviceState(
                id=device_id,
                status="active",
                resources=resources,
                location=location,
                metrics=metrics,
            ))

        return devices

    def generate_tasks(
        self,
        device_ids: list[str],
        num_tasks: int = 20,
        max_targets: int = 3,
        priority_range: tuple[int, int] = (1, 10),
    ) -> list[Task]:
        """Generate tasks, each targeting 1..max_targets of the given devices."""
        if not device_ids:
            raise ValueError("device_ids must not be empty")

        tasks: list[Task] = []

        for _ in range(num_tasks):
            task_id = f"task-{self._task_counter:04d}"
            self._task_counter += 1

            target_count = self.rng.randint(1, min(max_targets, len(device_ids)))
            targets = self.rng.sample(device_ids, target_count)

            tasks.append(Task(
                id=task_id,
                device_ids=targets,
                operation=self._random_operation(),
                priority=self.rng.randint(*priority_range),
                resources={ResourceType.CPU: float(self.rng.randint(1, 4))},
            ))

        return tasks

    def _random_operation(self) -> Operation:
        choice = self.rng.randrange(6)
        if choice == 0:
            return FanSpeedOperation(speed=self.rng.randrange(1000, 5000, 250))
        if choice == 1:
            return CoolingModeOperation(throttling=self.rng.random() < 0.5)
        if choice == 2:
            return ThermalProfileOperation(
                profile=self.rng.choice(["quiet", "balanced", "performance"])
            )
        if choice == 3:
            warning = round(self.rng.uniform(60.0, 75.0), 1)
            return ThermalPolicyOperation(warning_temp=warning, critical_temp=warning + 10.0)
        if choice == 4:
            return PowerCycleOperation(graceful=self.rng.random() < 0.8)
        return CommandOperation(command=self.rng.choice(["sync_clock", "rotate_logs", "self_test"]))
