"""Entry point for running a simulated fleet through the coordinator.

Usage:
    python scripts/run_fleet.py --devices 8 --tasks 20 --failure-rate 0.05
"""

import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console

from fleetcore.config import build_coordinator, load_settings
from fleetcore.errors import FleetError
from fleetcore.execution.simulated import SimulatedExecutionClient
from fleetcore.log import configure_logging, get_logger
from fleetcore.metrics.collector import MetricsCollector
from fleetcore.models.device import DeviceState
from fleetcore.models.task import Task
from fleetcore.simulator.generator import ScenarioGenerator

console = Console()
logger = get_logger("run_fleet")


def print_scenario_summary(devices: list[DeviceState], tasks: list[Task]) -> None:
    """Print a summary of the generated scenario."""
    console.print("\n[bold cyan]Generated Scenario[/bold cyan]")
    console.print(f"  Devices: {len(devices)}")
    console.print(f"  Tasks:   {len(tasks)}")

    op_counts: dict[str, int] = {}
    for t in tasks:
        op_counts[t.operation.kind] = op_counts.get(t.operation.kind, 0) + 1
    console.print(f"  Operations: {op_counts}")

    multi = sum(1 for t in tasks if len(t.device_ids) > 1)
    console.print(f"  Multi-device tasks: {multi}")

    for d in devices:
        console.print(
            f"  {d.id}: {d.location.zone}/{d.location.rack}#{d.location.position}, "
            f"temp={d.metrics.temperature:.1f}C"
        )
    console.print()


def main():
    parser = argparse.ArgumentParser(
        description="Fleet Coordinator - schedule and execute tasks on a simulated fleet"
    )
    parser.add_argument("--devices", type=int, default=8, help="Number of devices (default: 8)")
    parser.add_argument("--tasks", type=int, default=20, help="Number of tasks (default: 20)")
    parser.add_argument("--max-targets", type=int, default=3, help="Max devices per task (default: 3)")
    parser.add_argument("--config", type=str, default=None, help="YAML settings file")
    parser.add_argument("--failure-rate", type=float, default=None, help="Override simulated failure rate")
    parser.add_argument("--seed", type=int, default=None, help="Override random seed")

    args = parser.parse_args()

    settings = load_settings(args.config)
    overrides = {}
    if args.failure_rate is not None:
        overrides["failure_rate"] = args.failure_rate
    if args.seed is not None:
        overrides["seed"] = args.seed
    if overrides:
        settings = settings.model_validate({**settings.model_dump(), **overrides})

    configure_logging(settings.log_level)
    console.print("[bold]Fleet Coordinator[/bold] - Starting run...\n")

    generator = ScenarioGenerator(seed=settings.seed)
    devices = generator.generate_devices(num_devices=args.devices)
    tasks = generator.generate_tasks(
        [d.id for d in devices], num_tasks=args.tasks, max_targets=args.max_targets,
    )
    print_scenario_summary(devices, tasks)

    client = SimulatedExecutionClient(failure_rate=settings.failure_rate, seed=settings.seed)
    coordinator = build_coordinator(settings, client)

    for device in devices:
        coordinator.state_manager.add_device(device)
    for task in tasks:
        coordinator.scheduler.schedule(task)

    while coordinator.scheduler.pending_count:
        try:
            coordinator.orchestrator.execute_next()
        except FleetError as exc:
            logger.debug("Recorded failure: %s", exc)

    metrics = MetricsCollector()
    metrics.calculate(
        tasks=coordinator.scheduler.list_tasks(),
        devices=coordinator.state_manager.list_devices(),
        client_name=client.name,
    )
    metrics.print_report(console)

    console.print(f"\n[dim]Issued {len(client.calls)} device operations[/dim]")


if __name__ == "__main__":
    main()
