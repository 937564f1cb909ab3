"""Metrics Collector: summarizes task outcomes across the fleet."""

from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fleetcore.models.device import DeviceState
from fleetcore.models.task import OutcomeStatus, TaskEntry, TaskState


@dataclass
class FleetReport:
    """Container for all computed metrics."""
    client_name: str = ""
    total_tasks: int = 0
    tasks_pending: int = 0
    tasks_running: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_canceled: int = 0
    failure_rate: float = 0.0
    avg_duration: float = 0.0
    max_duration: float = 0.0
    total_devices: int = 0
    device_successes: dict[str, int] = field(default_factory=dict)
    device_failures: dict[str, int] = field(default_factory=dict)
    device_status: dict[str, str] = field(default_factory=dict)


class MetricsCollector:
    """Computes and reports fleet task metrics."""

    def __init__(self):
        self.report: Optional[FleetReport] = None

    def calculate(
        self,
        tasks: list[TaskEntry],
        devices: list[DeviceState],
        client_name: str = "",
    ) -> FleetReport:
        """Compute all metrics from task entries and device records."""
        by_state = {state: 0 for state in TaskState}
        for entry in tasks:
            by_state[entry.state] += 1

        report = FleetReport(
            client_name=client_name,
            total_tasks=len(tasks),
            tasks_pending=by_state[TaskState.PENDING],
            tasks_running=by_state[TaskState.RUNNING],
            tasks_completed=by_state[TaskState.COMPLETED],
            tasks_failed=by_state[TaskState.FAILED],
            tasks_canceled=by_state[TaskState.CANCELED],
            total_devices=len(devices),
        )

        finished = report.tasks_completed + report.tasks_failed
        if finished > 0:
            report.failure_rate = report.tasks_failed / finished

        durations = [e.duration for e in tasks if e.duration is not None]
        if durations:
            report.avg_duration = sum(durations) / len(durations)
            report.max_duration = max(durations)

        for device in devices:
            report.device_status[device.id] = device.status
            report.device_successes[device.id] = 0
            report.device_failures[device.id] = 0

        # Outcomes may name devices that have since been removed
        for entry in tasks:
            for outcome in entry.outcomes:
                if outcome.status == OutcomeStatus.SUCCEEDED:
                    counts = report.device_successes
                elif outcome.status == OutcomeStatus.FAILED:
                    counts = report.device_failures
                else:
                    continue
                counts[outcome.device_id] = counts.get(outcome.device_id, 0) + 1

        self.report = report
        return report

    def print_report(self, console: Optional[Console] = None) -> None:
        """Print formatted metrics report."""
        console = console or Console()
        if self.report is None:
            console.print("No metrics calculated yet. Run calculate() first.")
            return

        r = self.report
        console.print(Panel(
            f"[bold cyan]Fleet Coordinator - Execution Report[/bold cyan]\n"
            f"Execution client: [bold yellow]{r.client_name}[/bold yellow]",
            border_style="cyan",
        ))

        task_table = Table(title="Task Summary", border_style="blue")
        task_table.add_column("Metric", style="bold")
        task_table.add_column("Value", justify="right")
        task_table.add_row("Total Tasks", str(r.total_tasks))
        task_table.add_row("Completed", f"[green]{r.tasks_completed}[/green]")
        task_table.add_row("Failed", f"[red]{r.tasks_failed}[/red]")
        task_table.add_row("Canceled", f"[magenta]{r.tasks_canceled}[/magenta]")
        task_table.add_row("Pending", f"[yellow]{r.tasks_pending}[/yellow]")
        task_table.add_row("Running", str(r.tasks_running))
        task_table.add_row(
            "Failure Rate",
            f"[{'red' if r.failure_rate > 0.1 else 'green'}]{r.failure_rate:.1%}[/]"
        )
        task_table.add_row("Avg Duration (s)", f"{r.avg_duration:.4f}")
        task_table.add_row("Max Duration (s)", f"{r.max_duration:.4f}")
        console.print(task_table)

        device_ids = sorted(set(r.device_successes) | set(r.device_failures))
        if device_ids:
            device_table = Table(title="Device Outcomes", border_style="magenta")
            device_table.add_column("Device", style="bold")
            device_table.add_column("Status")
            device_table.add_column("Succeeded", justify="right")
            device_table.add_column("Failed", justify="right")
            for device_id in device_ids:
                failed = r.device_failures.get(device_id, 0)
                device_table.add_row(
                    device_id,
                    r.device_status.get(device_id, "[dim]removed[/dim]"),
                    str(r.device_successes.get(device_id, 0)),
                    f"[red]{failed}[/red]" if failed else "0",
                )
            console.print(device_table)
