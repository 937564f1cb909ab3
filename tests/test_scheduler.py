"""
Tests for the Task Scheduler.

These tests verify:
    1. Scheduled tasks start out PENDING
    2. Pending order is priority-descending, FIFO among equal priorities
    3. Lifecycle transitions stamp timestamps and move between buckets
    4. Unknown IDs raise TaskNotFoundError, wrong states InvalidTransitionError
    5. Duplicate IDs and empty targets are rejected
    6. Bounded retention evicts the oldest terminal entries
    7. Concurrent scheduling loses no writes
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from fleetcore.coordinator.scheduler import Scheduler
from fleetcore.errors import (
    DuplicateTaskError,
    InvalidTransitionError,
    NotFoundError,
    TaskNotFoundError,
    TaskValidationError,
)
from fleetcore.models.device import ResourceType
from fleetcore.models.task import DeviceOutcome, OutcomeStatus, Task, TaskState


class StepClock:
    """Deterministic clock: each call returns one second later than the last."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _make_task(id: str, priority: int = 0, devices: list[str] | None = None) -> Task:
    """Helper to create a task with sensible defaults."""
    return Task(id=id, device_ids=devices or ["edge-1"], operation="noop", priority=priority)


class TestSchedule:
    """Admission into the pending queue."""

    def setup_method(self):
        self.scheduler = Scheduler()

    def test_scheduled_task_is_pending(self):
        entry = self.scheduler.schedule(_make_task("t1"))
        assert entry.state == TaskState.PENDING
        assert self.scheduler.get_task("t1").state == TaskState.PENDING
        assert self.scheduler.pending_count == 1

    def test_priority_order(self):
        """Priorities [1, 5, 3] come out as [5, 3, 1]."""
        for task_id, priority in [("p1", 1), ("p5", 5), ("p3", 3)]:
            self.scheduler.schedule(_make_task(task_id, priority))

        order = [e.id for e in self.scheduler.list_tasks()]
        assert order == ["p5", "p3", "p1"]

    def test_equal_priority_keeps_admission_order(self):
        for task_id in ["a", "b", "c", "d"]:
            self.scheduler.schedule(_make_task(task_id, priority=5))
        self.scheduler.schedule(_make_task("urgent", priority=9))

        order = [e.id for e in self.scheduler.list_tasks()]
        assert order == ["urgent", "a", "b", "c", "d"]

    def test_duplicate_id_rejected(self):
        self.scheduler.schedule(_make_task("t1"))
        with pytest.raises(DuplicateTaskError):
            self.scheduler.schedule(_make_task("t1", priority=9))
        assert len(self.scheduler) == 1

    def test_duplicate_of_terminal_task_rejected(self):
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.cancel("t1")
        with pytest.raises(DuplicateTaskError):
            self.scheduler.schedule(_make_task("t1"))

    def test_empty_device_ids_rejected(self):
        """Tasks built without validation still can't be admitted without targets."""
        task = Task.model_construct(id="empty", device_ids=(), operation="noop", priority=0)
        with pytest.raises(TaskValidationError):
            self.scheduler.schedule(task)
        assert len(self.scheduler) == 0


class TestLifecycle:
    """Transitions between pending, running and terminal."""

    def setup_method(self):
        self.clock = StepClock()
        self.scheduler = Scheduler(clock=self.clock)

    def test_start_task(self):
        self.scheduler.schedule(_make_task("t1"))
        entry = self.scheduler.start_task("t1")

        assert entry.state == TaskState.RUNNING
        assert entry.started_at is not None
        assert self.scheduler.pending_count == 0
        assert self.scheduler.running_count == 1
        assert [e.id for e in self.scheduler.list_tasks(TaskState.PENDING)] == []
        assert [e.id for e in self.scheduler.list_tasks(TaskState.RUNNING)] == ["t1"]

    def test_complete_success(self):
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        entry = self.scheduler.complete_task("t1")

        assert entry.state == TaskState.COMPLETED
        assert entry.error is None
        assert entry.ended_at > entry.started_at
        assert self.scheduler.running_count == 0

    def test_complete_failure_records_error(self):
        err = RuntimeError("device on fire")
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        self.scheduler.complete_task("t1", err)

        entry = self.scheduler.get_task("t1")
        assert entry.state == TaskState.FAILED
        assert entry.error is err

    def test_complete_records_outcomes(self):
        outcomes = [DeviceOutcome(device_id="edge-1", status=OutcomeStatus.SUCCEEDED)]
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        self.scheduler.complete_task("t1", outcomes=outcomes)

        assert self.scheduler.get_task("t1").outcomes == outcomes

    def test_cancel_pending(self):
        self.scheduler.schedule(_make_task("t1"))
        entry = self.scheduler.cancel("t1")

        assert entry.state == TaskState.CANCELED
        assert entry.started_at is None
        assert entry.ended_at is not None
        assert self.scheduler.pending_count == 0

    def test_cancel_running(self):
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        entry = self.scheduler.cancel("t1")

        assert entry.state == TaskState.CANCELED
        assert self.scheduler.running_count == 0

    def test_record_outcomes_on_canceled(self):
        outcomes = [
            DeviceOutcome(device_id="edge-1", status=OutcomeStatus.SUCCEEDED),
            DeviceOutcome(device_id="edge-2", status=OutcomeStatus.SKIPPED),
        ]
        self.scheduler.schedule(_make_task("t1", devices=["edge-1", "edge-2"]))
        self.scheduler.start_task("t1")
        self.scheduler.cancel("t1")
        entry = self.scheduler.record_outcomes("t1", outcomes)

        assert entry.state == TaskState.CANCELED
        assert self.scheduler.get_task("t1").outcomes == outcomes

    def test_record_outcomes_requires_canceled(self):
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        with pytest.raises(InvalidTransitionError):
            self.scheduler.record_outcomes("t1", [])
        with pytest.raises(TaskNotFoundError):
            self.scheduler.record_outcomes("ghost", [])

    def test_terminal_states_are_final(self):
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        self.scheduler.complete_task("t1")

        with pytest.raises(InvalidTransitionError):
            self.scheduler.cancel("t1")
        with pytest.raises(InvalidTransitionError):
            self.scheduler.start_task("t1")
        with pytest.raises(InvalidTransitionError):
            self.scheduler.complete_task("t1")
        assert self.scheduler.get_task("t1").state == TaskState.COMPLETED

    def test_complete_pending_rejected(self):
        self.scheduler.schedule(_make_task("t1"))
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.scheduler.complete_task("t1")
        assert exc_info.value.current == "pending"

    def test_start_running_rejected(self):
        self.scheduler.schedule(_make_task("t1"))
        self.scheduler.start_task("t1")
        with pytest.raises(InvalidTransitionError):
            self.scheduler.start_task("t1")

    @pytest.mark.parametrize("method", ["start_task", "complete_task", "cancel", "get_task"])
    def test_unknown_id_raises_not_found(self, method):
        with pytest.raises(TaskNotFoundError) as exc_info:
            getattr(self.scheduler, method)("ghost")
        assert exc_info.value.object_id == "ghost"
        assert isinstance(exc_info.value, NotFoundError)
        assert isinstance(exc_info.value, KeyError)


class TestStartNext:
    """Pulling the next task off the queue."""

    def setup_method(self):
        self.scheduler = Scheduler()

    def test_empty_queue(self):
        assert self.scheduler.start_next() is None

    def test_follows_admission_order(self):
        self.scheduler.schedule(_make_task("low", 1))
        self.scheduler.schedule(_make_task("high-a", 5))
        self.scheduler.schedule(_make_task("high-b", 5))

        started = [self.scheduler.start_next().id for _ in range(3)]
        assert started == ["high-a", "high-b", "low"]
        assert self.scheduler.start_next() is None

    def test_skips_canceled_and_started(self):
        self.scheduler.schedule(_make_task("a", 9))
        self.scheduler.schedule(_make_task("b", 8))
        self.scheduler.schedule(_make_task("c", 7))
        self.scheduler.cancel("a")
        self.scheduler.start_task("b")

        entry = self.scheduler.start_next()
        assert entry.id == "c"
        assert entry.state == TaskState.RUNNING
        assert self.scheduler.start_next() is None

    def test_many_removals_keep_order(self):
        """Heap compaction after many cancellations keeps the queue consistent."""
        for i in range(100):
            self.scheduler.schedule(_make_task(f"t{i:03d}", priority=i % 4))
        for i in range(0, 100, 2):
            self.scheduler.cancel(f"t{i:03d}")

        pending = [e.id for e in self.scheduler.list_tasks(TaskState.PENDING)]
        started = []
        while (entry := self.scheduler.start_next()) is not None:
            started.append(entry.id)
        assert started == pending
        assert len(started) == 50


class TestQueries:
    """Read-only lookups."""

    def setup_method(self):
        self.scheduler = Scheduler(clock=StepClock())

    def test_list_spans_all_buckets(self):
        for task_id in ["done", "run", "wait"]:
            self.scheduler.schedule(_make_task(task_id))
        self.scheduler.start_task("done")
        self.scheduler.complete_task("done")
        self.scheduler.start_task("run")

        entries = self.scheduler.list_tasks()
        assert [(e.id, e.state) for e in entries] == [
            ("wait", TaskState.PENDING),
            ("run", TaskState.RUNNING),
            ("done", TaskState.COMPLETED),
        ]

    def test_list_is_snapshot(self):
        self.scheduler.schedule(_make_task("t1"))
        snapshot = self.scheduler.list_tasks()
        snapshot[0].state = TaskState.FAILED
        self.scheduler.start_task("t1")

        assert snapshot[0].state == TaskState.FAILED
        assert self.scheduler.get_task("t1").state == TaskState.RUNNING

    def test_admitted_task_isolated_from_mutation(self):
        task = Task(
            id="t", device_ids=["edge-1"], operation="noop",
            resources={ResourceType.CPU: 1.0},
        )
        self.scheduler.schedule(task)

        self.scheduler.get_task("t").task.resources[ResourceType.CPU] = 99.0
        self.scheduler.list_tasks()[0].task.resources[ResourceType.NETWORK] = 3.0
        task.resources[ResourceType.MEMORY] = 5.0

        assert self.scheduler.get_task("t").task.resources == {ResourceType.CPU: 1.0}

    def test_reads_are_idempotent(self):
        self.scheduler.schedule(_make_task("t1", 2))
        self.scheduler.schedule(_make_task("t2", 1))
        self.scheduler.start_task("t1")

        assert self.scheduler.get_task("t1") == self.scheduler.get_task("t1")
        assert self.scheduler.list_tasks() == self.scheduler.list_tasks()


class TestRetention:
    """Bounded retention of terminal entries."""

    def test_unbounded_by_default(self):
        scheduler = Scheduler()
        for i in range(50):
            scheduler.schedule(_make_task(f"t{i}"))
            scheduler.cancel(f"t{i}")
        assert len(scheduler) == 50

    def test_oldest_terminal_evicted(self):
        scheduler = Scheduler(max_retained=2)
        for task_id in ["a", "b", "c"]:
            scheduler.schedule(_make_task(task_id))
        scheduler.schedule(_make_task("still-pending"))
        for task_id in ["a", "b", "c"]:
            scheduler.cancel(task_id)

        with pytest.raises(TaskNotFoundError):
            scheduler.get_task("a")
        assert scheduler.get_task("b").state == TaskState.CANCELED
        assert scheduler.get_task("c").state == TaskState.CANCELED
        assert scheduler.get_task("still-pending").state == TaskState.PENDING

    def test_evicted_id_can_be_reused(self):
        scheduler = Scheduler(max_retained=0)
        scheduler.schedule(_make_task("t1"))
        scheduler.cancel("t1")
        scheduler.schedule(_make_task("t1"))
        assert scheduler.get_task("t1").state == TaskState.PENDING

    def test_negative_retention_rejected(self):
        with pytest.raises(ValueError):
            Scheduler(max_retained=-1)


class TestConcurrency:
    """Thread-safety of admission and transitions."""

    def test_concurrent_schedule_loses_nothing(self):
        scheduler = Scheduler()
        n_threads, per_thread = 8, 50

        def worker(thread_index: int) -> None:
            for i in range(per_thread):
                scheduler.schedule(_make_task(f"t{thread_index}-{i}", priority=i % 5))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = scheduler.list_tasks()
        assert len(entries) == n_threads * per_thread
        assert len({e.id for e in entries}) == n_threads * per_thread
        priorities = [e.task.priority for e in entries]
        assert priorities == sorted(priorities, reverse=True)

    def test_concurrent_start_next_starts_each_once(self):
        scheduler = Scheduler()
        for i in range(200):
            scheduler.schedule(_make_task(f"t{i}", priority=i % 7))

        started: list[str] = []
        started_lock = threading.Lock()

        def worker() -> None:
            while (entry := scheduler.start_next()) is not None:
                with started_lock:
                    started.append(entry.id)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(started) == sorted(f"t{i}" for i in range(200))
        assert scheduler.running_count == 200
