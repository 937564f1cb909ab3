"""Task Scheduler: admission queue and lifecycle bookkeeping for tasks.

The scheduler knows nothing about devices or how tasks are executed. It keeps
three buckets (pending, running, terminal) behind one reader/writer lock and
moves entries between them:

    PENDING → RUNNING → COMPLETED | FAILED
    PENDING | RUNNING → CANCELED

Pending tasks are ordered by descending priority; equal priorities keep
admission order (FIFO). The queue is a binary heap keyed by
``(-priority, admission sequence)``, so insertion and extraction are O(log n).
"""

import heapq
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from fleetcore.concurrency import ReadWriteLock
from fleetcore.errors import (
    DuplicateTaskError,
    InvalidTransitionError,
    TaskNotFoundError,
    TaskValidationError,
)
from fleetcore.log import get_logger
from fleetcore.models.task import DeviceOutcome, Task, TaskEntry, TaskState, utcnow

logger = get_logger(__name__)


@dataclass(order=True)
class _PendingSlot:
    """Heap key for a pending task. Only (neg_priority, sequence) take part in ordering."""
    neg_priority: int
    sequence: int
    task_id: str = field(compare=False)


class Scheduler:
    """Priority admission queue plus the lifecycle record of every task."""

    def __init__(
        self,
        max_retained: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            max_retained: Keep at most this many terminal entries; the oldest are
                          evicted first. None keeps every entry forever.
            clock: Source of timestamps for started_at/ended_at.
        """
        if max_retained is not None and max_retained < 0:
            raise ValueError("max_retained must be >= 0")
        self.max_retained = max_retained
        self._clock = clock
        self._lock = ReadWriteLock()

        self._entries: dict[str, TaskEntry] = {}
        self._heap: list[_PendingSlot] = []
        self._pending: dict[str, _PendingSlot] = {}
        # Insertion-ordered: start order and completion order respectively
        self._running: dict[str, None] = {}
        self._terminal: dict[str, None] = {}
        self._sequence = itertools.count()

    # ── Admission ─────────────────────────────────────────────────────

    def schedule(self, task: Task) -> TaskEntry:
        """Admit a task into the pending queue."""
        if not task.device_ids:
            raise TaskValidationError(f"task {task.id} has no target devices")

        with self._lock.write():
            if task.id in self._entries:
                raise DuplicateTaskError(task.id)

            entry = TaskEntry(task=task.model_copy(deep=True), state=TaskState.PENDING)
            slot = _PendingSlot(-task.priority, next(self._sequence), task.id)
            self._entries[task.id] = entry
            self._pending[task.id] = slot
            heapq.heappush(self._heap, slot)
            snapshot = entry.snapshot()

        logger.info("Scheduled %r", task)
        return snapshot

    # ── Transitions ───────────────────────────────────────────────────

    def start_task(self, task_id: str) -> TaskEntry:
        """PENDING → RUNNING, stamping started_at."""
        with self._lock.write():
            entry = self._require(task_id)
            if entry.state != TaskState.PENDING:
                raise InvalidTransitionError(task_id, entry.state.value, "start")
            del self._pending[task_id]
            self._mark_running(entry)
            self._maybe_compact()
            snapshot = entry.snapshot()

        logger.debug("Started task %s", task_id)
        return snapshot

    def start_next(self) -> Optional[TaskEntry]:
        """Start the pending task that is first in admission order, if any."""
        with self._lock.write():
            while self._heap:
                slot = heapq.heappop(self._heap)
                if self._pending.get(slot.task_id) is not slot:
                    continue  # stale: started or canceled since it was pushed
                del self._pending[slot.task_id]
                entry = self._entries[slot.task_id]
                self._mark_running(entry)
                snapshot = entry.snapshot()
                break
            else:
                return None

        logger.debug("Started task %s (next in queue)", snapshot.id)
        return snapshot

    def complete_task(
        self,
        task_id: str,
        error: Optional[BaseException] = None,
        outcomes: Optional[Iterable[DeviceOutcome]] = None,
    ) -> TaskEntry:
        """RUNNING → COMPLETED (error is None) or FAILED (error recorded)."""
        with self._lock.write():
            entry = self._require(task_id)
            if entry.state != TaskState.RUNNING:
                raise InvalidTransitionError(task_id, entry.state.value, "complete")
            del self._running[task_id]
            if outcomes is not None:
                entry.outcomes = list(outcomes)
            entry.error = error
            state = TaskState.COMPLETED if error is None else TaskState.FAILED
            self._mark_terminal(entry, state)
            snapshot = entry.snapshot()

        if error is None:
            logger.info("Task %s completed", task_id)
        else:
            logger.info("Task %s failed: %s", task_id, error)
        return snapshot

    def cancel(self, task_id: str) -> TaskEntry:
        """PENDING | RUNNING → CANCELED.

        Only the scheduler's record changes; an operation already issued to a
        device is not interrupted.
        """
        with self._lock.write():
            entry = self._require(task_id)
            if entry.state == TaskState.PENDING:
                del self._pending[task_id]
                self._maybe_compact()
            elif entry.state == TaskState.RUNNING:
                del self._running[task_id]
            else:
                raise InvalidTransitionError(task_id, entry.state.value, "cancel")
            self._mark_terminal(entry, TaskState.CANCELED)
            snapshot = entry.snapshot()

        logger.info("Task %s canceled", task_id)
        return snapshot

    def record_outcomes(self, task_id: str, outcomes: Iterable[DeviceOutcome]) -> TaskEntry:
        """Attach per-device outcomes to a task canceled while it was executing."""
        with self._lock.write():
            entry = self._require(task_id)
            if entry.state != TaskState.CANCELED:
                raise InvalidTransitionError(task_id, entry.state.value, "record outcomes")
            entry.outcomes = list(outcomes)
            snapshot = entry.snapshot()

        logger.debug("Recorded %d outcome(s) for canceled task %s", len(snapshot.outcomes), task_id)
        return snapshot

    # ── Queries ───────────────────────────────────────────────────────

    def get_task(self, task_id: str) -> TaskEntry:
        with self._lock.read():
            return self._require(task_id).snapshot()

    def list_tasks(self, state: Optional[TaskState] = None) -> list[TaskEntry]:
        """Snapshot of every known task.

        Pending tasks come first in admission order, then running tasks in the
        order they started, then terminal tasks in the order they finished.
        """
        with self._lock.read():
            ordered_ids = [slot.task_id for slot in sorted(self._pending.values())]
            ordered_ids.extend(self._running)
            ordered_ids.extend(self._terminal)
            entries = [self._entries[task_id].snapshot() for task_id in ordered_ids]

        if state is not None:
            entries = [e for e in entries if e.state == state]
        return entries

    @property
    def pending_count(self) -> int:
        with self._lock.read():
            return len(self._pending)

    @property
    def running_count(self) -> int:
        with self._lock.read():
            return len(self._running)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    # ── Internals (caller holds the write lock) ───────────────────────

    def _require(self, task_id: str) -> TaskEntry:
        entry = self._entries.get(task_id)
        if entry is None:
            raise TaskNotFoundError(task_id)
        return entry

    def _mark_running(self, entry: TaskEntry) -> None:
        entry.state = TaskState.RUNNING
        entry.started_at = self._clock()
        self._running[entry.id] = None

    def _mark_terminal(self, entry: TaskEntry, state: TaskState) -> None:
        entry.state = state
        entry.ended_at = self._clock()
        self._terminal[entry.id] = None
        self._evict()

    def _evict(self) -> None:
        """Drop the oldest terminal entries beyond max_retained."""
        if self.max_retained is None:
            return
        while len(self._terminal) > self.max_retained:
            oldest = next(iter(self._terminal))
            del self._terminal[oldest]
            del self._entries[oldest]
            logger.debug("Evicted terminal task %s", oldest)

    def _maybe_compact(self) -> None:
        """Rebuild the heap once stale slots outnumber live ones."""
        if len(self._heap) > 2 * len(self._pending) + 16:
            self._heap = list(self._pending.values())
            heapq.heapify(self._heap)
