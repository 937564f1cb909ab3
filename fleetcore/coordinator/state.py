"""Device State Manager: concurrency-safe store of DeviceState keyed by device ID."""

from datetime import datetime, timedelta
from typing import Callable, Optional

from fleetcore.concurrency import ReadWriteLock
from fleetcore.errors import DeviceNotFoundError
from fleetcore.log import get_logger
from fleetcore.models.device import DeviceMetrics, DeviceState
from fleetcore.models.task import utcnow

logger = get_logger(__name__)

# Smallest step that keeps last_updated strictly increasing for one device
_TICK = timedelta(microseconds=1)


class StateManager:
    """Authoritative in-memory record of every known device.

    Every write stamps ``last_updated`` itself; the caller's value is ignored.
    Reads and writes hand out copies, never the stored objects.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._lock = ReadWriteLock()
        self._devices: dict[str, DeviceState] = {}

    def add_device(self, state: DeviceState) -> DeviceState:
        """Register a device. Same upsert semantics as update_device_state."""
        return self._store(state)

    def update_device_state(self, state: DeviceState) -> DeviceState:
        """Create or replace a device record."""
        return self._store(state)

    def get_device_state(self, device_id: str) -> DeviceState:
        with self._lock.read():
            state = self._devices.get(device_id)
            if state is None:
                raise DeviceNotFoundError(device_id)
            return state.model_copy(deep=True)

    def list_devices(self) -> list[DeviceState]:
        """Copies of every device record, ordered by device ID."""
        with self._lock.read():
            return [
                self._devices[device_id].model_copy(deep=True)
                for device_id in sorted(self._devices)
            ]

    def remove_device(self, device_id: str) -> bool:
        """Forget a device. Removing an unknown ID is not an error."""
        with self._lock.write():
            removed = self._devices.pop(device_id, None) is not None
        if removed:
            logger.info("Removed device %s", device_id)
        return removed

    def refresh_device(
        self,
        device_id: str,
        metrics: Optional[DeviceMetrics] = None,
        status: Optional[str] = None,
    ) -> DeviceState:
        """Advance last_updated on an existing device, optionally replacing metrics/status.

        Unlike update_device_state this never creates a record, so a device
        removed concurrently stays removed.
        """
        with self._lock.write():
            current = self._devices.get(device_id)
            if current is None:
                raise DeviceNotFoundError(device_id)
            changes: dict = {"last_updated": self._next_timestamp(current)}
            if metrics is not None:
                changes["metrics"] = metrics.model_copy()
            if status is not None:
                changes["status"] = status
            updated = current.model_copy(update=changes, deep=True)
            self._devices[device_id] = updated
            result = updated.model_copy(deep=True)

        logger.debug("Refreshed device %s", device_id)
        return result

    def __contains__(self, device_id: object) -> bool:
        with self._lock.read():
            return device_id in self._devices

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._devices)

    # ── Internals ─────────────────────────────────────────────────────

    def _store(self, state: DeviceState) -> DeviceState:
        with self._lock.write():
            previous = self._devices.get(state.id)
            stored = state.model_copy(
                update={"last_updated": self._next_timestamp(previous)}, deep=True
            )
            self._devices[state.id] = stored
            result = stored.model_copy(deep=True)

        if previous is None:
            logger.info("Added device %s", state.id)
        else:
            logger.debug("Updated device %s", state.id)
        return result

    def _next_timestamp(self, previous: Optional[DeviceState]) -> datetime:
        """Current time, nudged forward if the clock has not moved past the last write."""
        now = self._clock()
        if previous is not None and previous.last_updated is not None:
            floor = previous.last_updated + _TICK
            if now < floor:
                return floor
        return now
