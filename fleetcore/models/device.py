"""Device model: the authoritative snapshot of one managed edge unit."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ResourceType(str, Enum):
    """Resource kinds a device allocates and a task may request."""
    CPU = "cpu"
    MEMORY = "memory"
    POWER = "power"
    NETWORK = "network"


class PhysicalLocation(BaseModel):
    """Where a device sits in the facility."""

    rack: str = Field(default="", description="Rack identifier")
    position: int = Field(default=0, ge=0, description="Slot within the rack")
    zone: str = Field(default="", description="Cooling/power zone")


class DeviceMetrics(BaseModel):
    """Point-in-time load, temperature and power readings."""

    temperature: float = Field(default=0.0, description="Degrees Celsius")
    power_usage: float = Field(default=0.0, ge=0, description="Watts")
    cpu_load: float = Field(default=0.0, ge=0, le=100, description="CPU load percent")
    memory_usage: float = Field(default=0.0, ge=0, le=100, description="Memory usage percent")


class DeviceState(BaseModel):
    """Operational state of a device as tracked by the StateManager."""

    id: str = Field(min_length=1, description="Unique device identifier")
    status: str = Field(default="unknown", description="Free-form operational label")
    resources: dict[ResourceType, float] = Field(
        default_factory=dict, description="Resource kind → allocation"
    )
    location: PhysicalLocation = Field(default_factory=PhysicalLocation)
    metrics: DeviceMetrics = Field(default_factory=DeviceMetrics)
    last_updated: Optional[datetime] = Field(
        default=None, description="Set by the StateManager on every write"
    )

    def __repr__(self) -> str:
        return (
            f"DeviceState(id={self.id!r}, status={self.status!r}, "
            f"last_updated={self.last_updated})"
        )
