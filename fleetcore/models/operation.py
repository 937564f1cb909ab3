"""Operation variants: the typed action a task performs on each device.

Operations form a tagged union on ``kind`` so execution clients can dispatch
exhaustively. A bare string is accepted wherever an operation is expected and
becomes a CommandOperation.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class _OperationBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def name(self) -> str:
        """Short label used in logs and error messages."""
        return self.kind  # type: ignore[attr-defined]


class FanSpeedOperation(_OperationBase):
    kind: Literal["set_fan_speed"] = "set_fan_speed"
    speed: int = Field(ge=0, description="Target fan speed in RPM")


class CoolingModeOperation(_OperationBase):
    kind: Literal["set_cooling_mode"] = "set_cooling_mode"
    throttling: bool = Field(description="Enable CPU throttling to shed heat")


class ThermalProfileOperation(_OperationBase):
    kind: Literal["set_thermal_profile"] = "set_thermal_profile"
    profile: Literal["quiet", "balanced", "performance"] = "balanced"


class ThermalPolicyOperation(_OperationBase):
    kind: Literal["update_thermal_policy"] = "update_thermal_policy"
    warning_temp: float = Field(gt=0, description="Warn above this temperature (°C)")
    critical_temp: float = Field(gt=0, description="Act above this temperature (°C)")
    profile: Literal["quiet", "balanced", "performance"] = "balanced"

    @model_validator(mode="after")
    def _check_thresholds(self) -> "ThermalPolicyOperation":
        if self.critical_temp <= self.warning_temp:
            raise ValueError("critical_temp must be above warning_temp")
        return self


class PowerCycleOperation(_OperationBase):
    kind: Literal["power_cycle"] = "power_cycle"
    graceful: bool = Field(default=True, description="Drain workloads before cutting power")


class CommandOperation(_OperationBase):
    """Free-form action for anything the typed variants don't cover."""

    kind: Literal["command"] = "command"
    command: str = Field(min_length=1)

    @property
    def name(self) -> str:
        return self.command


Operation = Annotated[
    Union[
        FanSpeedOperation,
        CoolingModeOperation,
        ThermalProfileOperation,
        ThermalPolicyOperation,
        PowerCycleOperation,
        CommandOperation,
    ],
    Field(discriminator="kind"),
]

_operation_adapter: TypeAdapter = TypeAdapter(Operation)


def coerce_operation(value: Any) -> Any:
    """Turn a bare string into the mapping for a CommandOperation."""
    if isinstance(value, str):
        return {"kind": "command", "command": value}
    return value


def parse_operation(value: Any) -> Operation:
    """Validate a string, mapping or operation instance into an Operation."""
    if isinstance(value, _OperationBase):
        return value
    return _operation_adapter.validate_python(coerce_operation(value))
