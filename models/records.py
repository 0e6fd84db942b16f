"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional


class StateKind(str, Enum):
    """Projections tracked by the state store."""

    sensors = "sensors"
    actuators = "actuators"


ACTUATOR_NAMES = ("pump_acid", "pump_base", "heater", "solenoid", "stirrer")
SWITCH_ACTUATORS = frozenset({"solenoid", "stirrer"})


@dataclass(frozen=True, slots=True)
class SensorReading:
    """One row of controller telemetry."""

    timestamp: datetime
    ph: float
    temp: float
    ch4: float
    pressure: float


@dataclass(frozen=True, slots=True)
class SensorError:
    """Deviation from setpoint and its rate of change."""

    timestamp: datetime
    ph_error: float
    ph_delta_error: float
    temp_error: float
    temp_delta_error: float


@dataclass(frozen=True, slots=True)
class ActuatorState:
    """Most recently applied actuator command."""

    timestamp: datetime
    pump_acid: int
    pump_base: int
    heater: int
    solenoid: bool
    stirrer: bool


@dataclass(frozen=True, slots=True)
class ControlMode:
    timestamp: datetime
    is_auto: bool


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive calendar-day window for historical queries."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Date range end must not precede its start.")

    @classmethod
    def default(cls, now: Optional[datetime] = None) -> "DateRange":
        current = now or datetime.now(timezone.utc)
        return cls(start=(current - timedelta(hours=24)).date(), end=current.date())

    @property
    def lower_bound(self) -> datetime:
        return datetime.combine(self.start, time(0, 0, 0), tzinfo=timezone.utc)

    @property
    def upper_bound(self) -> datetime:
        return datetime.combine(self.end, time(23, 59, 59), tzinfo=timezone.utc)

    @property
    def spans_multiple_days(self) -> bool:
        return self.end > self.start


@dataclass(frozen=True, slots=True)
class SensorPoint:
    """Chart point for the sensor series."""

    timestamp: datetime
    label: str
    ph: float
    temp: float
    ch4: float
    pressure: float


@dataclass(frozen=True, slots=True)
class ErrorPoint:
    """Chart point for the sensor-error series."""

    timestamp: datetime
    label: str
    ph_error: float
    ph_delta_error: float
    temp_error: float
    temp_delta_error: float
