"""Pydantic schemas for store rows and the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.records import (
    ActuatorState,
    ControlMode,
    SensorError,
    SensorReading,
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SensorRow(BaseModel):
    """Row of the ``sensors`` table as delivered by the store."""

    created_at: datetime
    ph: float
    temp: float
    ch4: float
    pressure: float

    @field_validator("created_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_record(self) -> SensorReading:
        return SensorReading(
            timestamp=self.created_at,
            ph=self.ph,
            temp=self.temp,
            ch4=self.ch4,
            pressure=self.pressure,
        )


class SensorErrorRow(BaseModel):
    created_at: datetime
    ph_error: float
    ph_delta_error: float
    temp_error: float
    temp_delta_error: float

    @field_validator("created_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_record(self) -> SensorError:
        return SensorError(
            timestamp=self.created_at,
            ph_error=self.ph_error,
            ph_delta_error=self.ph_delta_error,
            temp_error=self.temp_error,
            temp_delta_error=self.temp_delta_error,
        )


class ActuatorRow(BaseModel):
    """Row of the ``actuators`` table; switches may arrive as 0/1/255."""

    updated_at: datetime
    pump_acid: int = Field(..., ge=0, le=255)
    pump_base: int = Field(..., ge=0, le=255)
    heater: int = Field(..., ge=0, le=255)
    solenoid: bool
    stirrer: bool

    @field_validator("updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("solenoid", "stirrer", mode="before")
    @classmethod
    def _coerce_switch(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value > 0
        return value

    def to_record(self) -> ActuatorState:
        return ActuatorState(
            timestamp=self.updated_at,
            pump_acid=self.pump_acid,
            pump_base=self.pump_base,
            heater=self.heater,
            solenoid=self.solenoid,
            stirrer=self.stirrer,
        )


class ControlModeRow(BaseModel):
    updated_at: datetime
    is_auto: bool

    @field_validator("updated_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_record(self) -> ControlMode:
        return ControlMode(timestamp=self.updated_at, is_auto=self.is_auto)


class SensorSnapshot(BaseModel):
    """Current sensor projection exposed via the API."""

    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    ph: float
    temp: float
    ch4: float
    pressure: float


class ActuatorSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    pump_acid: int
    pump_base: int
    heater: int
    solenoid: bool
    stirrer: bool


class StateResponse(BaseModel):
    """Everything the dashboard needs to render the live panel."""

    sensors: Optional[SensorSnapshot] = None
    actuators: Optional[ActuatorSnapshot] = None
    is_auto: bool
    live: bool


class SensorPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    label: str
    ph: float
    temp: float
    ch4: float
    pressure: float


class ErrorPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    label: str
    ph_error: float
    ph_delta_error: float
    temp_error: float
    temp_delta_error: float


class HistoryResponse(BaseModel):
    start: date
    end: date
    loading: bool
    series: List[SensorPointOut] = Field(default_factory=list)
    error_series: List[ErrorPointOut] = Field(default_factory=list)


class DateRangePayload(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> "DateRangePayload":
        if self.end < self.start:
            raise ValueError("end must not precede start")
        return self


class LiveModePayload(BaseModel):
    enabled: bool


class ControlModePayload(BaseModel):
    is_auto: bool


class ActuatorCommandPayload(BaseModel):
    value: Union[bool, int]


class CalibrationSubmission(BaseModel):
    """Operator form values; kept as raw text so validation can explain itself."""

    model_config = ConfigDict(populate_by_name=True)

    reference_ph: Optional[Union[str, float]] = Field(default=None, alias="referencePh")
    current_ph: Optional[Union[str, float]] = Field(default=None, alias="currentPh")


class CalibrationData(BaseModel):
    offset: float


class CalibrationResponse(BaseModel):
    success: bool
    data: Optional[CalibrationData] = None
    message: Optional[str] = None


class CalibrationStatus(BaseModel):
    state: str
    reference_ph: str = Field(..., serialization_alias="referencePh")
    current_ph: str = Field(..., serialization_alias="currentPh")
    last_offset: Optional[float] = None
    last_error: Optional[str] = None
