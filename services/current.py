"""Pull-based fetchers for the current projections."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from app.schemas import ActuatorRow, ControlModeRow, SensorRow
from datastore.mock_store import MockTelemetryStore
from models.records import ActuatorState, ControlMode, SensorReading, StateKind
from services.state_store import StateStore

logger = logging.getLogger(__name__)


class CurrentStateFetcher:
    """Fetches the newest row of a stream and hands it to the state store.

    Failures are logged and leave the last known good projection in place.
    """

    def __init__(
        self,
        store: MockTelemetryStore,
        state: StateStore,
        timeout: float = 15.0,
    ) -> None:
        self.store = store
        self.state = state
        self.timeout = timeout

    async def refresh_sensors(self) -> Optional[SensorReading]:
        row = await self._latest("sensors")
        if row is None:
            return None
        try:
            record = SensorRow.model_validate(row).to_record()
        except ValidationError as exc:
            logger.warning(
                "Latest sensor row is malformed",
                extra={"table": "sensors", "reason": describe_validation_error(exc)},
            )
            return None
        self.state.replace(StateKind.sensors, record)
        return record

    async def refresh_actuators(self) -> Optional[ActuatorState]:
        row = await self._latest("actuators")
        if row is None:
            return None
        try:
            record = ActuatorRow.model_validate(row).to_record()
        except ValidationError as exc:
            logger.warning(
                "Latest actuator row is malformed",
                extra={"table": "actuators", "reason": describe_validation_error(exc)},
            )
            return None
        self.state.replace(StateKind.actuators, record)
        return record

    async def fetch_control_mode(self) -> Optional[ControlMode]:
        row = await self._latest("control_mode")
        if row is None:
            return None
        try:
            return ControlModeRow.model_validate(row).to_record()
        except ValidationError as exc:
            logger.warning(
                "Latest control mode row is malformed",
                extra={"table": "control_mode", "reason": describe_validation_error(exc)},
            )
            return None

    async def _latest(self, table: str) -> Optional[dict]:
        try:
            return await asyncio.wait_for(self.store.latest(table), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Timed out fetching latest row", extra={"table": table, "reason": "timeout"})
        except Exception as exc:  # noqa: BLE001 - query errors never end the session
            logger.error(
                "Error fetching latest row",
                extra={"table": table, "reason": str(exc) or exc.__class__.__name__},
            )
        return None


def describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
