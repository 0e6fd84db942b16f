"""Auto/manual arbitration and the manual actuator command path."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional, Union

from app.schemas import ActuatorRow, ControlModeRow
from datastore.mock_store import MockTelemetryStore
from models.records import ACTUATOR_NAMES, SWITCH_ACTUATORS, ActuatorState, ControlMode
from services.current import CurrentStateFetcher

logger = logging.getLogger(__name__)

PWM_MIN = 0
PWM_MAX = 255


class ManualControlLocked(RuntimeError):
    """Raised when a manual actuator command arrives while in automatic mode."""


class ControlCommandFailed(RuntimeError):
    """The store refused a control-mode or actuator write."""


class ControlModeArbiter:
    """Tracks the ``is_auto`` flag; the store's newest row is authoritative."""

    def __init__(
        self,
        store: MockTelemetryStore,
        fetcher: CurrentStateFetcher,
        default_auto: bool = True,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.is_auto = default_auto
        self.timestamp: Optional[datetime] = None

    async def load(self) -> bool:
        record = await self.fetcher.fetch_control_mode()
        if record is not None:
            self.apply(record)
        return self.is_auto

    def apply(self, record: ControlMode) -> bool:
        if self.timestamp is not None and record.timestamp < self.timestamp:
            return False
        self.timestamp = record.timestamp
        self.is_auto = record.is_auto
        return True

    async def set_auto(self, is_auto: bool) -> ControlMode:
        """Flip the flag locally, then persist it; a failed write restores the old flag."""

        previous = self.is_auto
        self.is_auto = is_auto
        try:
            row = await self.store.insert("control_mode", {"is_auto": is_auto})
        except Exception as exc:
            self.is_auto = previous
            logger.error(
                "Could not persist control mode",
                extra={"is_auto": is_auto, "reason": str(exc)},
            )
            raise ControlCommandFailed(f"Could not persist control mode: {exc}") from exc

        record = ControlModeRow.model_validate(row).to_record()
        self.apply(record)
        logger.info("Control mode changed", extra={"is_auto": is_auto})
        return record

    def ensure_manual(self) -> None:
        if self.is_auto:
            raise ManualControlLocked("Actuators are under automatic control.")


def normalize_actuator_value(name: str, value: Union[bool, int]) -> Union[bool, int]:
    if name not in ACTUATOR_NAMES:
        raise KeyError(f"Unknown actuator {name!r}.")
    if name in SWITCH_ACTUATORS:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value > 0
        raise ValueError(f"{name} expects a boolean or integer value.")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} expects an integer between {PWM_MIN} and {PWM_MAX}.")
    if not PWM_MIN <= value <= PWM_MAX:
        raise ValueError(f"{name} expects an integer between {PWM_MIN} and {PWM_MAX}.")
    return value
IDLE_ACTUATORS: Dict[str, Union[bool, int]] = {
    "pump_acid": 0,
    "pump_base": 0,
    "heater": 0,
    "solenoid": False,
    "stirrer": False,
}


class ActuatorCommander:
    """Writes manual actuator targets; the effect is observed via the push channel."""

    def __init__(self, store: MockTelemetryStore, arbiter: ControlModeArbiter) -> None:
        self.store = store
        self.arbiter = arbiter

    async def set_actuator(self, name: str, value: Union[bool, int]) -> ActuatorState:
        normalized = normalize_actuator_value(name, value)
        self.arbiter.ensure_manual()

        # only the commanded field is written; the other outputs stay as stored
        try:
            stored = await self.store.update(
                "actuators",
                {name: normalized},
                defaults=IDLE_ACTUATORS,
            )
        except Exception as exc:
            logger.error(
                "Actuator command failed",
                extra={"actuator": name, "reason": str(exc)},
            )
            raise ControlCommandFailed(f"Could not write actuator {name}: {exc}") from exc

        logger.info("Actuator command issued", extra={"actuator": name})
        return ActuatorRow.model_validate(stored).to_record()
