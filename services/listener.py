"""Push-channel consumer that keeps the state store fresh."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from app.schemas import ActuatorRow, ControlModeRow, SensorRow
from datastore.mock_store import INSERT, UPDATE, ChangeEvent, MockTelemetryStore, Subscription
from models.records import ControlMode, StateKind
from services.current import describe_validation_error
from services.state_store import StateStore

logger = logging.getLogger(__name__)


class MalformedEvent(ValueError):
    """Raised for change events that cannot be turned into a record."""


class LiveUpdateListener:
    """Owns one subscription per stream for the lifetime of a session."""

    def __init__(
        self,
        store: MockTelemetryStore,
        state: StateStore,
        is_live: Callable[[], bool] = lambda: True,
        on_sensor_insert: Optional[Callable[[], None]] = None,
        on_control_mode: Optional[Callable[[ControlMode], None]] = None,
    ) -> None:
        self.store = store
        self.state = state
        self.is_live = is_live
        self.on_sensor_insert = on_sensor_insert
        self.on_control_mode = on_control_mode
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._subscriptions)

    async def start(self) -> None:
        if self.running:
            return
        streams: List[Tuple[str, str, Callable[[ChangeEvent], None]]] = [
            (INSERT, "sensors", self._apply_sensor),
            (UPDATE, "actuators", self._apply_actuator),
        ]
        if self.on_control_mode is not None:
            streams.append((INSERT, "control_mode", self._apply_control_mode))

        for event, table, handler in streams:
            subscription = self.store.subscribe(event, table)
            self._subscriptions.append(subscription)
            self._tasks.append(
                asyncio.create_task(
                    self._consume(subscription, handler),
                    name=f"listener:{table}",
                )
            )
        logger.info("Live update listener started", extra={"row_count": len(streams)})

    async def stop(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        tasks, self._tasks = self._tasks, []
        for subscription in subscriptions:
            self.store.unsubscribe(subscription)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if subscriptions:
            logger.info("Live update listener stopped")

    async def _consume(
        self,
        subscription: Subscription,
        handler: Callable[[ChangeEvent], None],
    ) -> None:
        async for change in subscription:
            try:
                handler(change)
            except MalformedEvent as exc:
                logger.warning(
                    "Dropping change event",
                    extra={"table": change.table, "event": change.event, "reason": str(exc)},
                )
            except Exception:  # noqa: BLE001 - one bad event must not end the stream
                logger.exception(
                    "Unexpected error applying change event",
                    extra={"table": change.table, "event": change.event},
                )

    def _apply_sensor(self, change: ChangeEvent) -> None:
        record = _parse(change, SensorRow).to_record()
        self.state.replace(StateKind.sensors, record)
        if self.on_sensor_insert is not None and self.is_live():
            self.on_sensor_insert()

    def _apply_actuator(self, change: ChangeEvent) -> None:
        record = _parse(change, ActuatorRow).to_record()
        self.state.replace(StateKind.actuators, record)

    def _apply_control_mode(self, change: ChangeEvent) -> None:
        record = _parse(change, ControlModeRow).to_record()
        if self.on_control_mode is not None:
            self.on_control_mode(record)


def _parse(change: ChangeEvent, schema):
    if change.error:
        raise MalformedEvent(change.error)
    if not isinstance(change.new, dict):
        raise MalformedEvent("event carries no row")
    try:
        return schema.model_validate(change.new)
    except ValidationError as exc:
        raise MalformedEvent(describe_validation_error(exc)) from exc
