"""Dashboard session wiring: one state store and its producers, torn down as a unit."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Optional, Set

from datastore.mock_store import MockTelemetryStore, build_default_store
from models.records import DateRange
from services.calibration import (
    CalibrationService,
    HttpCalibrationGateway,
    StoreCalibrationGateway,
)
from services.control import ActuatorCommander, ControlModeArbiter
from services.current import CurrentStateFetcher
from services.history import HistoryResult, HistoryService
from services.listener import LiveUpdateListener
from services.scheduler import RefreshScheduler
from services.state_store import StateStore
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class DashboardSession:
    """Owns the live view of one dashboard.

    The listener task and the timer task only communicate through
    ``state``; everything is created in ``__init__`` and released in
    ``close``.
    """

    def __init__(
        self,
        store: MockTelemetryStore,
        settings: Optional[Settings] = None,
        calibration_gateway=None,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.state = StateStore()
        self.fetcher = CurrentStateFetcher(
            store, self.state, timeout=settings.query_timeout_seconds
        )
        self.history = HistoryService(
            store,
            timeout=settings.query_timeout_seconds,
            display_timezone=settings.display_timezone,
        )
        self.arbiter = ControlModeArbiter(store, self.fetcher)
        self.commander = ActuatorCommander(store, self.arbiter)
        self.calibration = CalibrationService(
            calibration_gateway or StoreCalibrationGateway(store)
        )
        self.scheduler = RefreshScheduler(
            refresh_sensors=self._refresh_sensor_stream,
            refresh_actuators=self.fetcher.refresh_actuators,
            sensor_interval=settings.sensor_refresh_seconds,
            actuator_interval=settings.actuator_refresh_seconds,
        )
        self.listener = LiveUpdateListener(
            store,
            self.state,
            is_live=lambda: self.live,
            on_sensor_insert=self._schedule_history,
            on_control_mode=self.arbiter.apply,
        )
        self.live = settings.live_mode_default
        self._background: Set[asyncio.Task[HistoryResult]] = set()
        self.started = False
        self.closed = False

    async def start(self) -> None:
        if self.started:
            return
        self.started = True
        await self.listener.start()
        await asyncio.gather(
            self.fetcher.refresh_sensors(),
            self.fetcher.refresh_actuators(),
            self.arbiter.load(),
            self.history.query(),
        )
        if self.live:
            self.scheduler.enable()
        logger.info("Dashboard session started", extra={"is_auto": self.arbiter.is_auto})

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.scheduler.disable()
        await self.listener.stop()
        self.state.close()
        self.history.close()
        await self.scheduler.drain()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.calibration.aclose()
        logger.info("Dashboard session closed")

    def set_live(self, enabled: bool) -> None:
        self.live = enabled
        if self.closed or not self.started:
            return
        if enabled:
            self.scheduler.enable()
        else:
            self.scheduler.disable()

    async def set_range(self, date_range: DateRange) -> HistoryResult:
        return await self.history.set_range(date_range)

    async def refresh(self) -> None:
        """Manual refresh of every projection and the charts."""
        await asyncio.gather(
            self.fetcher.refresh_sensors(),
            self.fetcher.refresh_actuators(),
            self.history.query(),
        )

    async def _refresh_sensor_stream(self) -> None:
        await asyncio.gather(self.fetcher.refresh_sensors(), self.history.query())

    def _schedule_history(self) -> None:
        if self.closed:
            return
        task = asyncio.create_task(self.history.query(), name="history:push")
        self._background.add(task)
        task.add_done_callback(self._background.discard)


@lru_cache
def build_default_session() -> DashboardSession:
    """Factory that wires a session against the default store."""
    settings = get_settings()
    store = build_default_store()
    gateway = None
    if settings.calibration_endpoint_url:
        gateway = HttpCalibrationGateway(
            settings.calibration_endpoint_url,
            timeout=settings.query_timeout_seconds,
        )
    return DashboardSession(store=store, settings=settings, calibration_gateway=gateway)
