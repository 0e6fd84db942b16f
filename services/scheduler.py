"""Fixed-interval pull refresh gated by live-mode."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Set, Tuple

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]

SENSOR_TIMER = "sensors"
ACTUATOR_TIMER = "actuators"


class RefreshScheduler:
    """Two independent repeating timers that fall back to polling.

    Stopping a timer never cancels a fetch it already started; such fetches
    finish on their own and their results go through the normal write path.
    """

    def __init__(
        self,
        refresh_sensors: Job,
        refresh_actuators: Job,
        sensor_interval: float = 10.0,
        actuator_interval: float = 10.0,
    ) -> None:
        self._jobs: Dict[str, Tuple[float, Job]] = {
            SENSOR_TIMER: (sensor_interval, refresh_sensors),
            ACTUATOR_TIMER: (actuator_interval, refresh_actuators),
        }
        self._timers: Dict[str, asyncio.Task[None]] = {}
        self._in_flight: Set[asyncio.Task[None]] = set()
        self.enabled = False

    @property
    def active_timers(self) -> List[str]:
        return sorted(name for name, task in self._timers.items() if not task.done())

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def enable(self) -> None:
        self.enabled = True
        for name in self._jobs:
            self._start_timer(name)
        logger.info("Refresh timers started", extra={"timer": ",".join(self._jobs)})

    def disable(self) -> None:
        self.enabled = False
        stopped = [name for name in list(self._timers) if self._stop_timer(name)]
        if stopped:
            logger.info("Refresh timers stopped", extra={"timer": ",".join(stopped)})

    async def drain(self) -> None:
        """Wait for fetches already started by the timers."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def _start_timer(self, name: str) -> None:
        self._stop_timer(name)
        self._timers[name] = asyncio.create_task(self._run(name), name=f"timer:{name}")

    def _stop_timer(self, name: str) -> bool:
        task = self._timers.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def _run(self, name: str) -> None:
        interval, job = self._jobs[name]
        while True:
            await asyncio.sleep(interval)
            fetch = asyncio.create_task(self._tick(name, job), name=f"fetch:{name}")
            self._in_flight.add(fetch)
            fetch.add_done_callback(self._in_flight.discard)

    async def _tick(self, name: str, job: Job) -> None:
        try:
            await job()
        except Exception:  # noqa: BLE001 - the next tick retries
            logger.exception("Scheduled refresh failed", extra={"timer": name})
