"""Tests for the live-mode refresh timers."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter

from services.scheduler import ACTUATOR_TIMER, SENSOR_TIMER, RefreshScheduler

INTERVAL = 0.02


def _counting_scheduler(calls: Counter) -> RefreshScheduler:
    async def refresh_sensors() -> None:
        calls[SENSOR_TIMER] += 1

    async def refresh_actuators() -> None:
        calls[ACTUATOR_TIMER] += 1

    return RefreshScheduler(
        refresh_sensors=refresh_sensors,
        refresh_actuators=refresh_actuators,
        sensor_interval=INTERVAL,
        actuator_interval=INTERVAL,
    )


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_timers_fire_repeatedly_while_enabled() -> None:
    calls: Counter = Counter()
    scheduler = _counting_scheduler(calls)

    async def scenario() -> None:
        scheduler.enable()
        await asyncio.sleep(INTERVAL * 6)
        scheduler.disable()

    asyncio.run(scenario())

    assert calls[SENSOR_TIMER] >= 2
    assert calls[ACTUATOR_TIMER] >= 2


def test_disable_stops_all_fetches() -> None:
    calls: Counter = Counter()
    scheduler = _counting_scheduler(calls)

    async def scenario() -> Counter:
        scheduler.enable()
        await asyncio.sleep(INTERVAL * 3)
        scheduler.disable()
        await _settle()
        snapshot = Counter(calls)
        await asyncio.sleep(INTERVAL * 5)
        return snapshot

    snapshot = asyncio.run(scenario())

    assert snapshot[SENSOR_TIMER] >= 1
    assert calls == snapshot
    assert scheduler.active_timers == []
    assert scheduler.enabled is False


def test_nothing_runs_before_enable() -> None:
    calls: Counter = Counter()
    scheduler = _counting_scheduler(calls)

    async def scenario() -> None:
        await asyncio.sleep(INTERVAL * 3)

    asyncio.run(scenario())

    assert sum(calls.values()) == 0
    assert scheduler.active_timers == []


def test_enable_twice_replaces_existing_timers() -> None:
    calls: Counter = Counter()
    scheduler = _counting_scheduler(calls)

    async def scenario() -> None:
        scheduler.enable()
        first = dict(scheduler._timers)
        scheduler.enable()
        await _settle()
        assert all(task.cancelled() for task in first.values())
        assert scheduler.active_timers == sorted([ACTUATOR_TIMER, SENSOR_TIMER])
        scheduler.disable()
        await _settle()

    asyncio.run(scenario())

    assert scheduler.active_timers == []


def test_failing_refresh_is_logged_and_timer_keeps_running(caplog) -> None:
    attempts: Counter = Counter()

    async def failing() -> None:
        attempts["sensors"] += 1
        raise RuntimeError("store offline")

    async def ok() -> None:
        return None

    scheduler = RefreshScheduler(failing, ok, sensor_interval=INTERVAL, actuator_interval=INTERVAL)

    async def scenario() -> None:
        scheduler.enable()
        await asyncio.sleep(INTERVAL * 6)
        scheduler.disable()

    with caplog.at_level(logging.ERROR):
        asyncio.run(scenario())

    assert attempts["sensors"] >= 2
    failures = [record for record in caplog.records if record.getMessage() == "Scheduled refresh failed"]
    assert failures
    assert all(getattr(record, "timer", None) == SENSOR_TIMER for record in failures)


def test_in_flight_fetch_completes_after_disable() -> None:
    started = Counter()
    finished = Counter()

    async def scenario() -> None:
        release = asyncio.Event()

        async def slow() -> None:
            started["sensors"] += 1
            await release.wait()
            finished["sensors"] += 1

        async def ok() -> None:
            return None

        scheduler = RefreshScheduler(slow, ok, sensor_interval=INTERVAL, actuator_interval=10)
        scheduler.enable()
        while not started["sensors"]:
            await asyncio.sleep(INTERVAL / 4)
        scheduler.disable()
        assert scheduler.in_flight >= 1
        release.set()
        await _settle()
        assert scheduler.in_flight == 0

    asyncio.run(scenario())

    assert finished["sensors"] == started["sensors"]
    assert finished["sensors"] >= 1


def test_drain_waits_for_started_fetches() -> None:
    finished = Counter()

    async def scenario() -> None:
        async def slow() -> None:
            await asyncio.sleep(INTERVAL)
            finished["sensors"] += 1

        async def ok() -> None:
            return None

        scheduler = RefreshScheduler(slow, ok, sensor_interval=INTERVAL, actuator_interval=10)
        scheduler.enable()
        while not scheduler.in_flight:
            await asyncio.sleep(INTERVAL / 4)
        scheduler.disable()
        await scheduler.drain()
        assert scheduler.in_flight == 0

    asyncio.run(scenario())

    assert finished["sensors"] >= 1
