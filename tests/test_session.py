"""End-to-end tests for the dashboard session wiring."""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone

from datastore.mock_store import MockTelemetryStore
from services.session import DashboardSession
from settings import Settings

INTERVAL = 0.02


def _settings(**overrides) -> Settings:
    values = dict(
        store_name="test",
        store_path=None,
        sensor_refresh_seconds=INTERVAL,
        actuator_refresh_seconds=INTERVAL,
        query_timeout_seconds=1.0,
        display_timezone="UTC",
        calibration_endpoint_url=None,
        live_mode_default=True,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


def _iso(minutes_ago: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)).isoformat()


def _sensor_row(created_at: str, ph: float = 7.0) -> dict:
    return {"created_at": created_at, "ph": ph, "temp": 35.0, "ch4": 500.0, "pressure": 1013.0}


def _actuator_row(updated_at: str, heater: int = 0) -> dict:
    return {
        "updated_at": updated_at,
        "pump_acid": 0,
        "pump_base": 0,
        "heater": heater,
        "solenoid": 0,
        "stirrer": 1,
    }


class CountingStore(MockTelemetryStore):
    def __init__(self) -> None:
        super().__init__(name="test")
        self.latest_calls: Counter = Counter()

    async def latest(self, table):
        self.latest_calls[table] += 1
        return await super().latest(table)


async def _settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)
    await asyncio.sleep(0.01)


def test_start_loads_everything_and_close_releases_resources() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings())

    async def scenario() -> None:
        await store.insert("sensors", _sensor_row(_iso(5), ph=6.7))
        await store.insert("actuators", _actuator_row(_iso(5), heater=42))
        await store.insert("control_mode", {"is_auto": False, "updated_at": _iso(5)})
        await session.start()

        assert session.state.sensors is not None and session.state.sensors.ph == 6.7
        assert session.state.actuators is not None and session.state.actuators.heater == 42
        assert session.arbiter.is_auto is False
        assert [point.ph for point in session.history.series] == [6.7]
        assert store.subscription_count == 3
        assert session.scheduler.active_timers == ["actuators", "sensors"]

        await session.close()

    asyncio.run(scenario())

    assert store.subscription_count == 0
    assert session.scheduler.active_timers == []
    assert session.state.closed is True


def test_push_insert_refreshes_charts_in_live_mode() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(sensor_refresh_seconds=60, actuator_refresh_seconds=60))

    async def scenario() -> list[float]:
        await session.start()
        await store.insert("sensors", _sensor_row(_iso(1), ph=6.6))
        await _settle()
        series = [point.ph for point in session.history.series]
        await session.close()
        return series

    assert asyncio.run(scenario()) == [6.6]
    assert session.state.sensors is not None and session.state.sensors.ph == 6.6


def test_push_insert_leaves_charts_alone_when_not_live() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(live_mode_default=False))

    async def scenario() -> None:
        await session.start()
        await store.insert("sensors", _sensor_row(_iso(1), ph=6.6))
        await _settle()
        await session.close()

    asyncio.run(scenario())

    assert session.history.series == []
    assert session.state.sensors is not None and session.state.sensors.ph == 6.6


def test_disabling_live_mode_stops_scheduled_fetches() -> None:
    store = CountingStore()
    session = DashboardSession(store, settings=_settings())

    async def scenario() -> tuple[Counter, Counter]:
        await session.start()
        await asyncio.sleep(INTERVAL * 4)
        session.set_live(False)
        await _settle()
        snapshot = Counter(store.latest_calls)
        await asyncio.sleep(INTERVAL * 5)
        after = Counter(store.latest_calls)
        await session.close()
        return snapshot, after

    snapshot, after = asyncio.run(scenario())

    assert snapshot["sensors"] >= 2
    assert snapshot["actuators"] >= 2
    assert after == snapshot


def test_reenabling_live_mode_restarts_both_timers_once() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(live_mode_default=False))

    async def scenario() -> list[str]:
        await session.start()
        assert session.scheduler.active_timers == []
        session.set_live(True)
        session.set_live(True)
        await _settle()
        timers = session.scheduler.active_timers
        await session.close()
        return timers

    assert asyncio.run(scenario()) == ["actuators", "sensors"]


def test_events_after_close_do_not_mutate_state() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings())

    async def scenario() -> None:
        await store.insert("sensors", _sensor_row(_iso(10), ph=7.0))
        await session.start()
        await session.close()
        await store.insert("sensors", _sensor_row(_iso(0), ph=3.0))
        await session.fetcher.refresh_sensors()
        await _settle()

    asyncio.run(scenario())

    assert session.state.sensors is not None
    assert session.state.sensors.ph == 7.0


def test_push_and_pull_converge_on_newest_record() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(sensor_refresh_seconds=60, actuator_refresh_seconds=60))

    async def scenario() -> None:
        await session.start()
        await store.insert("sensors", _sensor_row("2024-05-01T10:00:00Z", ph=6.0))
        pull = asyncio.create_task(session.fetcher.refresh_sensors())
        await store.insert("sensors", _sensor_row("2024-05-01T09:00:00Z", ph=8.0))
        await pull
        await _settle()
        await session.close()

    asyncio.run(scenario())

    assert session.state.sensors is not None
    assert session.state.sensors.ph == 6.0
    assert session.state.sensors.timestamp == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)


def test_manual_actuator_command_is_observed_through_push_channel() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(sensor_refresh_seconds=60, actuator_refresh_seconds=60))

    async def scenario() -> None:
        await store.insert("actuators", _actuator_row(_iso(5), heater=0))
        await session.start()
        await session.arbiter.set_auto(False)
        await session.commander.set_actuator("heater", 200)
        await _settle()
        await session.close()

    asyncio.run(scenario())

    assert session.state.actuators is not None
    assert session.state.actuators.heater == 200


def test_first_command_on_empty_table_reaches_state_without_live_mode() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(live_mode_default=False))

    async def scenario() -> None:
        await session.start()
        assert session.state.actuators is None
        await session.arbiter.set_auto(False)
        await session.commander.set_actuator("heater", 200)
        await _settle()
        await session.close()

    asyncio.run(scenario())

    assert session.state.actuators is not None
    assert session.state.actuators.heater == 200
    assert session.state.actuators.pump_acid == 0


def test_close_waits_for_background_work() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings(sensor_refresh_seconds=60, actuator_refresh_seconds=60))

    async def scenario() -> None:
        await session.start()
        await store.insert("sensors", _sensor_row(_iso(1), ph=6.6))
        for _ in range(5):
            await asyncio.sleep(0)
        await session.close()
        assert not session._background

    asyncio.run(scenario())


def test_calibration_defaults_to_store_gateway() -> None:
    store = MockTelemetryStore(name="test")
    session = DashboardSession(store, settings=_settings())

    async def scenario() -> dict | None:
        outcome = await session.calibration.submit("7.00", "6.85")
        assert abs(outcome.offset - 0.15) < 1e-9
        return await store.latest("ph_calibrations")

    row = asyncio.run(scenario())

    assert row is not None
    assert row["reference_ph"] == 7.0
