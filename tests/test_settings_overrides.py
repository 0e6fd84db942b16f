from __future__ import annotations

from typing import Iterable

from datastore.mock_store import build_default_store
from services.session import build_default_session
from settings import get_settings


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    store_path = tmp_path / "telemetry.json"

    monkeypatch.setenv("TELEMETRY_STORE_NAME", "reactor-2")
    monkeypatch.setenv("TELEMETRY_STORE_PATH", str(store_path))
    monkeypatch.setenv("SENSOR_REFRESH_SECONDS", "5")
    monkeypatch.setenv("ACTUATOR_REFRESH_SECONDS", "2.5")
    monkeypatch.setenv("QUERY_TIMEOUT_SECONDS", "7")
    monkeypatch.setenv("DISPLAY_TIMEZONE", "Asia/Jakarta")
    monkeypatch.setenv("LIVE_MODE_DEFAULT", "off")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    caches = (get_settings, build_default_store, build_default_session)
    _clear_caches(caches)

    try:
        settings = get_settings()
        store = build_default_store()
        session = build_default_session()

        assert settings.sensor_refresh_seconds == 5.0
        assert settings.actuator_refresh_seconds == 2.5
        assert settings.query_timeout_seconds == 7.0
        assert settings.display_timezone == "Asia/Jakarta"
        assert settings.log_level == "DEBUG"
        assert store.name == "reactor-2"
        assert store.persistence_path == store_path
        assert session.store is store
        assert session.live is False
    finally:
        _clear_caches(caches)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("SENSOR_REFRESH_SECONDS", "soon")
    monkeypatch.setenv("ACTUATOR_REFRESH_SECONDS", "-3")
    monkeypatch.setenv("QUERY_TIMEOUT_SECONDS", "   ")
    monkeypatch.setenv("LIVE_MODE_DEFAULT", "maybe")
    monkeypatch.setenv("TELEMETRY_STORE_PATH", "")
    monkeypatch.delenv("CALIBRATION_ENDPOINT_URL", raising=False)

    get_settings.cache_clear()
    try:
        settings = get_settings()

        assert settings.sensor_refresh_seconds == 10.0
        assert settings.actuator_refresh_seconds == 10.0
        assert settings.query_timeout_seconds == 15.0
        assert settings.live_mode_default is True
        assert settings.store_path is None
        assert settings.calibration_endpoint_url is None
    finally:
        get_settings.cache_clear()


def test_store_factory_honours_explicit_arguments(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TELEMETRY_STORE_PATH", "")
    caches = (get_settings, build_default_store)
    _clear_caches(caches)

    try:
        store = build_default_store(name="bench", path=str(tmp_path / "bench.json"))

        assert store.name == "bench"
        assert store.persistence_path == tmp_path / "bench.json"
    finally:
        _clear_caches(caches)
