from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_NAME_ENV = "TELEMETRY_STORE_NAME"
_STORE_PATH_ENV = "TELEMETRY_STORE_PATH"
_SENSOR_REFRESH_ENV = "SENSOR_REFRESH_SECONDS"
_ACTUATOR_REFRESH_ENV = "ACTUATOR_REFRESH_SECONDS"
_QUERY_TIMEOUT_ENV = "QUERY_TIMEOUT_SECONDS"
_DISPLAY_TZ_ENV = "DISPLAY_TIMEZONE"
_CALIBRATION_URL_ENV = "CALIBRATION_ENDPOINT_URL"
_LIVE_MODE_ENV = "LIVE_MODE_DEFAULT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    store_name: str
    store_path: Optional[str]
    sensor_refresh_seconds: float
    actuator_refresh_seconds: float
    query_timeout_seconds: float
    display_timezone: str
    calibration_endpoint_url: Optional[str]
    live_mode_default: bool
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_seconds(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_name=_read_str_env(_STORE_NAME_ENV, "biogas"),
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/telemetry.json"),
        sensor_refresh_seconds=_read_seconds(_SENSOR_REFRESH_ENV, 10.0),
        actuator_refresh_seconds=_read_seconds(_ACTUATOR_REFRESH_ENV, 10.0),
        query_timeout_seconds=_read_seconds(_QUERY_TIMEOUT_ENV, 15.0),
        display_timezone=_read_str_env(_DISPLAY_TZ_ENV, "UTC"),
        calibration_endpoint_url=_read_optional_env(_CALIBRATION_URL_ENV, None),
        live_mode_default=_read_bool(_LIVE_MODE_ENV, True),
        log_level=_read_log_level("INFO"),
    )
