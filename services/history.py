"""Windowed historical queries and chart series formatting."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from app.schemas import SensorErrorRow, SensorRow
from datastore.mock_store import MockTelemetryStore
from models.records import DateRange, ErrorPoint, SensorPoint
from services.current import describe_validation_error

logger = logging.getLogger(__name__)

CLOCK_FORMAT = "%H:%M:%S"
DATED_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class HistoryResult:
    series: List[SensorPoint] = field(default_factory=list)
    error_series: List[ErrorPoint] = field(default_factory=list)


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown display timezone %r, falling back to UTC", name)
        return timezone.utc


def format_label(timestamp: datetime, multi_day: bool, tz: tzinfo = timezone.utc) -> str:
    """Render the axis label; ranges longer than a day keep the date."""

    local = timestamp.astimezone(tz)
    return local.strftime(DATED_FORMAT if multi_day else CLOCK_FORMAT)


class HistoryService:
    """Runs range queries over the sensor and sensor-error streams.

    Overlapping queries are not serialized: whichever resolves last is the one
    left in ``series``/``error_series``. A failed stream keeps its previous
    series.
    """

    def __init__(
        self,
        store: MockTelemetryStore,
        timeout: float = 15.0,
        display_timezone: str = "UTC",
        date_range: Optional[DateRange] = None,
    ) -> None:
        self.store = store
        self.timeout = timeout
        self.tz = resolve_timezone(display_timezone)
        self.date_range = date_range or DateRange.default()
        self.series: List[SensorPoint] = []
        self.error_series: List[ErrorPoint] = []
        self._in_flight = 0
        self._closed = False

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    async def set_range(self, date_range: DateRange) -> HistoryResult:
        self.date_range = date_range
        return await self.query(date_range)

    async def query(self, date_range: Optional[DateRange] = None) -> HistoryResult:
        window = date_range or self.date_range
        self._in_flight += 1
        try:
            sensor_rows, error_rows = await asyncio.gather(
                self._fetch("sensors", window),
                self._fetch("sensor_errors", window),
            )
            if self._closed:
                return self.snapshot()
            if sensor_rows is not None:
                self.series = self._format_sensor_rows(sensor_rows, window)
            if error_rows is not None:
                self.error_series = self._format_error_rows(error_rows, window)
        finally:
            self._in_flight -= 1
        return self.snapshot()

    def snapshot(self) -> HistoryResult:
        return HistoryResult(series=list(self.series), error_series=list(self.error_series))

    def close(self) -> None:
        self._closed = True

    async def _fetch(self, table: str, window: DateRange) -> Optional[List[dict]]:
        extra = {
            "table": table,
            "range_start": window.start.isoformat(),
            "range_end": window.end.isoformat(),
        }
        try:
            rows = await asyncio.wait_for(
                self.store.select_range(table, window.lower_bound, window.upper_bound),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Timed out fetching history", extra={**extra, "reason": "timeout"})
            return None
        except Exception as exc:  # noqa: BLE001 - keep the previous series
            logger.error(
                "Error fetching history",
                extra={**extra, "reason": str(exc) or exc.__class__.__name__},
            )
            return None
        logger.debug("Fetched history", extra={**extra, "row_count": len(rows)})
        return rows

    def _format_sensor_rows(self, rows: List[dict], window: DateRange) -> List[SensorPoint]:
        points: List[SensorPoint] = []
        for row in rows:
            try:
                parsed = SensorRow.model_validate(row)
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed history row",
                    extra={"table": "sensors", "reason": describe_validation_error(exc)},
                )
                continue
            points.append(
                SensorPoint(
                    timestamp=parsed.created_at,
                    label=format_label(parsed.created_at, window.spans_multiple_days, self.tz),
                    ph=parsed.ph,
                    temp=parsed.temp,
                    ch4=parsed.ch4,
                    pressure=parsed.pressure,
                )
            )
        return points

    def _format_error_rows(self, rows: List[dict], window: DateRange) -> List[ErrorPoint]:
        points: List[ErrorPoint] = []
        for row in rows:
            try:
                parsed = SensorErrorRow.model_validate(row)
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed history row",
                    extra={"table": "sensor_errors", "reason": describe_validation_error(exc)},
                )
                continue
            points.append(
                ErrorPoint(
                    timestamp=parsed.created_at,
                    label=format_label(parsed.created_at, window.spans_multiple_days, self.tz),
                    ph_error=parsed.ph_error,
                    ph_delta_error=parsed.ph_delta_error,
                    temp_error=parsed.temp_error,
                    temp_delta_error=parsed.temp_delta_error,
                )
            )
        return points
