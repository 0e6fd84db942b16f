from __future__ import annotations

import asyncio
import copy
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from settings import get_settings

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
ANY_EVENT = "*"

TIMESTAMP_COLUMNS: Dict[str, str] = {
    "sensors": "created_at",
    "sensor_errors": "created_at",
    "actuators": "updated_at",
    "control_mode": "updated_at",
    "ph_calibrations": "created_at",
}

Row = Dict[str, Any]


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        candidate = str(value).strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class ChangeEvent:
    """A change notification as pushed to subscribers."""

    event: str
    table: str
    new: Optional[Row] = None
    error: Optional[str] = None


class Subscription:
    """Handle for one change stream; iterate it to receive events."""

    def __init__(self, event: str, table: str) -> None:
        self.event = event
        self.table = table
        self._queue: asyncio.Queue[Optional[ChangeEvent]] = asyncio.Queue()
        self.closed = False

    def matches(self, event: str, table: str) -> bool:
        return self.table == table and self.event in (ANY_EVENT, event)

    def deliver(self, change: ChangeEvent) -> None:
        if self.closed:
            return
        self._queue.put_nowait(change)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        change = await self._queue.get()
        if change is None or self.closed:
            raise StopAsyncIteration
        return change


class MockTelemetryStore:
    """In-memory stand-in for the hosted telemetry database."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._tables: Dict[str, List[Row]] = {table: [] for table in TIMESTAMP_COLUMNS}
        self._next_id: Dict[str, int] = {table: 1 for table in TIMESTAMP_COLUMNS}
        self._subscriptions: List[Subscription] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    async def latest(self, table: str) -> Optional[Row]:
        """Return the row with the greatest timestamp, or ``None``."""

        column = self._column(table)
        with self._lock:
            rows = self._tables[table]
            if not rows:
                return None
            newest = max(rows, key=lambda row: parse_timestamp(row[column]))
            return copy.deepcopy(newest)

    async def select_range(self, table: str, start: datetime, end: datetime) -> List[Row]:
        """Rows with ``start <= timestamp <= end`` in ascending timestamp order."""

        column = self._column(table)
        with self._lock:
            matching = [
                row
                for row in self._tables[table]
                if start <= parse_timestamp(row[column]) <= end
            ]
            matching.sort(key=lambda row: parse_timestamp(row[column]))
            return copy.deepcopy(matching)

    async def insert(self, table: str, row: Row) -> Row:
        column = self._column(table)
        with self._lock:
            stored = dict(row)
            stored.setdefault(column, _now_iso())
            stored["id"] = self._next_id[table]
            self._next_id[table] += 1
            self._tables[table].append(stored)
            self._persist()
            result = copy.deepcopy(stored)
        self.publish(ChangeEvent(event=INSERT, table=table, new=copy.deepcopy(result)))
        return result

    async def update(self, table: str, changes: Row, defaults: Optional[Row] = None) -> Row:
        """Apply ``changes`` to the newest row of ``table``.

        An empty table gets a new row built from ``defaults`` overlaid with
        ``changes``. Subscribers see an ``UPDATE`` event either way.
        """

        column = self._column(table)
        with self._lock:
            rows = self._tables[table]
            if not rows:
                stored = dict(defaults or {})
                stored.update(changes)
                stored["id"] = self._next_id[table]
                self._next_id[table] += 1
                rows.append(stored)
            else:
                stored = max(rows, key=lambda row: parse_timestamp(row[column]))
                stored.update(changes)
            if column not in changes:
                stored[column] = _now_iso()
            self._persist()
            result = copy.deepcopy(stored)
        self.publish(ChangeEvent(event=UPDATE, table=table, new=copy.deepcopy(result)))
        return result

    def subscribe(self, event: str, table: str) -> Subscription:
        self._column(table)
        subscription = Subscription(event=event, table=table)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscribed to change stream", extra={"table": table, "event": event})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        subscription.close()
        logger.debug(
            "Removed change stream",
            extra={"table": subscription.table, "event": subscription.event},
        )

    def publish(self, change: ChangeEvent) -> None:
        """Fan a change out to every matching subscription."""

        with self._lock:
            targets = [
                subscription
                for subscription in self._subscriptions
                if subscription.matches(change.event, change.table)
            ]
        for subscription in targets:
            subscription.deliver(change)

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _column(self, table: str) -> str:
        try:
            return TIMESTAMP_COLUMNS[table]
        except KeyError:
            raise KeyError(f"Table {table!r} does not exist in store {self.name!r}.") from None

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {"tables": self._tables, "next_id": self._next_id}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for table, rows in (data.get("tables") or {}).items():
            if table in self._tables:
                self._tables[table] = list(rows)
        for table, next_id in (data.get("next_id") or {}).items():
            if table in self._next_id:
                self._next_id[table] = int(next_id)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockTelemetryStore:
    settings = get_settings()
    store_name = settings.store_name if name is None else name
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return MockTelemetryStore(name=store_name, persistence_path=persistence)
