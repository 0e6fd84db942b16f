"""Per-session holder of the current sensor and actuator projections."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Union

from models.records import ActuatorState, SensorReading, StateKind

logger = logging.getLogger(__name__)

Projection = Union[SensorReading, ActuatorState]
Observer = Callable[[StateKind, Projection], None]

_EXPECTED_TYPES = {
    StateKind.sensors: SensorReading,
    StateKind.actuators: ActuatorState,
}


class StateStore:
    """Last-write-wins store keyed by record timestamp.

    Each projection is an immutable record, so a replace is a single reference
    swap and readers never observe a partially updated value. Observers run
    synchronously after every applied replace.
    """

    def __init__(self) -> None:
        self._current: Dict[StateKind, Optional[Projection]] = {
            StateKind.sensors: None,
            StateKind.actuators: None,
        }
        self._observers: List[Observer] = []
        self._closed = False

    def get_current(self, kind: StateKind) -> Optional[Projection]:
        return self._current[kind]

    @property
    def sensors(self) -> Optional[SensorReading]:
        return self._current[StateKind.sensors]  # type: ignore[return-value]

    @property
    def actuators(self) -> Optional[ActuatorState]:
        return self._current[StateKind.actuators]  # type: ignore[return-value]

    def replace(self, kind: StateKind, record: Projection) -> bool:
        """Install ``record`` unless the current projection is newer.

        Returns ``True`` when the record became the current projection.
        """
        expected = _EXPECTED_TYPES[kind]
        if not isinstance(record, expected):
            raise TypeError(f"{kind.value} projection requires {expected.__name__}.")

        if self._closed:
            logger.debug("Discarding update for closed session", extra={"kind": kind.value})
            return False

        current = self._current[kind]
        if current is not None and record.timestamp < current.timestamp:
            logger.debug(
                "Ignoring stale %s record from %s",
                kind.value,
                record.timestamp.isoformat(),
                extra={"kind": kind.value},
            )
            return False

        self._current[kind] = record
        for observer in list(self._observers):
            observer(kind, record)
        return True

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` and return a callable that removes it."""

        self._observers.append(observer)

        def _remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _remove

    def close(self) -> None:
        self._closed = True
        self._observers.clear()

    @property
    def closed(self) -> bool:
        return self._closed
