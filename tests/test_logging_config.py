from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.listener",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Dropping change event",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_known_extras_are_appended_in_order() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(reason="missing ph", table="sensors", event="INSERT"))

    assert line == "Dropping change event | table=sensors event=INSERT reason=missing ph"


def test_none_and_unknown_extras_are_skipped() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(table=None, correlation="abc"))

    assert line == "Dropping change event"


def test_custom_extra_keys() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s", extra_keys=["timer"])

    line = formatter.format(_record(timer="sensors", table="sensors"))

    assert line == "WARNING Dropping change event | timer=sensors"
