from __future__ import annotations

from typing import Any, Dict, Iterable

import typer

_SENSOR_UNITS = (
    ("ph", "pH", ""),
    ("temp", "Temperature", " °C"),
    ("ch4", "CH4", " ppm"),
    ("pressure", "Pressure", " hPa"),
)


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _switch(value: Any) -> str:
    return "on" if value else "off"


def render_state(payload: Dict[str, Any]) -> None:
    echo_heading("Reactor State")
    echo_key_values(
        [
            ("mode", "auto" if payload.get("is_auto") else "manual"),
            ("live", _switch(payload.get("live"))),
        ]
    )

    sensors = payload.get("sensors") or {}
    typer.echo()
    echo_heading("Sensors")
    if sensors:
        echo_key_values(
            [(label, f"{sensors.get(key)}{unit}") for key, label, unit in _SENSOR_UNITS]
        )
        typer.echo(f"updated: {sensors.get('timestamp')}")
    else:
        typer.echo("No sensor data available.")

    actuators = payload.get("actuators") or {}
    typer.echo()
    echo_heading("Actuators")
    if actuators:
        echo_key_values(
            [
                ("pump_acid", actuators.get("pump_acid")),
                ("pump_base", actuators.get("pump_base")),
                ("heater", actuators.get("heater")),
                ("solenoid", _switch(actuators.get("solenoid"))),
                ("stirrer", _switch(actuators.get("stirrer"))),
            ]
        )
    else:
        typer.echo("No actuator data available.")


def render_history(payload: Dict[str, Any]) -> None:
    echo_heading(f"History {payload.get('start')} .. {payload.get('end')}")
    if payload.get("loading"):
        typer.echo("(a query is still running)")

    series = payload.get("series") or []
    typer.echo()
    echo_heading("Sensors")
    if series:
        for point in series:
            typer.echo(
                f"  {point.get('label')}  pH={point.get('ph')} temp={point.get('temp')}"
                f" ch4={point.get('ch4')} pressure={point.get('pressure')}"
            )
    else:
        typer.echo("No readings in range.")

    errors = payload.get("error_series") or []
    typer.echo()
    echo_heading("Sensor Errors")
    if errors:
        for point in errors:
            typer.echo(
                f"  {point.get('label')}  ph_error={point.get('ph_error')}"
                f" ph_delta_error={point.get('ph_delta_error')}"
                f" temp_error={point.get('temp_error')}"
                f" temp_delta_error={point.get('temp_delta_error')}"
            )
    else:
        typer.echo("No sensor errors in range.")


def render_calibration(payload: Dict[str, Any]) -> None:
    data = payload.get("data") or {}
    offset = data.get("offset")
    if payload.get("success") and offset is not None:
        typer.secho(f"pH calibration succeeded. offset={offset:.3f}", fg=typer.colors.GREEN)
    else:
        typer.secho(
            f"pH calibration failed: {payload.get('message') or 'unknown error'}",
            fg=typer.colors.RED,
            err=True,
        )
