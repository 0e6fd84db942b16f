from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_calibration, render_history, render_state


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


class Switch(str, Enum):
    on = "on"
    off = "off"


class Mode(str, Enum):
    auto = "auto"
    manual = "manual"


app = typer.Typer(
    help="Utilities for monitoring and commanding the biogas reactor service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _parse_actuator_value(raw: str) -> Union[bool, int]:
    candidate = raw.strip().lower()
    if candidate in {"on", "true"}:
        return True
    if candidate in {"off", "false"}:
        return False
    try:
        return int(candidate)
    except ValueError:
        raise typer.BadParameter(f"Expected on/off or an integer, got {raw!r}.") from None


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("state")
def state_command(ctx: typer.Context) -> None:
    """Show the current sensor readings, actuators and control mode."""
    state = _get_state(ctx)
    render_state(state.client.get_state())


@app.command("refresh")
def refresh_command(ctx: typer.Context) -> None:
    """Force a re-fetch of the latest rows and chart series."""
    state = _get_state(ctx)
    render_state(state.client.refresh())


@app.command("history")
def history_command(
    ctx: typer.Context,
    start: Optional[datetime] = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="First day (inclusive)."),
    end: Optional[datetime] = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Last day (inclusive)."),
) -> None:
    """Show chart series; passing --start/--end changes the range first."""
    state = _get_state(ctx)
    payload = state.client.get_history(
        start=start.date() if start else None,
        end=end.date() if end else None,
    )
    render_history(payload)


@app.command("live")
def live_command(
    ctx: typer.Context,
    switch: Switch = typer.Argument(..., help="Turn live refresh on or off."),
) -> None:
    """Enable or disable live refresh."""
    state = _get_state(ctx)
    payload = state.client.set_live(switch is Switch.on)
    typer.echo(f"Live refresh {'enabled' if payload.get('enabled') else 'disabled'}.")


@app.command("mode")
def mode_command(
    ctx: typer.Context,
    mode: Mode = typer.Argument(..., help="auto or manual actuator control."),
) -> None:
    """Switch between automatic and manual control."""
    state = _get_state(ctx)
    payload = state.client.set_mode(mode is Mode.auto)
    typer.secho(
        f"Control mode: {'auto' if payload.get('is_auto') else 'manual'}",
        fg=typer.colors.GREEN,
    )


@app.command("actuator")
def actuator_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="pump_acid, pump_base, heater, solenoid or stirrer."),
    value: str = typer.Argument(..., help="0-255 for pumps/heater, on/off for switches."),
) -> None:
    """Send a manual actuator command (manual mode only)."""
    state = _get_state(ctx)
    payload = state.client.set_actuator(name, _parse_actuator_value(value))
    typer.secho(f"{name} set. updated={payload.get('timestamp')}", fg=typer.colors.GREEN)


@app.command("calibrate")
def calibrate_command(
    ctx: typer.Context,
    reference_ph: str = typer.Argument(..., help="pH of the reference buffer."),
    current_ph: str = typer.Argument(..., help="pH currently reported by the sensor."),
) -> None:
    """Submit a pH calibration offset."""
    state = _get_state(ctx)
    render_calibration(state.client.calibrate(reference_ph, current_ph))
