from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Union

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def get_state(self) -> Dict[str, Any]:
        return self._request("GET", "/state")

    def refresh(self) -> Dict[str, Any]:
        return self._request("POST", "/refresh")

    def get_history(self, start: Optional[date] = None, end: Optional[date] = None) -> Dict[str, Any]:
        if start is None and end is None:
            return self._request("GET", "/history")
        if start is None or end is None:
            raise typer.BadParameter("Both --start and --end are required to change the range.")
        return self._request(
            "PUT",
            "/history/range",
            json={"start": start.isoformat(), "end": end.isoformat()},
        )

    def set_live(self, enabled: bool) -> Dict[str, Any]:
        return self._request("PUT", "/live", json={"enabled": enabled})

    def set_mode(self, is_auto: bool) -> Dict[str, Any]:
        return self._request("PUT", "/control-mode", json={"is_auto": is_auto})

    def set_actuator(self, name: str, value: Union[bool, int]) -> Dict[str, Any]:
        return self._request("PUT", f"/actuators/{name}", json={"value": value})

    def calibrate(self, reference_ph: str, current_ph: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/calibration",
            json={"referencePh": reference_ph, "currentPh": current_ph},
        )

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail") or data.get("message")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
