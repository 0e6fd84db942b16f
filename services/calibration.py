"""pH calibration offset protocol."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import httpx
from pydantic import ValidationError

from app.schemas import CalibrationData, CalibrationResponse
from datastore.mock_store import MockTelemetryStore

logger = logging.getLogger(__name__)

PH_MIN = 0.0
PH_MAX = 14.0

RawValue = Optional[Union[str, float, int]]


class CalibrationState(str, Enum):
    idle = "idle"
    validating = "validating"
    submitting = "submitting"
    rejected = "rejected"


class RejectionReason(str, Enum):
    missing_value = "missing_value"
    not_a_number = "not_a_number"
    out_of_range = "out_of_range"
    in_progress = "in_progress"


_REJECTION_MESSAGES = {
    RejectionReason.missing_value: "Both pH values are required.",
    RejectionReason.not_a_number: "pH values must be valid numbers.",
    RejectionReason.out_of_range: "pH values must be within 0-14.",
    RejectionReason.in_progress: "A calibration is already being submitted.",
}


class CalibrationRejected(ValueError):
    """Input was refused before anything was sent to the controller."""

    def __init__(self, reason: RejectionReason) -> None:
        self.reason = reason
        self.message = _REJECTION_MESSAGES[reason]
        super().__init__(self.message)


class CalibrationFailed(RuntimeError):
    """The controller-facing endpoint refused or could not be reached."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class CalibrationOutcome:
    reference_ph: float
    current_ph: float
    offset: float


def compute_offset(reference_ph: float, current_ph: float) -> float:
    return reference_ph - current_ph


def _is_blank(value: RawValue) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_number(value: RawValue) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise CalibrationRejected(RejectionReason.not_a_number) from None
    if math.isnan(number):
        raise CalibrationRejected(RejectionReason.not_a_number)
    return number


def parse_ph_pair(reference_ph: RawValue, current_ph: RawValue) -> Tuple[float, float]:
    """Validate the two readings in order: presence, numeric, range."""

    if _is_blank(reference_ph) or _is_blank(current_ph):
        raise CalibrationRejected(RejectionReason.missing_value)
    reference = _to_number(reference_ph)
    current = _to_number(current_ph)
    if not (PH_MIN <= reference <= PH_MAX and PH_MIN <= current <= PH_MAX):
        raise CalibrationRejected(RejectionReason.out_of_range)
    return reference, current


class HttpCalibrationGateway:
    """Posts calibration commands to a remote endpoint."""

    def __init__(self, url: str, timeout: float = 15.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def submit(self, reference_ph: float, current_ph: float) -> CalibrationResponse:
        try:
            response = await self._client.post(
                self.url,
                json={"referencePh": reference_ph, "currentPh": current_ph},
            )
        except httpx.HTTPError as exc:
            raise CalibrationFailed(f"Calibration endpoint unreachable: {exc}") from exc

        try:
            return CalibrationResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            if response.is_error:
                raise CalibrationFailed(
                    f"Calibration endpoint returned status {response.status_code}."
                ) from None
            raise CalibrationFailed("Unexpected response payload from calibration endpoint.") from None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class StoreCalibrationGateway:
    """Writes the calibration command straight into the store for the controller to pick up."""

    table = "ph_calibrations"

    def __init__(self, store: MockTelemetryStore) -> None:
        self.store = store

    async def submit(self, reference_ph: float, current_ph: float) -> CalibrationResponse:
        offset = compute_offset(reference_ph, current_ph)
        try:
            await self.store.insert(
                self.table,
                {"reference_ph": reference_ph, "current_ph": current_ph, "offset": offset},
            )
        except Exception as exc:  # noqa: BLE001 - surfaced to the operator
            return CalibrationResponse(success=False, message=f"Could not store calibration: {exc}")
        return CalibrationResponse(success=True, data=CalibrationData(offset=offset))

    async def aclose(self) -> None:
        return None


def _form_text(value: RawValue) -> str:
    return "" if value is None else str(value)


class CalibrationService:
    """Holds the calibration form and drives one submission at a time."""

    def __init__(self, gateway) -> None:
        self.gateway = gateway
        self.state = CalibrationState.idle
        self.reference_ph: str = ""
        self.current_ph: str = ""
        self.last_offset: Optional[float] = None
        self.last_error: Optional[str] = None
        self._idle = asyncio.Event()
        self._idle.set()

    def update_form(self, reference_ph: RawValue = None, current_ph: RawValue = None) -> None:
        if reference_ph is not None:
            self.reference_ph = str(reference_ph)
        if current_ph is not None:
            self.current_ph = str(current_ph)

    def preview_offset(self) -> Optional[float]:
        """Offset the current form would produce, or ``None`` if it is not valid yet."""
        try:
            reference, current = parse_ph_pair(self.reference_ph, self.current_ph)
        except CalibrationRejected:
            return None
        return compute_offset(reference, current)

    async def submit(self, reference_ph: RawValue, current_ph: RawValue) -> CalibrationOutcome:
        """Replace the form with both readings and submit them; a missing reading is empty."""
        if self.state is CalibrationState.submitting:
            raise CalibrationRejected(RejectionReason.in_progress)

        self.reference_ph = _form_text(reference_ph)
        self.current_ph = _form_text(current_ph)
        self.state = CalibrationState.validating
        try:
            reference, current = parse_ph_pair(self.reference_ph, self.current_ph)
        except CalibrationRejected as exc:
            self.state = CalibrationState.rejected
            self.last_error = exc.message
            logger.info("Calibration input rejected", extra={"reason": exc.reason.value})
            self.state = CalibrationState.idle
            raise

        offset = compute_offset(reference, current)
        self.state = CalibrationState.submitting
        self._idle.clear()
        try:
            response = await self.gateway.submit(reference, current)
        except CalibrationFailed as exc:
            self.last_error = exc.message
            logger.error("Calibration submit failed", extra={"reason": exc.message})
            raise
        finally:
            self.state = CalibrationState.idle
            self._idle.set()

        if not response.success:
            message = response.message or "Calibration was rejected by the controller."
            self.last_error = message
            logger.error("Calibration refused by endpoint", extra={"reason": message})
            raise CalibrationFailed(message)

        if response.data is not None and not math.isclose(response.data.offset, offset, abs_tol=1e-9):
            logger.warning(
                "Endpoint reported a different offset",
                extra={"offset": round(offset, 3), "reason": f"remote offset {response.data.offset}"},
            )

        self.reference_ph = ""
        self.current_ph = ""
        self.last_offset = offset
        self.last_error = None
        logger.info("Calibration offset submitted", extra={"offset": round(offset, 3)})
        return CalibrationOutcome(reference_ph=reference, current_ph=current, offset=offset)

    async def aclose(self) -> None:
        """Close the gateway once any submission in flight has finished."""
        await self._idle.wait()
        await self.gateway.aclose()
