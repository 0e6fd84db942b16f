"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.schemas import (
    ActuatorCommandPayload,
    ActuatorSnapshot,
    CalibrationData,
    CalibrationResponse,
    CalibrationStatus,
    CalibrationSubmission,
    ControlModePayload,
    DateRangePayload,
    ErrorPointOut,
    HistoryResponse,
    LiveModePayload,
    SensorPointOut,
    SensorSnapshot,
    StateResponse,
)
from datastore.mock_store import MockTelemetryStore, build_default_store
from models.records import DateRange
from services.calibration import (
    CalibrationFailed,
    CalibrationRejected,
    RejectionReason,
    StoreCalibrationGateway,
    parse_ph_pair,
)
from services.control import ControlCommandFailed, ManualControlLocked
from services.history import HistoryResult
from services.session import DashboardSession, build_default_session

router = APIRouter()


def get_session() -> DashboardSession:
    return build_default_session()


def get_store() -> MockTelemetryStore:
    return build_default_store()


def _state_response(session: DashboardSession) -> StateResponse:
    sensors = session.state.sensors
    actuators = session.state.actuators
    return StateResponse(
        sensors=SensorSnapshot.model_validate(sensors) if sensors is not None else None,
        actuators=ActuatorSnapshot.model_validate(actuators) if actuators is not None else None,
        is_auto=session.arbiter.is_auto,
        live=session.live,
    )


def _history_response(session: DashboardSession, result: HistoryResult) -> HistoryResponse:
    return HistoryResponse(
        start=session.history.date_range.start,
        end=session.history.date_range.end,
        loading=session.history.loading,
        series=[SensorPointOut.model_validate(point) for point in result.series],
        error_series=[ErrorPointOut.model_validate(point) for point in result.error_series],
    )


@router.get(
    "/state",
    response_model=StateResponse,
    summary="Current sensor and actuator projections.",
)
async def get_state(session: DashboardSession = Depends(get_session)) -> StateResponse:
    return _state_response(session)


@router.post(
    "/refresh",
    response_model=StateResponse,
    summary="Re-fetch the latest rows and the chart series.",
)
async def refresh(session: DashboardSession = Depends(get_session)) -> StateResponse:
    await session.refresh()
    return _state_response(session)


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Chart series for the selected date range.",
)
async def get_history(session: DashboardSession = Depends(get_session)) -> HistoryResponse:
    return _history_response(session, session.history.snapshot())


@router.put(
    "/history/range",
    response_model=HistoryResponse,
    summary="Change the date range and re-run the history query.",
)
async def set_history_range(
    payload: DateRangePayload,
    session: DashboardSession = Depends(get_session),
) -> HistoryResponse:
    result = await session.set_range(DateRange(start=payload.start, end=payload.end))
    return _history_response(session, result)


@router.put(
    "/live",
    response_model=LiveModePayload,
    summary="Enable or disable live refresh.",
)
async def set_live_mode(
    payload: LiveModePayload,
    session: DashboardSession = Depends(get_session),
) -> LiveModePayload:
    session.set_live(payload.enabled)
    return LiveModePayload(enabled=session.live)


@router.put(
    "/control-mode",
    response_model=ControlModePayload,
    summary="Switch between automatic and manual actuator control.",
)
async def set_control_mode(
    payload: ControlModePayload,
    session: DashboardSession = Depends(get_session),
) -> ControlModePayload:
    try:
        await session.arbiter.set_auto(payload.is_auto)
    except ControlCommandFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return ControlModePayload(is_auto=session.arbiter.is_auto)


@router.put(
    "/actuators/{name}",
    response_model=ActuatorSnapshot,
    summary="Send a manual actuator command.",
)
async def set_actuator(
    name: str,
    payload: ActuatorCommandPayload,
    session: DashboardSession = Depends(get_session),
) -> ActuatorSnapshot:
    try:
        record = await session.commander.set_actuator(name, payload.value)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ManualControlLocked as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ControlCommandFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return ActuatorSnapshot.model_validate(record)


@router.get(
    "/calibration",
    response_model=CalibrationStatus,
    summary="Calibration form state and last outcome.",
)
async def get_calibration(session: DashboardSession = Depends(get_session)) -> CalibrationStatus:
    service = session.calibration
    return CalibrationStatus(
        state=service.state.value,
        reference_ph=service.reference_ph,
        current_ph=service.current_ph,
        last_offset=service.last_offset,
        last_error=service.last_error,
    )


@router.post(
    "/calibration",
    response_model=CalibrationResponse,
    summary="Replace the form with two pH readings, validate them and submit the offset.",
)
async def submit_calibration(
    payload: CalibrationSubmission,
    session: DashboardSession = Depends(get_session),
) -> CalibrationResponse:
    try:
        outcome = await session.calibration.submit(payload.reference_ph, payload.current_ph)
    except CalibrationRejected as exc:
        code = (
            status.HTTP_409_CONFLICT
            if exc.reason is RejectionReason.in_progress
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(status_code=code, detail=exc.message) from exc
    except CalibrationFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=exc.message,
        ) from exc
    return CalibrationResponse(success=True, data=CalibrationData(offset=outcome.offset))


@router.post(
    "/api/calibrate-ph",
    response_model=CalibrationResponse,
    summary="Controller-facing endpoint that records a pH offset.",
)
async def calibrate_ph(
    payload: CalibrationSubmission,
    response: Response,
    store: MockTelemetryStore = Depends(get_store),
) -> CalibrationResponse:
    try:
        reference, current = parse_ph_pair(payload.reference_ph, payload.current_ph)
    except CalibrationRejected as exc:
        response.status_code = status.HTTP_400_BAD_REQUEST
        return CalibrationResponse(success=False, message=exc.message)

    result = await StoreCalibrationGateway(store).submit(reference, current)
    if not result.success:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return result


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
