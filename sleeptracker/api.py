"""FastAPI router for sleep telemetry consumers.

Endpoints:
- POST /api/v1/sources/{source}/payloads
- POST /api/v1/devices/notifications
- POST /api/v1/sessions/analyze
- GET  /api/v1/sessions
- GET  /api/v1/sessions/aggregate

The router holds no state of its own; assembled sessions go to the
SessionStore returned by get_store, which tests override.
"""

import time
from dataclasses import asdict
from datetime import UTC, date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from shared.config import settings
from shared.exceptions import (
    AssemblyProblemError,
    InvalidDateRangeError,
    UnsupportedSourceError,
)
from shared.metrics import api_requests_total, api_response_duration_seconds
from shared.middleware import request_id_var
from sleeptracker.decoders.factory import supported_sources
from sleeptracker.domain.errors import AssemblyError
from sleeptracker.domain.models import (
    HeartRateSample,
    MotionSample,
    SessionMetadata,
    SleepPhase,
    SleepSession,
    SourceKind,
)
from sleeptracker.insights import insights_from_metrics
from sleeptracker.pipeline import (
    PayloadResult,
    analyze_batch,
    assemble_and_score,
    fold_batch,
    process_batch,
)
from sleeptracker.ports import InMemorySessionStore, SessionStore
from sleeptracker.scoring import aggregate_metrics, awakenings_by_day, session_metrics

router = APIRouter(prefix="/api/v1")

_store = InMemorySessionStore()


def get_store() -> SessionStore:
    return _store


# --- Request models ---


class PayloadBatchRequest(BaseModel):
    payloads: list[Any] = Field(..., min_length=1, description="Raw payloads from one source")


class NotificationBatchRequest(BaseModel):
    notifications: list[dict[str, Any]] = Field(
        ..., min_length=1, description="BLE notifications in arrival order"
    )


class AnalyzeRequest(BaseModel):
    """Already-normalized data for one night."""

    source: SourceKind = SourceKind.MANUAL_IMPORT
    phases: list[SleepPhase]
    heart_rate: list[HeartRateSample] = []
    motion: list[MotionSample] = []
    awakenings: int | None = Field(None, ge=0)
    time_in_bed: int | None = Field(None, ge=0)


# --- Response helpers ---


def _meta() -> dict[str, Any]:
    return {
        "request_id": request_id_var.get(""),
        "timestamp": datetime.now(UTC).isoformat(),
        "api_version": settings.api_version,
    }


def _session_to_dict(session: SleepSession) -> dict[str, Any]:
    metrics = session_metrics(session)
    data = session.model_dump(mode="json")
    data["metrics"] = {
        "quality": metrics.quality,
        "phase_totals": {str(k): v for k, v in metrics.phase_totals.items()},
        "phase_percentages": {str(k): v for k, v in metrics.phase_percentages.items()},
        "awake_minutes": metrics.awake_minutes,
        "gap_minutes": metrics.gap_minutes,
    }
    return data


def _result_to_dict(result: PayloadResult) -> dict[str, Any]:
    return {
        "index": result.index,
        "status": result.status,
        "session": _session_to_dict(result.session) if result.session else None,
        "reason": result.reason,
        "detail": result.detail,
    }


def _check_range(start: date | None, end: date | None) -> None:
    if start and end and start >= end:
        raise InvalidDateRangeError(str(start), str(end))


def _observe(endpoint: str, method: str, status_code: int, start_time: float) -> None:
    api_requests_total.labels(endpoint=endpoint, method=method, status_code=str(status_code)).inc()
    api_response_duration_seconds.labels(endpoint=endpoint).observe(time.monotonic() - start_time)


# --- Endpoints ---


@router.post("/sources/{source}/payloads")
def submit_payloads(
    source: str,
    body: PayloadBatchRequest,
    store: SessionStore = Depends(get_store),
):
    """Decode, normalize and assemble a batch of raw payloads from one source.

    Every payload gets its own result: assembled | empty | decode_failed |
    inconsistent. A failing payload never fails the request.
    """
    start_time = time.monotonic()
    allowed = supported_sources()
    if source not in allowed:
        raise UnsupportedSourceError(source, allowed)

    result = process_batch(source, body.payloads)
    for session in result.sessions:
        store.save(session)

    _observe("payloads", "POST", 200, start_time)
    return {
        "data": {
            "results": [_result_to_dict(r) for r in result.results],
            "sessions_assembled": result.sessions_assembled,
            "payloads_empty": result.payloads_empty,
            "payloads_failed": result.payloads_failed,
        },
        "meta": _meta(),
    }


@router.post("/devices/notifications")
def submit_notifications(
    body: NotificationBatchRequest,
    store: SessionStore = Depends(get_store),
):
    """Fold one night's BLE notifications and assemble the buffered session.

    Malformed notifications are skipped and reported; the rest still count.
    """
    start_time = time.monotonic()
    folded = fold_batch(body.notifications)
    try:
        session = analyze_batch(folded.buffer.to_batch())
    except AssemblyError as exc:
        raise AssemblyProblemError(exc.reason, str(exc)) from exc
    if session is not None:
        store.save(session)

    _observe("notifications", "POST", 200, start_time)
    return {
        "data": {
            "session": _session_to_dict(session) if session else None,
            "skipped": [_result_to_dict(r) for r in folded.failures],
        },
        "meta": _meta(),
    }


@router.post("/sessions/analyze")
def analyze_session(body: AnalyzeRequest):
    """Assemble and score already-normalized data without storing it.

    An empty phase list is not an error: data is null.
    """
    start_time = time.monotonic()
    metadata = SessionMetadata(awakenings=body.awakenings, time_in_bed=body.time_in_bed)
    try:
        session = assemble_and_score(
            body.phases, body.heart_rate, body.motion, metadata, source=body.source
        )
    except AssemblyError as exc:
        raise AssemblyProblemError(exc.reason, str(exc)) from exc

    _observe("analyze", "POST", 200, start_time)
    return {
        "data": _session_to_dict(session) if session else None,
        "meta": _meta(),
    }


@router.get("/sessions")
def list_sessions(
    store: SessionStore = Depends(get_store),
    start: date | None = Query(None),
    end: date | None = Query(None),
):
    """Stored sessions whose date falls in [start, end), by start time."""
    start_time = time.monotonic()
    _check_range(start, end)

    sessions = store.list_sessions(start, end)

    _observe("sessions", "GET", 200, start_time)
    return {"data": [_session_to_dict(s) for s in sessions], "meta": _meta()}


@router.get("/sessions/aggregate")
def get_aggregate(
    store: SessionStore = Depends(get_store),
    start: date | None = Query(None),
    end: date | None = Query(None),
    days: int = Query(5, ge=1, le=31, description="Days in the awakenings series"),
):
    """Aggregate metrics, awakenings per day and insights over stored sessions."""
    start_time = time.monotonic()
    _check_range(start, end)

    sessions = store.list_sessions(start, end)
    metrics = aggregate_metrics(sessions)
    if sessions:
        series_end = sessions[-1].date
    else:
        series_end = datetime.now(UTC).date()

    data = asdict(metrics)
    data["phase_percentages"] = {str(k): v for k, v in metrics.phase_percentages.items()}
    data["awakenings_by_day"] = [
        {"date": day.isoformat(), "awakenings": count}
        for day, count in awakenings_by_day(sessions, series_end, days)
    ]
    data["insights"] = [
        {"kind": str(i.kind), "message": i.message} for i in insights_from_metrics(metrics)
    ]

    _observe("aggregate", "GET", 200, start_time)
    return {"data": data, "meta": _meta()}
