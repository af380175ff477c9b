"""Analysis pipeline: raw payload → decode → normalize → assemble → score.

Every stage is a pure function of its input, so independent payloads can
be processed in parallel and replaying the same payload always produces
the same session.

Failures are per payload: a malformed notification or an inconsistent
night is logged, counted and reported, and the rest of the batch carries
on. Nothing is retried here; re-fetching belongs to the source adapter.
"""

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from shared.metrics import (
    decode_failures_total,
    payloads_decoded_total,
    pipeline_duration_seconds,
    session_quality,
    sessions_assembled_total,
)
from sleeptracker.assembler import assemble_session
from sleeptracker.buffer import SessionBuffer
from sleeptracker.decoders.factory import get_decoder
from sleeptracker.domain.errors import AssemblyError, DecodeError
from sleeptracker.domain.models import (
    DecodedBatch,
    HeartRateSample,
    MotionSample,
    SessionMetadata,
    SleepPhase,
    SleepSession,
    SourceKind,
)
from sleeptracker.normalizer import Normalizer, default_normalizer

logger = structlog.get_logger()


@dataclass
class PayloadResult:
    """Per-payload outcome from a batch."""

    index: int
    status: str  # "assembled", "empty", "decode_failed", "inconsistent"
    session: SleepSession | None = None
    reason: str | None = None
    detail: str | None = None


@dataclass
class BatchResult:
    """Aggregate outcome from processing a batch of payloads from one source."""

    source: str
    results: list[PayloadResult] = field(default_factory=list)
    sessions_assembled: int = 0
    payloads_empty: int = 0
    payloads_failed: int = 0

    @property
    def sessions(self) -> list[SleepSession]:
        return [r.session for r in self.results if r.session is not None]


def decode(source: str, payload: Any) -> DecodedBatch:
    """Decode one raw payload for a declared source tag.

    Raises DecodeError (including UnrecognizedSourceError for unknown tags).
    """
    try:
        batch = get_decoder(source).decode(payload)
    except DecodeError as exc:
        payloads_decoded_total.labels(source=source, status="failed").inc()
        decode_failures_total.labels(source=source, reason=exc.reason).inc()
        raise
    payloads_decoded_total.labels(source=source, status="decoded").inc()
    logger.debug(
        "payload_decoded",
        source=source,
        phases=len(batch.phases),
        heart_rate_samples=len(batch.heart_rate),
        motion_samples=len(batch.motion),
    )
    return batch


def assemble_and_score(
    phases: Sequence[SleepPhase],
    heart_rate: Sequence[HeartRateSample] = (),
    motion: Sequence[MotionSample] = (),
    metadata: SessionMetadata | None = None,
    source: SourceKind = SourceKind.MANUAL_IMPORT,
) -> SleepSession | None:
    """Assemble already-normalized data into a scored session.

    Returns None for an empty phase list. Raises AssemblyError when the
    phases are inconsistent.
    """
    try:
        session = assemble_session(source, phases, heart_rate, motion, metadata)
    except AssemblyError:
        sessions_assembled_total.labels(source=source, status="inconsistent").inc()
        raise

    if session is None:
        sessions_assembled_total.labels(source=source, status="empty").inc()
        return None

    sessions_assembled_total.labels(source=source, status="assembled").inc()
    session_quality.labels(source=source).observe(session.quality)
    logger.info(
        "session_assembled",
        source=source,
        date=session.date.isoformat(),
        duration=session.duration,
        quality=session.quality,
    )
    return session


@dataclass
class FoldResult:
    """Outcome of folding a run of BLE notifications into a buffer."""

    buffer: SessionBuffer
    failures: list[PayloadResult] = field(default_factory=list)


def analyze_batch(
    batch: DecodedBatch, normalizer: Normalizer = default_normalizer
) -> SleepSession | None:
    """Normalize and assemble one decoded batch."""
    normalized = normalizer.normalize(batch)
    return assemble_and_score(
        normalized.phases,
        normalized.heart_rate,
        normalized.motion,
        normalized.metadata,
        source=normalized.source,
    )


def process_payload(
    source: str, payload: Any, normalizer: Normalizer = default_normalizer
) -> SleepSession | None:
    """Decode, normalize and assemble one payload."""
    return analyze_batch(decode(source, payload), normalizer)


def fold_batch(
    notifications: Iterable[Any], buffer: SessionBuffer | None = None
) -> FoldResult:
    """Fold BLE notifications into a buffer, skipping the ones that fail to decode."""
    result = FoldResult(buffer=SessionBuffer() if buffer is None else buffer)
    for index, notification in enumerate(notifications):
        try:
            batch = decode(SourceKind.BLE_WEARABLE, result.buffer.stamp(notification))
            result.buffer = result.buffer.append(batch)
        except DecodeError as exc:
            result.failures.append(
                PayloadResult(index, "decode_failed", reason=exc.reason, detail=exc.detail)
            )
            logger.warning(
                "notification_skipped",
                index=index,
                reason=exc.reason,
                detail=exc.detail,
            )
    return result


def process_batch(
    source: str, payloads: Iterable[Any], normalizer: Normalizer = default_normalizer
) -> BatchResult:
    """Process many payloads from one source; one bad payload never aborts the rest."""
    start_time = time.monotonic()
    result = BatchResult(source=source)

    for index, payload in enumerate(payloads):
        try:
            session = process_payload(source, payload, normalizer)
        except DecodeError as exc:
            result.payloads_failed += 1
            result.results.append(
                PayloadResult(index, "decode_failed", reason=exc.reason, detail=exc.detail)
            )
            logger.warning(
                "payload_decode_failed",
                source=source,
                index=index,
                reason=exc.reason,
                detail=exc.detail,
            )
            continue
        except AssemblyError as exc:
            result.payloads_failed += 1
            result.results.append(
                PayloadResult(index, "inconsistent", reason=exc.reason, detail=str(exc))
            )
            logger.warning(
                "session_inconsistent",
                source=source,
                index=index,
                reason=exc.reason,
                detail=str(exc),
            )
            continue

        if session is None:
            result.payloads_empty += 1
            result.results.append(PayloadResult(index, "empty"))
        else:
            result.sessions_assembled += 1
            result.results.append(PayloadResult(index, "assembled", session=session))

    pipeline_duration_seconds.labels(source=source).observe(time.monotonic() - start_time)
    return result
