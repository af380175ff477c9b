"""Normalizer: source-native codes and offsets → canonical domain values.

Phase codes are mapped through a per-source lookup table. Unknown codes
become Light; this lossy default mirrors what every vendor mapper has
always done and is not an error. Tables are data: swap them per source
without touching the control logic below.

Offsets are converted to absolute timestamps with the batch's TimeBase.
All timestamps are treated as already-resolved instants.
"""

import math
from collections.abc import Mapping

import structlog

from shared.metrics import unknown_phase_codes_total
from sleeptracker.decoders.factory import supported_sources
from sleeptracker.decoders.fields import phase_key
from sleeptracker.domain.errors import UnrecognizedSourceError
from sleeptracker.domain.models import (
    DecodedBatch,
    HeartRateSample,
    MotionSample,
    NormalizedBatch,
    SleepPhase,
    SleepPhaseType,
    SourceKind,
)

logger = structlog.get_logger()

PhaseTable = Mapping[int | str, SleepPhaseType]

FALLBACK_PHASE = SleepPhaseType.LIGHT

DEEP = SleepPhaseType.DEEP
REM = SleepPhaseType.REM
LIGHT = SleepPhaseType.LIGHT
AWAKE = SleepPhaseType.AWAKE

# String keys are lower-case; codes are looked up through phase_key, so "2" finds 2.
DEFAULT_PHASE_TABLES: dict[SourceKind, PhaseTable] = {
    SourceKind.BLE_WEARABLE: {0: DEEP, 1: REM, 2: LIGHT, 3: LIGHT},
    # Samsung reports "awake" but it has always been folded into Light.
    SourceKind.SAMSUNG_HEALTH: {"deep": DEEP, "rem": REM, "light": LIGHT, "awake": LIGHT},
    SourceKind.HEALTH_CONNECT: {
        1: AWAKE,  # STAGE_TYPE_AWAKE
        2: LIGHT,  # STAGE_TYPE_SLEEPING
        3: AWAKE,  # STAGE_TYPE_OUT_OF_BED
        4: LIGHT,  # STAGE_TYPE_LIGHT
        5: DEEP,  # STAGE_TYPE_DEEP
        6: REM,  # STAGE_TYPE_REM
        7: AWAKE,  # STAGE_TYPE_AWAKE_IN_BED
    },
    SourceKind.APPLE_HEALTH: {
        "hkcategoryvaluesleepanalysisasleepunspecified": LIGHT,
        "hkcategoryvaluesleepanalysisasleep": LIGHT,
        "hkcategoryvaluesleepanalysisawake": AWAKE,
        "hkcategoryvaluesleepanalysisasleepcore": LIGHT,
        "hkcategoryvaluesleepanalysisasleepdeep": DEEP,
        "hkcategoryvaluesleepanalysisasleeprem": REM,
        1: LIGHT,
        2: AWAKE,
        3: LIGHT,
        4: DEEP,
        5: REM,
    },
    SourceKind.MANUAL_IMPORT: {"deep": DEEP, "rem": REM, "light": LIGHT, "awake": AWAKE},
}


class Normalizer:
    def __init__(self, tables: Mapping[SourceKind, PhaseTable] | None = None) -> None:
        self._tables = DEFAULT_PHASE_TABLES if tables is None else tables

    def phase_type(self, source: SourceKind, code: int | str) -> SleepPhaseType:
        """Map one source-native phase code. Unknown codes fall back to Light."""
        table = self._tables.get(source)
        if table is None:
            raise UnrecognizedSourceError(str(source), supported_sources())

        phase = table.get(phase_key(code))
        if phase is None:
            unknown_phase_codes_total.labels(source=source).inc()
            logger.debug("unknown_phase_code", source=source, code=code, fallback=FALLBACK_PHASE)
            return FALLBACK_PHASE
        return phase

    def normalize(self, batch: DecodedBatch) -> NormalizedBatch:
        tb = batch.time_base

        phases = sorted(
            (
                SleepPhase(
                    type=self.phase_type(batch.source, event.phase_code),
                    start_time=tb.to_datetime(event.start_offset),
                    duration=tb.to_minutes(event.duration_units),
                )
                for event in batch.phases
            ),
            key=lambda p: p.start_time,
        )
        heart_rate = sorted(
            (
                HeartRateSample(
                    timestamp=tb.to_datetime(s.offset), bpm=s.bpm, confidence=s.confidence
                )
                for s in batch.heart_rate
            ),
            key=lambda s: s.timestamp,
        )
        motion = sorted(
            (
                MotionSample(
                    timestamp=tb.to_datetime(s.offset),
                    x=s.x,
                    y=s.y,
                    z=s.z,
                    magnitude=math.sqrt(s.x * s.x + s.y * s.y + s.z * s.z),
                )
                for s in batch.motion
            ),
            key=lambda s: s.timestamp,
        )

        return NormalizedBatch(
            source=batch.source,
            phases=tuple(phases),
            heart_rate=tuple(heart_rate),
            motion=tuple(motion),
            metadata=batch.metadata,
        )


default_normalizer = Normalizer()
