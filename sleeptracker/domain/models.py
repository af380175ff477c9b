"""Canonical sleep telemetry domain model.

Raw vendor/device payloads are decoded into source-native Raw* values,
normalized into absolute-time SleepPhase and sample values, and finally
assembled into one immutable SleepSession per night.

Design principles:
- Immutable: every model is frozen; a correction produces a new value
- Derived, never supplied: SleepSession.quality is recomputed from phases
- Source-tagged: every batch records which SourceKind produced it
- Aware timestamps only: timezone resolution happens before the core
"""

from datetime import UTC, date, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class SleepPhaseType(StrEnum):
    DEEP = "Deep"
    REM = "REM"
    LIGHT = "Light"
    AWAKE = "Awake"


class SourceKind(StrEnum):
    BLE_WEARABLE = "ble_wearable"
    SAMSUNG_HEALTH = "samsung_health"
    HEALTH_CONNECT = "health_connect"
    APPLE_HEALTH = "apple_health"
    MANUAL_IMPORT = "manual_import"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Decoder output (source-native units) ---


class TimeBase(_Frozen):
    """How a batch's integer offsets map onto absolute time."""

    epoch: datetime = UNIX_EPOCH
    offset_unit_ms: int = Field(1, gt=0)
    duration_unit_ms: int = Field(60_000, gt=0)

    @field_validator("epoch")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("epoch must be timezone-aware")
        return v

    def to_datetime(self, offset: int) -> datetime:
        return self.epoch + timedelta(milliseconds=offset * self.offset_unit_ms)

    def to_minutes(self, units: int) -> int:
        return (units * self.duration_unit_ms) // 60_000


class RawPhaseEvent(_Frozen):
    phase_code: int | str
    start_offset: int
    duration_units: int = Field(ge=0)


class RawHeartRateSample(_Frozen):
    offset: int
    bpm: float = Field(ge=0)
    confidence: float = Field(0.95, ge=0.0, le=1.0)


class RawMotionSample(_Frozen):
    offset: int
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class SessionMetadata(_Frozen):
    """Source-reported facts that cannot be derived from phases."""

    awakenings: int | None = Field(None, ge=0)
    time_in_bed: int | None = Field(None, ge=0)  # minutes
    source_record_id: str | None = None


class DecodedBatch(_Frozen):
    source: SourceKind
    time_base: TimeBase = TimeBase()
    phases: tuple[RawPhaseEvent, ...] = ()
    heart_rate: tuple[RawHeartRateSample, ...] = ()
    motion: tuple[RawMotionSample, ...] = ()
    metadata: SessionMetadata = SessionMetadata()


# --- Normalized values (absolute time, canonical enums) ---


class SleepPhase(_Frozen):
    type: SleepPhaseType
    start_time: datetime
    duration: int = Field(ge=0)  # minutes

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)


class HeartRateSample(_Frozen):
    timestamp: datetime
    bpm: float = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)


class MotionSample(_Frozen):
    timestamp: datetime
    x: float
    y: float
    z: float
    magnitude: float = Field(ge=0)


class NormalizedBatch(_Frozen):
    source: SourceKind
    phases: tuple[SleepPhase, ...] = ()
    heart_rate: tuple[HeartRateSample, ...] = ()
    motion: tuple[MotionSample, ...] = ()
    metadata: SessionMetadata = SessionMetadata()


class SleepSession(_Frozen):
    """One night's assembled sleep record.

    Built only by the session assembler. Consumers may hold references
    but never mutate; any correction requires assembling a new session.
    """

    source: SourceKind
    date: date
    start_time: datetime
    end_time: datetime
    duration: int = Field(ge=0)  # minutes asleep
    time_in_bed: int = Field(ge=0)  # minutes
    phases: tuple[SleepPhase, ...]
    heart_rate_samples: tuple[HeartRateSample, ...] = ()
    motion_samples: tuple[MotionSample, ...] = ()
    awakenings: int = Field(0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def quality(self) -> int:
        from sleeptracker.scoring import quality_score

        return quality_score(self.phases)
