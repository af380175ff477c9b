"""Shared test fixtures and builders."""

import struct
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sleeptracker.domain.models import (  # noqa: E402
    HeartRateSample,
    MotionSample,
    SleepPhase,
    SleepPhaseType,
    SleepSession,
    SourceKind,
)

NIGHT_START = datetime(2024, 3, 14, 22, 0, tzinfo=UTC)  # a Thursday


def phase(type_: SleepPhaseType, start_minute: int, duration: int) -> SleepPhase:
    """A phase starting `start_minute` minutes after NIGHT_START."""
    return SleepPhase(
        type=type_, start_time=NIGHT_START + timedelta(minutes=start_minute), duration=duration
    )


def contiguous_phases(*layout: tuple[SleepPhaseType, int]) -> list[SleepPhase]:
    """Back-to-back phases from NIGHT_START, e.g. ((DEEP, 60), (REM, 30))."""
    phases = []
    minute = 0
    for type_, duration in layout:
        phases.append(phase(type_, minute, duration))
        minute += duration
    return phases


def make_session(
    night: datetime = NIGHT_START,
    duration: int = 480,
    phases: list[SleepPhase] | None = None,
    awakenings: int = 0,
    time_in_bed: int | None = None,
    heart_rate: tuple[HeartRateSample, ...] = (),
    motion: tuple[MotionSample, ...] = (),
) -> SleepSession:
    """A session built directly (bypassing the assembler) for scoring tests."""
    if phases is None:
        phases = [SleepPhase(type=SleepPhaseType.LIGHT, start_time=night, duration=duration)]
    start = min(p.start_time for p in phases)
    end = max(p.end_time for p in phases)
    asleep = sum(p.duration for p in phases)
    return SleepSession(
        source=SourceKind.MANUAL_IMPORT,
        date=start.date(),
        start_time=start,
        end_time=end,
        duration=asleep,
        time_in_bed=asleep if time_in_bed is None else time_in_bed,
        phases=tuple(phases),
        heart_rate_samples=heart_rate,
        motion_samples=motion,
        awakenings=awakenings,
    )


def phase_records(*records: tuple[int, int, int], byte_order: str = ">") -> bytes:
    """Pack (code, start_offset, duration) tuples into the BLE record layout."""
    return b"".join(struct.pack(f"{byte_order}BII", *r) for r in records)


@pytest.fixture
def night_start():
    return NIGHT_START


@pytest.fixture
def reference_phases():
    """Deep 120, REM 90, Light 270, no Awake: quality 37."""
    return contiguous_phases(
        (SleepPhaseType.DEEP, 120),
        (SleepPhaseType.REM, 90),
        (SleepPhaseType.LIGHT, 270),
    )


@pytest.fixture
def samsung_record():
    return {
        "datauuid": "f1c2-77",
        "startDate": "2024-03-14T22:00:00Z",
        "endDate": "2024-03-15T06:30:00Z",
        "awakenings": 2,
        "phases": [
            {"type": "light", "startTime": "2024-03-14T22:15:00Z", "duration": 60},
            {"type": "deep", "startTime": "2024-03-14T23:15:00Z", "duration": 90},
            {"type": "REM", "startTime": "2024-03-15T00:45:00Z", "duration": 45},
        ],
        "heartRate": [
            {"startDate": "2024-03-14T23:00:00Z", "value": 62, "confidence": 0.8},
            {"startDate": "2024-03-14T22:30:00Z", "value": 66},
        ],
        "movement": [
            {"startDate": "2024-03-14T22:20:00Z", "acceleration": {"x": 3.0, "y": 4.0}},
        ],
    }


@pytest.fixture
def health_connect_record():
    return {
        "id": "hc-001",
        "startTime": "2024-03-14T22:00:00Z",
        "endTime": "2024-03-15T06:00:00Z",
        "stages": [
            {"stage": 4, "startTime": "2024-03-14T22:10:00Z", "endTime": "2024-03-14T23:10:00Z"},
            {"stage": "5", "startTime": "2024-03-14T23:10:00Z", "duration": 5_400_000},
            {"stage": 1, "startTime": "2024-03-15T00:40:00Z", "duration": 600_000},
        ],
    }


@pytest.fixture
def apple_record():
    return {
        "uuid": "A1B2",
        "startDate": "2024-03-14T21:45:00Z",
        "endDate": "2024-03-15T06:15:00Z",
        "samples": [
            {
                "value": "HKCategoryValueSleepAnalysisInBed",
                "startDate": "2024-03-14T21:45:00Z",
                "endDate": "2024-03-15T06:15:00Z",
            },
            {
                "value": "HKCategoryValueSleepAnalysisAsleepCore",
                "startDate": "2024-03-14T22:00:00Z",
                "endDate": "2024-03-14T23:00:00Z",
            },
            {
                "value": "HKCategoryValueSleepAnalysisAsleepDeep",
                "startDate": "2024-03-14T23:00:00Z",
                "endDate": "2024-03-15T00:30:00Z",
            },
            {
                "value": 5,
                "startDate": "2024-03-15T00:30:00Z",
                "endDate": "2024-03-15T01:00:00Z",
            },
        ],
        "heartRate": [{"startDate": "2024-03-14T23:30:00Z", "value": 55}],
    }


@pytest.fixture
def manual_record():
    return {
        "id": 42,
        "startDate": "2024-03-14T22:00:00",
        "endDate": "2024-03-15T06:00:00",
        "timeInBed": 480,
        "phases": [
            {"type": "Deep", "startTime": "2024-03-14T22:00:00", "duration": 120},
            {"type": "Awake", "startTime": "2024-03-15T00:00:00", "duration": 0},
            {"type": "light", "startTime": "2024-03-15T00:00:00", "duration": 240},
        ],
    }
