"""Quality & metrics engine.

Pure functions over sessions (or sequences of them). Ratios are computed
with exact rational arithmetic and rounded half-up, so recomputing on the
same input is bit-for-bit identical. Nothing here raises: empty or
degenerate input yields documented zero values, since a partial night is
a normal occurrence.

Quality weighting (fixed policy):
    quality = round(100 × (0.4·deep + 0.3·rem + 0.2·light + 0.1·(1 − awake)))
where each ratio is that phase's minutes over the summed phase minutes.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from fractions import Fraction

from sleeptracker.domain.models import (
    HeartRateSample,
    MotionSample,
    SleepPhase,
    SleepPhaseType,
    SleepSession,
)

# Weights in tenths: 0.4 deep, 0.3 REM, 0.2 light, 0.1 not-awake
_QUALITY_WEIGHTS = {
    SleepPhaseType.DEEP: 4,
    SleepPhaseType.REM: 3,
    SleepPhaseType.LIGHT: 2,
}
_AWAKE_WEIGHT = 1

# date.weekday(): Monday=0 .. Sunday=6
_WEEKEND_DAYS = {4, 5}  # Friday, Saturday


@dataclass
class SessionMetrics:
    """Per-session breakdown handed to consumers alongside the session."""

    quality: int
    phase_totals: dict[SleepPhaseType, int]
    phase_percentages: dict[SleepPhaseType, float]
    awake_minutes: int
    gap_minutes: int


@dataclass
class WeekdayWeekendSplit:
    weekday_hours: float = 0.0  # Sunday..Thursday
    weekend_hours: float = 0.0  # Friday..Saturday


@dataclass
class AggregateMetrics:
    session_count: int = 0
    efficiency: int = 0
    average_duration_hours: float = 0.0
    average_quality: float = 0.0
    average_heart_rate: float = 0.0
    average_movement: float = 0.0
    split: WeekdayWeekendSplit = field(default_factory=WeekdayWeekendSplit)
    phase_percentages: dict[SleepPhaseType, float] = field(default_factory=dict)


def round_half_up(value: Fraction, places: int = 0) -> Fraction:
    """Round a non-negative exact value half-up to `places` decimals."""
    scale = 10**places
    return Fraction(math.floor(value * scale + Fraction(1, 2)), scale)


def phase_totals(phases: Iterable[SleepPhase]) -> dict[SleepPhaseType, int]:
    """Minutes per phase type; every type is present."""
    totals = {phase_type: 0 for phase_type in SleepPhaseType}
    for phase in phases:
        totals[phase.type] += phase.duration
    return totals


def _percentages(totals: dict[SleepPhaseType, int]) -> dict[SleepPhaseType, float]:
    span = sum(totals.values())
    if span == 0:
        return {phase_type: 0.0 for phase_type in totals}
    return {
        phase_type: float(round_half_up(Fraction(100 * minutes, span), 1))
        for phase_type, minutes in totals.items()
    }


def phase_percentages(phases: Iterable[SleepPhase]) -> dict[SleepPhaseType, float]:
    """Share of the summed phase minutes per type, to one decimal; all 0.0 if empty."""
    return _percentages(phase_totals(phases))


def quality_score(phases: Iterable[SleepPhase]) -> int:
    """Integer 0-100 sleep quality; 0 when there is no phase time at all."""
    totals = phase_totals(phases)
    span = sum(totals.values())
    if span == 0:
        return 0

    weighted = sum(weight * totals[phase_type] for phase_type, weight in _QUALITY_WEIGHTS.items())
    weighted += _AWAKE_WEIGHT * (span - totals[SleepPhaseType.AWAKE])
    # 100 × weighted / (10 × span)
    return int(round_half_up(Fraction(10 * weighted, span)))


def session_metrics(session: SleepSession) -> SessionMetrics:
    totals = phase_totals(session.phases)
    span_minutes = int((session.end_time - session.start_time) / timedelta(minutes=1))
    return SessionMetrics(
        quality=session.quality,
        phase_totals=totals,
        phase_percentages=_percentages(totals),
        awake_minutes=totals[SleepPhaseType.AWAKE],
        gap_minutes=max(0, span_minutes - session.duration),
    )


def sleep_efficiency(sessions: Iterable[SleepSession]) -> int:
    """Integer percent of time in bed spent asleep, across all sessions."""
    asleep = 0
    in_bed = 0
    for session in sessions:
        asleep += session.duration
        in_bed += session.time_in_bed
    if in_bed == 0:
        return 0
    return int(round_half_up(Fraction(100 * asleep, in_bed)))


def _average_hours(minutes: Sequence[int]) -> float:
    if not minutes:
        return 0.0
    return float(round_half_up(Fraction(sum(minutes), 60 * len(minutes)), 2))


def is_weekend(day: date) -> bool:
    return day.weekday() in _WEEKEND_DAYS


def weekday_weekend_averages(sessions: Iterable[SleepSession]) -> WeekdayWeekendSplit:
    """Average hours asleep for Sun-Thu nights vs Fri-Sat nights; empty bucket → 0.0."""
    weekday: list[int] = []
    weekend: list[int] = []
    for session in sessions:
        (weekend if is_weekend(session.date) else weekday).append(session.duration)
    return WeekdayWeekendSplit(
        weekday_hours=_average_hours(weekday),
        weekend_hours=_average_hours(weekend),
    )


def average_duration_hours(sessions: Iterable[SleepSession]) -> float:
    return _average_hours([s.duration for s in sessions])


def average_quality(sessions: Iterable[SleepSession]) -> float:
    qualities = [s.quality for s in sessions]
    if not qualities:
        return 0.0
    return float(round_half_up(Fraction(sum(qualities), len(qualities)), 1))


def average_heart_rate(samples: Iterable[HeartRateSample]) -> float:
    bpms = [Fraction(s.bpm) for s in samples]
    if not bpms:
        return 0.0
    return float(round_half_up(sum(bpms) / len(bpms), 1))


def average_movement(samples: Iterable[MotionSample]) -> float:
    magnitudes = [Fraction(s.magnitude) for s in samples]
    if not magnitudes:
        return 0.0
    return float(round_half_up(sum(magnitudes) / len(magnitudes), 2))


def awakenings_by_day(
    sessions: Iterable[SleepSession], end: date, days: int = 5
) -> list[tuple[date, int]]:
    """Awakenings for each of the `days` calendar days ending at `end`.

    A day with no session counts as 0. When several sessions share a date,
    the first one wins.
    """
    by_date: dict[date, int] = {}
    for session in sessions:
        by_date.setdefault(session.date, session.awakenings)
    window = [end - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    return [(day, by_date.get(day, 0)) for day in window]


def aggregate_metrics(sessions: Iterable[SleepSession]) -> AggregateMetrics:
    sessions = list(sessions)
    all_phases = [p for session in sessions for p in session.phases]
    all_heart_rate = [s for session in sessions for s in session.heart_rate_samples]
    all_motion = [s for session in sessions for s in session.motion_samples]
    return AggregateMetrics(
        session_count=len(sessions),
        efficiency=sleep_efficiency(sessions),
        average_duration_hours=average_duration_hours(sessions),
        average_quality=average_quality(sessions),
        average_heart_rate=average_heart_rate(all_heart_rate),
        average_movement=average_movement(all_motion),
        split=weekday_weekend_averages(sessions),
        phase_percentages=phase_percentages(all_phases),
    )
