"""Session invariant rules.

Checked by the assembler before a SleepSession is built. Rules assume
phases are already in chronological order.
Returns a list of InvariantViolation; empty list means valid.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sleeptracker.domain.models import SleepPhase


@dataclass
class InvariantViolation:
    field: str
    rule: str
    reason: str
    value: Any


def find_overlaps(phases: Sequence[SleepPhase]) -> list[tuple[SleepPhase, SleepPhase]]:
    """Pairs of adjacent phases whose time ranges intersect.

    Touching phases (one ends exactly when the next starts) do not overlap.
    A zero-length phase never overlaps anything.
    """
    overlaps = []
    latest: SleepPhase | None = None
    for phase in phases:
        if latest is not None and phase.duration > 0 and phase.start_time < latest.end_time:
            overlaps.append((latest, phase))
        if latest is None or phase.end_time > latest.end_time:
            latest = phase
    return overlaps


def validate_session_phases(
    phases: Sequence[SleepPhase], time_in_bed: int | None
) -> list[InvariantViolation]:
    errors: list[InvariantViolation] = []

    # Rule 1: Non-overlapping phases
    for first, second in find_overlaps(phases):
        errors.append(
            InvariantViolation(
                "phases",
                "non_overlapping",
                "overlapping_phases",
                (first, second),
            )
        )

    # Rule 2: Time in bed covers time asleep
    asleep = sum(p.duration for p in phases)
    if time_in_bed is not None and time_in_bed < asleep:
        errors.append(
            InvariantViolation(
                "time_in_bed",
                "covers_duration",
                "time_in_bed_too_short",
                {"time_in_bed": time_in_bed, "duration": asleep},
            )
        )

    return errors
