"""Session assembler: normalized phases + samples → one SleepSession.

Steps run in a fixed order because each relies on the chronological
order established by the one before it:
1. No phases → no session (an empty night is "no data", not an error)
2. Stable sort by phase start
3. Overlap check (fatal; overlaps are never resolved here)
4. Boundaries: earliest start, latest end
5. duration = sum of phase durations (gaps stay implicit, no Awake is synthesized)
6. time_in_bed and awakenings from source metadata, else duration and 0
"""

from collections.abc import Sequence

from sleeptracker.domain.errors import InvalidTimeInBedError, OverlappingPhasesError
from sleeptracker.domain.models import (
    HeartRateSample,
    MotionSample,
    SessionMetadata,
    SleepPhase,
    SleepSession,
    SourceKind,
)
from sleeptracker.domain.validation import validate_session_phases


def assemble_session(
    source: SourceKind,
    phases: Sequence[SleepPhase],
    heart_rate: Sequence[HeartRateSample] = (),
    motion: Sequence[MotionSample] = (),
    metadata: SessionMetadata | None = None,
) -> SleepSession | None:
    """Build one session, or None when there are no phases.

    Raises:
        OverlappingPhasesError: two phases share part of their time range.
        InvalidTimeInBedError: reported time in bed is shorter than time asleep.
    """
    if not phases:
        return None
    metadata = metadata or SessionMetadata()

    ordered = sorted(phases, key=lambda p: p.start_time)

    for violation in validate_session_phases(ordered, metadata.time_in_bed):
        if violation.reason == "overlapping_phases":
            raise OverlappingPhasesError(*violation.value)
        raise InvalidTimeInBedError(violation.value["time_in_bed"], violation.value["duration"])

    start_time = ordered[0].start_time
    end_time = max(p.end_time for p in ordered)
    duration = sum(p.duration for p in ordered)

    return SleepSession(
        source=source,
        date=start_time.date(),
        start_time=start_time,
        end_time=end_time,
        duration=duration,
        time_in_bed=duration if metadata.time_in_bed is None else metadata.time_in_bed,
        phases=tuple(ordered),
        heart_rate_samples=tuple(sorted(heart_rate, key=lambda s: s.timestamp)),
        motion_samples=tuple(sorted(motion, key=lambda s: s.timestamp)),
        awakenings=metadata.awakenings or 0,
    )
