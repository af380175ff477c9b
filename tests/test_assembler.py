"""Tests for session assembly and its invariant rules."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from sleeptracker.assembler import assemble_session
from sleeptracker.domain.errors import (
    AssemblyError,
    InvalidTimeInBedError,
    OverlappingPhasesError,
)
from sleeptracker.domain.models import (
    HeartRateSample,
    SessionMetadata,
    SleepPhaseType,
    SleepSession,
    SourceKind,
)
from sleeptracker.domain.validation import find_overlaps, validate_session_phases
from tests.conftest import NIGHT_START, contiguous_phases, phase

DEEP = SleepPhaseType.DEEP
REM = SleepPhaseType.REM
LIGHT = SleepPhaseType.LIGHT
AWAKE = SleepPhaseType.AWAKE
SOURCE = SourceKind.MANUAL_IMPORT


class TestAssembleSession:
    def test_empty_phases_is_no_session(self):
        assert assemble_session(SOURCE, []) is None

    def test_boundaries_and_duration(self, reference_phases):
        session = assemble_session(SOURCE, reference_phases)

        assert isinstance(session, SleepSession)
        assert session.start_time == NIGHT_START
        assert session.end_time == NIGHT_START + timedelta(minutes=480)
        assert session.duration == 480
        assert session.date == NIGHT_START.date()
        assert session.quality == 37

    def test_out_of_order_input_is_sorted(self):
        phases = [phase(REM, 60, 30), phase(DEEP, 0, 60)]
        session = assemble_session(SOURCE, phases)
        assert [p.type for p in session.phases] == [DEEP, REM]

    def test_gaps_are_not_filled(self):
        phases = [phase(DEEP, 0, 60), phase(LIGHT, 90, 60)]
        session = assemble_session(SOURCE, phases)

        assert session.duration == 120
        assert session.end_time - session.start_time == timedelta(minutes=150)
        assert AWAKE not in {p.type for p in session.phases}

    def test_end_is_latest_phase_end(self):
        # A long first phase ending after a zero-length last one
        phases = [phase(LIGHT, 0, 120), phase(AWAKE, 120, 0)]
        session = assemble_session(SOURCE, phases)
        assert session.end_time == NIGHT_START + timedelta(minutes=120)

    def test_defaults_without_metadata(self, reference_phases):
        session = assemble_session(SOURCE, reference_phases)
        assert session.time_in_bed == session.duration
        assert session.awakenings == 0

    def test_metadata_passthrough(self, reference_phases):
        metadata = SessionMetadata(awakenings=3, time_in_bed=510)
        session = assemble_session(SOURCE, reference_phases, metadata=metadata)
        assert session.time_in_bed == 510
        assert session.awakenings == 3

    def test_samples_are_sorted(self, reference_phases):
        samples = [
            HeartRateSample(timestamp=NIGHT_START + timedelta(hours=2), bpm=58, confidence=0.9),
            HeartRateSample(timestamp=NIGHT_START, bpm=64, confidence=0.9),
        ]
        session = assemble_session(SOURCE, reference_phases, heart_rate=samples)
        assert [s.bpm for s in session.heart_rate_samples] == [64, 58]

    def test_date_is_onset_date(self):
        session = assemble_session(SOURCE, [phase(LIGHT, 150, 60)])  # starts 00:30 next day
        assert session.date == (NIGHT_START + timedelta(days=1)).date()

    def test_session_is_immutable(self, reference_phases):
        session = assemble_session(SOURCE, reference_phases)
        with pytest.raises(ValidationError):
            session.duration = 10

    def test_quality_cannot_be_supplied(self, reference_phases):
        session = assemble_session(SOURCE, reference_phases)
        data = session.model_dump()
        data["quality"] = 99
        rebuilt = SleepSession.model_validate(data)
        assert rebuilt.quality == 37


class TestAssemblyErrors:
    def test_overlap_is_fatal(self):
        phases = [phase(DEEP, 0, 30), phase(REM, 20, 20)]
        with pytest.raises(OverlappingPhasesError) as exc_info:
            assemble_session(SOURCE, phases)
        assert exc_info.value.first.type == DEEP
        assert exc_info.value.second.type == REM
        assert exc_info.value.reason == "overlapping_phases"

    def test_overlap_is_deterministic(self):
        phases = [phase(REM, 20, 20), phase(DEEP, 0, 30)]
        for _ in range(3):
            with pytest.raises(OverlappingPhasesError):
                assemble_session(SOURCE, phases)

    def test_time_in_bed_shorter_than_asleep(self, reference_phases):
        with pytest.raises(InvalidTimeInBedError) as exc_info:
            assemble_session(SOURCE, reference_phases, metadata=SessionMetadata(time_in_bed=400))
        assert exc_info.value.time_in_bed == 400
        assert exc_info.value.duration == 480
        assert isinstance(exc_info.value, AssemblyError)


class TestInvariantRules:
    def test_touching_phases_do_not_overlap(self):
        assert find_overlaps(contiguous_phases((DEEP, 30), (REM, 30), (LIGHT, 30))) == []

    def test_contained_phase_overlaps(self):
        outer = phase(LIGHT, 0, 120)
        inner = phase(DEEP, 30, 10)
        assert find_overlaps([outer, inner]) == [(outer, inner)]

    def test_overlap_with_earlier_long_phase(self):
        # The third phase overlaps the first even though it clears the second
        first = phase(LIGHT, 0, 120)
        second = phase(DEEP, 10, 10)
        third = phase(REM, 60, 10)
        assert (first, third) in find_overlaps([first, second, third])

    def test_zero_length_phase_never_overlaps(self):
        assert find_overlaps([phase(LIGHT, 0, 60), phase(AWAKE, 30, 0)]) == []

    @pytest.mark.parametrize(
        "time_in_bed, expected_reasons",
        [
            (None, []),
            (480, []),
            (600, []),
            (479, ["time_in_bed_too_short"]),
        ],
    )
    def test_time_in_bed_rule(self, reference_phases, time_in_bed, expected_reasons):
        violations = validate_session_phases(reference_phases, time_in_bed)
        assert [v.reason for v in violations] == expected_reasons

    def test_both_rules_reported(self):
        phases = [phase(DEEP, 0, 30), phase(REM, 20, 20)]
        violations = validate_session_phases(phases, 10)
        assert {v.reason for v in violations} == {"overlapping_phases", "time_in_bed_too_short"}
        assert {v.field for v in violations} == {"phases", "time_in_bed"}
