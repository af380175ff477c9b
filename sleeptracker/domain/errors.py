"""Domain error taxonomy for the decoding and assembly core.

Every error is fatal to the single payload (decode) or single session
(assembly) that raised it; callers skip it and carry on with the rest of
the batch. Nothing here is transient, so nothing is retried.
"""


class DecodeError(Exception):
    """A raw payload could not be turned into a DecodedBatch."""

    reason = "decode_error"

    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"{source}: {detail}")


class TruncatedRecordError(DecodeError):
    reason = "truncated_record"

    def __init__(self, source: str, available: int, record_size: int):
        self.available = available
        self.record_size = record_size
        super().__init__(
            source,
            f"{available} byte(s) cannot be split into {record_size}-byte records",
        )


class MissingFieldError(DecodeError):
    reason = "missing_field"

    def __init__(self, source: str, field: str):
        self.field = field
        super().__init__(source, f"required field '{field}' is missing")


class UnrecognizedSourceError(DecodeError):
    reason = "unrecognized_source"

    def __init__(self, source: str, allowed: list[str]):
        self.allowed = allowed
        super().__init__(source, f"unrecognized source; must be one of: {', '.join(allowed)}")


class UnrecognizedLayoutError(DecodeError):
    reason = "unrecognized_layout"


class LengthMismatchError(DecodeError):
    reason = "length_mismatch"

    def __init__(self, source: str, declared: int, actual: int):
        self.declared = declared
        self.actual = actual
        super().__init__(source, f"declared length {declared} but {actual} byte(s) available")


class AssemblyError(Exception):
    """A session's phases are inconsistent; the same input always fails the same way."""

    reason = "assembly_error"


class OverlappingPhasesError(AssemblyError):
    reason = "overlapping_phases"

    def __init__(self, first, second):
        self.first = first
        self.second = second
        super().__init__(
            f"{first.type} phase at {first.start_time.isoformat()} ({first.duration} min) "
            f"overlaps {second.type} phase at {second.start_time.isoformat()}"
        )


class InvalidTimeInBedError(AssemblyError):
    reason = "time_in_bed_too_short"

    def __init__(self, time_in_bed: int, duration: int):
        self.time_in_bed = time_in_bed
        self.duration = duration
        super().__init__(
            f"time in bed ({time_in_bed} min) is shorter than time asleep ({duration} min)"
        )
