"""Field-presence helpers shared by the structured (vendor SDK) decoders.

Vendor payloads are plain dicts. Required fields raise MissingFieldError
with the vendor's own field name; timestamps arrive either as epoch
milliseconds or ISO 8601 strings and are decoded to epoch milliseconds.
"""

import math
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from shared.config import settings
from sleeptracker.domain.errors import MissingFieldError, UnrecognizedLayoutError
from sleeptracker.domain.models import (
    UNIX_EPOCH,
    RawHeartRateSample,
    RawMotionSample,
    RawPhaseEvent,
)

_ONE_MS = timedelta(milliseconds=1)
_MIN_EPOCH_MS = (datetime.min.replace(tzinfo=UTC) - UNIX_EPOCH) // _ONE_MS
_MAX_EPOCH_MS = (datetime.max.replace(tzinfo=UTC) - UNIX_EPOCH) // _ONE_MS


def require(source: str, entry: dict[str, Any], field: str) -> Any:
    """Return entry[field], treating an explicit null the same as absence."""
    value = entry.get(field)
    if value is None:
        raise MissingFieldError(source, field)
    return value


def require_mapping(source: str, payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise UnrecognizedLayoutError(
            source, f"expected a JSON object, got {type(payload).__name__}"
        )
    return payload


def require_list(source: str, entry: dict[str, Any], field: str) -> list[Any]:
    value = require(source, entry, field)
    if not isinstance(value, list):
        raise UnrecognizedLayoutError(source, f"field '{field}' must be a list")
    return value


def optional_list(source: str, entry: dict[str, Any], field: str) -> list[Any]:
    value = entry.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        raise UnrecognizedLayoutError(source, f"field '{field}' must be a list")
    return value


def to_epoch_ms(source: str, value: Any, field: str) -> int:
    """Decode an epoch-ms number or ISO 8601 string to epoch milliseconds.

    Naive ISO strings are read as UTC. NaN, infinities and values outside the
    datetime range are layout errors.
    """
    if isinstance(value, bool):
        raise UnrecognizedLayoutError(source, f"field '{field}' is not a timestamp")
    if isinstance(value, float) and not math.isfinite(value):
        raise UnrecognizedLayoutError(source, f"field '{field}' is not a finite timestamp")
    if isinstance(value, (int, float)):
        if not _MIN_EPOCH_MS <= value <= _MAX_EPOCH_MS:
            raise UnrecognizedLayoutError(source, f"field '{field}' is out of range: {value!r}")
        return int(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise UnrecognizedLayoutError(
                source, f"field '{field}' is not a timestamp: {value!r}"
            ) from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return (parsed - UNIX_EPOCH) // _ONE_MS
    raise UnrecognizedLayoutError(source, f"field '{field}' is not a timestamp")


def to_int(source: str, value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise UnrecognizedLayoutError(source, f"field '{field}' is not a number") from exc


def optional_int(source: str, entry: dict[str, Any], field: str) -> int | None:
    value = entry.get(field)
    return to_int(source, value, field) if value is not None else None


def heart_rate_samples(
    source: str, items: list[dict[str, Any]], time_field: str = "startDate"
) -> tuple[RawHeartRateSample, ...]:
    """Map [{startDate, value, confidence?}] items; confidence defaults to 0.95."""
    samples = []
    for item in items:
        item = require_mapping(source, item)
        confidence = item.get("confidence")
        samples.append(
            RawHeartRateSample(
                offset=to_epoch_ms(source, require(source, item, time_field), time_field),
                bpm=require(source, item, "value"),
                confidence=settings.default_hr_confidence if confidence is None else confidence,
            )
        )
    return tuple(samples)


def motion_samples(
    source: str, items: list[dict[str, Any]], time_field: str = "startDate"
) -> tuple[RawMotionSample, ...]:
    """Map [{startDate, acceleration: {x, y, z}}] items; a missing axis is 0.0."""
    samples = []
    for item in items:
        item = require_mapping(source, item)
        acceleration = item.get("acceleration")
        acceleration = {} if acceleration is None else require_mapping(source, acceleration)
        samples.append(
            RawMotionSample(
                offset=to_epoch_ms(source, require(source, item, time_field), time_field),
                x=acceleration.get("x") or 0.0,
                y=acceleration.get("y") or 0.0,
                z=acceleration.get("z") or 0.0,
            )
        )
    return tuple(samples)


@contextmanager
def field_values(source: str) -> Iterator[None]:
    """Report out-of-range vendor values (negative bpm, confidence > 1, ...) as layout errors."""
    try:
        yield
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "(root)"
        raise UnrecognizedLayoutError(source, f"invalid value for '{location}': {first['msg']}") from exc


def typed_phase_event(source: str, item: Any) -> RawPhaseEvent:
    """Map a {type, startTime, duration} phase item; duration is left in source units."""
    item = require_mapping(source, item)
    return RawPhaseEvent(
        phase_code=str(require(source, item, "type")),
        start_offset=to_epoch_ms(source, require(source, item, "startTime"), "startTime"),
        duration_units=to_int(source, require(source, item, "duration"), "duration"),
    )


def optional_str(entry: dict[str, Any], field: str) -> str | None:
    value = entry.get(field)
    return str(value) if value is not None else None


def phase_key(code: Any) -> Any:
    """Lookup key for a source phase code: strings are trimmed and lower-cased,
    and digit strings become the integer code they spell."""
    if not isinstance(code, str):
        return code
    key = code.strip().lower()
    return int(key) if key.isascii() and key.isdigit() else key
