"""Android Health Connect → decoded batch.

Inbound anti-corruption layer for one SleepSessionRecord as serialized by
the Health Connect bridge module.

Key differences from Samsung Health:
- Timestamps are ISO 8601 instants (e.g. "2024-03-14T23:10:00Z")
- Stages carry the SDK's integer stage constant, often stringified ("5")
- Stage length is given as duration in milliseconds, or as an endTime
- The record's startTime/endTime bound the session and become time in bed
"""

from typing import Any

from sleeptracker.decoders.fields import (
    field_values,
    optional_str,
    require,
    require_list,
    require_mapping,
    to_epoch_ms,
    to_int,
)
from sleeptracker.domain.errors import MissingFieldError
from sleeptracker.domain.models import (
    DecodedBatch,
    RawPhaseEvent,
    SessionMetadata,
    SourceKind,
    TimeBase,
)

_MS_PER_MINUTE = 60_000


class HealthConnectDecoder:
    source = SourceKind.HEALTH_CONNECT

    def decode(self, payload: Any) -> DecodedBatch:
        entry = require_mapping(self.source, payload)
        start_ms = to_epoch_ms(self.source, require(self.source, entry, "startTime"), "startTime")
        end_ms = to_epoch_ms(self.source, require(self.source, entry, "endTime"), "endTime")
        raw_stages = require_list(self.source, entry, "stages")

        with field_values(self.source):
            return DecodedBatch(
                source=self.source,
                time_base=TimeBase(offset_unit_ms=1, duration_unit_ms=1),
                phases=tuple(self._stage_event(stage) for stage in raw_stages),
                metadata=SessionMetadata(
                    time_in_bed=(end_ms - start_ms) // _MS_PER_MINUTE,
                    source_record_id=optional_str(entry, "id"),
                ),
            )

    def _stage_event(self, item: Any) -> RawPhaseEvent:
        stage = require_mapping(self.source, item)
        start_ms = to_epoch_ms(self.source, require(self.source, stage, "startTime"), "startTime")

        if stage.get("duration") is not None:
            duration_ms = to_int(self.source, stage["duration"], "duration")
        elif stage.get("endTime") is not None:
            duration_ms = to_epoch_ms(self.source, stage["endTime"], "endTime") - start_ms
        else:
            raise MissingFieldError(self.source, "duration")

        return RawPhaseEvent(
            phase_code=to_int(self.source, require(self.source, stage, "stage"), "stage"),
            start_offset=start_ms,
            duration_units=duration_ms,
        )
