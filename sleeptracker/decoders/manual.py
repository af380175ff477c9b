"""Manual import → decoded batch.

Records typed in or imported by the user, already parsed into objects by
the import layer. Phase types use the canonical names ("Deep", "REM",
"Light", "Awake"); matching is case-insensitive.

Unlike device sources, the record may carry an explicit timeInBed (minutes).
When it is absent, time in bed falls back to the summed phase durations.
"""

from typing import Any

from sleeptracker.decoders.fields import (
    field_values,
    heart_rate_samples,
    motion_samples,
    optional_int,
    optional_list,
    optional_str,
    require,
    require_list,
    require_mapping,
    to_epoch_ms,
    typed_phase_event,
)
from sleeptracker.domain.models import DecodedBatch, SessionMetadata, SourceKind, TimeBase


class ManualImportDecoder:
    source = SourceKind.MANUAL_IMPORT

    def decode(self, payload: Any) -> DecodedBatch:
        entry = require_mapping(self.source, payload)
        # Bounds are required for the record to be a night at all, even though
        # the session window is derived from phases.
        to_epoch_ms(self.source, require(self.source, entry, "startDate"), "startDate")
        to_epoch_ms(self.source, require(self.source, entry, "endDate"), "endDate")
        raw_phases = require_list(self.source, entry, "phases")

        with field_values(self.source):
            return DecodedBatch(
                source=self.source,
                time_base=TimeBase(offset_unit_ms=1, duration_unit_ms=60_000),
                phases=tuple(typed_phase_event(self.source, p) for p in raw_phases),
                heart_rate=heart_rate_samples(
                    self.source, optional_list(self.source, entry, "heartRate")
                ),
                motion=motion_samples(
                    self.source, optional_list(self.source, entry, "movement")
                ),
                metadata=SessionMetadata(
                    awakenings=optional_int(self.source, entry, "awakenings"),
                    time_in_bed=optional_int(self.source, entry, "timeInBed"),
                    source_record_id=optional_str(entry, "id"),
                ),
            )
