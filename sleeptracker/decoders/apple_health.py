"""Apple HealthKit → decoded batch.

Inbound anti-corruption layer for one night of HKCategoryTypeIdentifierSleepAnalysis
samples as forwarded by the iOS bridge.

Key differences from the Android sources:
- Each sample is a (value, startDate, endDate) interval; value is either the
  HKCategoryValueSleepAnalysis* identifier or its raw integer
- InBed samples describe the bed-time boundary, not a sleep stage: they are
  excluded from phases and their overall extent becomes time in bed
"""

from typing import Any

from sleeptracker.decoders.fields import (
    field_values,
    heart_rate_samples,
    optional_list,
    optional_str,
    phase_key,
    require,
    require_list,
    require_mapping,
    to_epoch_ms,
)
from sleeptracker.domain.models import (
    DecodedBatch,
    RawPhaseEvent,
    SessionMetadata,
    SourceKind,
    TimeBase,
)

# Matched through phase_key, like phase codes
IN_BED_KEYS = {"hkcategoryvaluesleepanalysisinbed", 0}

_MS_PER_MINUTE = 60_000


class AppleHealthDecoder:
    source = SourceKind.APPLE_HEALTH

    def decode(self, payload: Any) -> DecodedBatch:
        entry = require_mapping(self.source, payload)
        to_epoch_ms(self.source, require(self.source, entry, "startDate"), "startDate")
        to_epoch_ms(self.source, require(self.source, entry, "endDate"), "endDate")
        raw_samples = require_list(self.source, entry, "samples")

        phases: list[RawPhaseEvent] = []
        in_bed: list[tuple[int, int]] = []
        with field_values(self.source):
            for item in raw_samples:
                sample = require_mapping(self.source, item)
                value = require(self.source, sample, "value")
                start_ms = to_epoch_ms(
                    self.source, require(self.source, sample, "startDate"), "startDate"
                )
                end_ms = to_epoch_ms(self.source, require(self.source, sample, "endDate"), "endDate")
                if isinstance(value, (str, int)) and phase_key(value) in IN_BED_KEYS:
                    in_bed.append((start_ms, end_ms))
                    continue
                phases.append(
                    RawPhaseEvent(
                        phase_code=value, start_offset=start_ms, duration_units=end_ms - start_ms
                    )
                )

            time_in_bed = None
            if in_bed:
                extent = max(end for _, end in in_bed) - min(start for start, _ in in_bed)
                time_in_bed = extent // _MS_PER_MINUTE

            return DecodedBatch(
                source=self.source,
                time_base=TimeBase(offset_unit_ms=1, duration_unit_ms=1),
                phases=tuple(phases),
                heart_rate=heart_rate_samples(
                    self.source, optional_list(self.source, entry, "heartRate")
                ),
                metadata=SessionMetadata(
                    time_in_bed=time_in_bed,
                    source_record_id=optional_str(entry, "uuid"),
                ),
            )
