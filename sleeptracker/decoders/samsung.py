"""Samsung Health → decoded batch.

Inbound anti-corruption layer for one sleep record returned by the
Samsung Health bridge.

Shape:
    {"startDate": 1710457200000, "endDate": 1710486000000,
     "phases": [{"type": "deep", "startTime": 1710457200000, "duration": 45}],
     "heartRate": [{"startDate": ..., "value": 58, "confidence": 0.9}],
     "movement": [{"startDate": ..., "acceleration": {"x": 0.1, "y": 0.0, "z": 9.8}}],
     "awakenings": 2}

Key points:
- Timestamps are epoch milliseconds (ISO strings are tolerated)
- Phase durations are minutes
- startDate/endDate bound the record and become time in bed
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

_MS_PER_MINUTE = 60_000


class SamsungHealthDecoder:
    source = SourceKind.SAMSUNG_HEALTH

    def decode(self, payload: Any) -> DecodedBatch:
        entry = require_mapping(self.source, payload)
        start_ms = to_epoch_ms(self.source, require(self.source, entry, "startDate"), "startDate")
        end_ms = to_epoch_ms(self.source, require(self.source, entry, "endDate"), "endDate")
        raw_phases = require_list(self.source, entry, "phases")

        with field_values(self.source):
            return DecodedBatch(
                source=self.source,
                time_base=TimeBase(offset_unit_ms=1, duration_unit_ms=_MS_PER_MINUTE),
                phases=tuple(typed_phase_event(self.source, p) for p in raw_phases),
                heart_rate=heart_rate_samples(
                    self.source, optional_list(self.source, entry, "heartRate")
                ),
                motion=motion_samples(
                    self.source, optional_list(self.source, entry, "movement")
                ),
                metadata=SessionMetadata(
                    awakenings=optional_int(self.source, entry, "awakenings"),
                    time_in_bed=(end_ms - start_ms) // _MS_PER_MINUTE,
                    source_record_id=optional_str(entry, "datauuid"),
                ),
            )
