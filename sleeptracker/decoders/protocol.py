"""Decoder protocol for raw telemetry sources.

Every source decoder implements this interface. The pipeline depends only
on the protocol, never on a concrete decoder.
"""

from typing import Any, Protocol, runtime_checkable

from sleeptracker.domain.models import DecodedBatch, SourceKind


@runtime_checkable
class PayloadDecoder(Protocol):
    """Common interface for all raw payload decoders."""

    source: SourceKind

    def decode(self, payload: Any) -> DecodedBatch:
        """Decode one raw payload into source-native events and samples.

        Args:
            payload: BLE bytes/notification or a vendor SDK object (dict).

        Returns:
            A DecodedBatch (may hold zero phases for an empty night).

        Raises:
            DecodeError: the payload is truncated, missing a required field,
                or does not match the source's layout.
        """
        ...
