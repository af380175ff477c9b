"""Decoder factory: dispatches a source tag to its decoder.

Sources are a closed, tagged set (SourceKind). Each maps to exactly one
decoder; decoders hold no per-payload state, so instances are reusable
across concurrent calls.
"""

from sleeptracker.decoders.protocol import PayloadDecoder
from sleeptracker.domain.errors import UnrecognizedSourceError
from sleeptracker.domain.models import SourceKind


def supported_sources() -> list[str]:
    return [kind.value for kind in SourceKind]


def get_decoder(source: str) -> PayloadDecoder:
    """Return the decoder for a source tag.

    Raises UnrecognizedSourceError for tags outside SourceKind.
    """
    from sleeptracker.decoders.apple_health import AppleHealthDecoder
    from sleeptracker.decoders.ble import BleDecoder
    from sleeptracker.decoders.health_connect import HealthConnectDecoder
    from sleeptracker.decoders.manual import ManualImportDecoder
    from sleeptracker.decoders.samsung import SamsungHealthDecoder

    decoders: dict[str, PayloadDecoder] = {
        SourceKind.BLE_WEARABLE: BleDecoder(),
        SourceKind.SAMSUNG_HEALTH: SamsungHealthDecoder(),
        SourceKind.HEALTH_CONNECT: HealthConnectDecoder(),
        SourceKind.APPLE_HEALTH: AppleHealthDecoder(),
        SourceKind.MANUAL_IMPORT: ManualImportDecoder(),
    }
    decoder = decoders.get(source)
    if decoder is None:
        raise UnrecognizedSourceError(str(source), supported_sources())
    return decoder
