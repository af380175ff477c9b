"""Synchronous fold of BLE notifications into a caller-owned buffer.

The GATT client hands over notifications one at a time. Each is decoded on
its own and folded into an immutable SessionBuffer; the caller keeps the
returned buffer and passes it back in with the next notification. No
collection is shared or mutated behind the caller's back.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from sleeptracker.decoders.ble import BleCharacteristic, BleDecoder, BleNotification
from sleeptracker.domain.errors import UnrecognizedLayoutError
from sleeptracker.domain.models import (
    DecodedBatch,
    RawHeartRateSample,
    RawMotionSample,
    RawPhaseEvent,
    SourceKind,
    TimeBase,
)


class SessionBuffer(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_base: TimeBase = TimeBase()
    # Set by for_device: the buffer's clock is authoritative for every fold
    device_clock: bool = False
    phases: tuple[RawPhaseEvent, ...] = ()
    heart_rate: tuple[RawHeartRateSample, ...] = ()
    motion: tuple[RawMotionSample, ...] = ()

    @classmethod
    def for_device(
        cls, device_epoch: datetime, decoder: BleDecoder | None = None
    ) -> "SessionBuffer":
        decoder = decoder or BleDecoder()
        return cls(
            time_base=TimeBase(
                epoch=device_epoch,
                offset_unit_ms=decoder.offset_unit_ms,
                duration_unit_ms=decoder.duration_unit_ms,
            ),
            device_clock=True,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.phases or self.heart_rate or self.motion)

    def stamp(self, payload: Any) -> Any:
        """Give a notification that carries no device epoch this buffer's clock.

        Payloads that already name an epoch, or that are not notifications at
        all, pass through untouched for the decoder to judge.
        """
        if not self.device_clock:
            return payload
        epoch = self.time_base.epoch
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return BleNotification(
                characteristic=BleCharacteristic.SLEEP_PHASES,
                data=bytes(payload),
                device_epoch=epoch,
            )
        if isinstance(payload, BleNotification) and payload.device_epoch is None:
            return payload.model_copy(update={"device_epoch": epoch})
        if isinstance(payload, dict) and payload.get("device_epoch") is None:
            return {**payload, "device_epoch": epoch}
        return payload

    def append(self, batch: DecodedBatch) -> "SessionBuffer":
        """Return a new buffer with the batch's events and samples added."""
        buffer = self
        if batch.time_base != buffer.time_base:
            if buffer.is_empty and not buffer.device_clock:
                # First notification fixes the device clock for the buffer
                buffer = buffer.model_copy(update={"time_base": batch.time_base})
            else:
                raise UnrecognizedLayoutError(
                    SourceKind.BLE_WEARABLE,
                    "notification uses a different device clock than the buffer",
                )

        return buffer.model_copy(
            update={
                "phases": buffer.phases + batch.phases,
                "heart_rate": buffer.heart_rate + batch.heart_rate,
                "motion": buffer.motion + batch.motion,
            }
        )

    def to_batch(self) -> DecodedBatch:
        return DecodedBatch(
            source=SourceKind.BLE_WEARABLE,
            time_base=self.time_base,
            phases=self.phases,
            heart_rate=self.heart_rate,
            motion=self.motion,
        )


def fold_notification(
    buffer: SessionBuffer,
    notification: BleNotification | bytes | dict[str, Any],
    decoder: BleDecoder | None = None,
) -> SessionBuffer:
    """Decode one notification and return a new buffer holding its events/samples.

    Raises DecodeError for a malformed notification; the input buffer is
    left untouched so the caller can skip it and keep folding.
    """
    decoder = decoder or BleDecoder()
    return buffer.append(decoder.decode(buffer.stamp(notification)))


def fold_notifications(
    notifications: Iterable[BleNotification | bytes | dict[str, Any]],
    buffer: SessionBuffer | None = None,
    decoder: BleDecoder | None = None,
) -> SessionBuffer:
    if buffer is None:
        buffer = SessionBuffer()
    decoder = decoder or BleDecoder()
    for notification in notifications:
        buffer = fold_notification(buffer, notification, decoder)
    return buffer
