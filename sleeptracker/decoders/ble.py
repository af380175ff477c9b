"""BLE wearable decoder.

Inbound anti-corruption layer for GATT characteristic notifications.

Layouts:
- sleep_phases: back-to-back 9-byte records (u8 phase code, u32 start offset,
  u32 duration), byte order per device configuration. The buffer is walked
  until exhausted; a trailing partial record is an error, never dropped.
- heart_rate: by default a single u8 bpm at offset 0. With the gatt_2a37
  layout, a standard Heart Rate Measurement: flags byte, bit 0 selects a u8
  or little-endian u16 value at offset 1. One sample per notification.
- motion: three signed 16-bit axes at offsets 0/2/4, scaled to m/s².
  One sample per notification.

Start offsets count device seconds since the device epoch and durations
count minutes unless configured otherwise.
"""

import struct
from collections.abc import Iterable
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.config import settings
from sleeptracker.domain.errors import (
    LengthMismatchError,
    MissingFieldError,
    TruncatedRecordError,
    UnrecognizedLayoutError,
)
from sleeptracker.domain.models import (
    UNIX_EPOCH,
    DecodedBatch,
    RawHeartRateSample,
    RawMotionSample,
    RawPhaseEvent,
    SourceKind,
    TimeBase,
)

ByteOrder = Literal["big", "little"]
HeartRateLayout = Literal["scalar", "gatt_2a37"]

PHASE_RECORD_SIZE = 9
MOTION_PAYLOAD_SIZE = 6
_HR_VALUE_FORMAT_UINT16 = 0x01


class BleCharacteristic(StrEnum):
    SLEEP_PHASES = "sleep_phases"
    HEART_RATE = "heart_rate"
    MOTION = "motion"


class BleNotification(BaseModel):
    """One characteristic value update as handed over by the GATT client."""

    model_config = ConfigDict(frozen=True)

    characteristic: BleCharacteristic
    data: bytes
    received_at: datetime | None = None
    declared_length: int | None = Field(None, ge=0)
    # None: use the folding buffer's device clock, else the Unix epoch
    device_epoch: datetime | None = None

    @field_validator("data", mode="before")
    @classmethod
    def accept_hex(cls, v: Any) -> Any:
        """JSON callers send the characteristic value as a hex string."""
        if isinstance(v, str):
            return bytes.fromhex(v)
        return v

    @field_validator("received_at", "device_epoch")
    @classmethod
    def require_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            raise ValueError("timestamps must be timezone-aware")
        return v


def _prefix(byte_order: ByteOrder) -> str:
    return ">" if byte_order == "big" else "<"


def decode_phase_records(data: bytes, byte_order: ByteOrder = "big") -> list[RawPhaseEvent]:
    """Walk a buffer of fixed-width phase records."""
    if len(data) % PHASE_RECORD_SIZE:
        raise TruncatedRecordError(SourceKind.BLE_WEARABLE, len(data), PHASE_RECORD_SIZE)
    record = struct.Struct(f"{_prefix(byte_order)}BII")
    return [
        RawPhaseEvent(phase_code=code, start_offset=start, duration_units=duration)
        for code, start, duration in record.iter_unpack(data)
    ]


def encode_phase_records(events: Iterable[RawPhaseEvent], byte_order: ByteOrder = "big") -> bytes:
    """Pack events back into the device record layout."""
    record = struct.Struct(f"{_prefix(byte_order)}BII")
    return b"".join(
        record.pack(int(e.phase_code), e.start_offset, e.duration_units) for e in events
    )


class BleDecoder:
    """Decodes sleep-phase buffers and single-sample notifications."""

    source = SourceKind.BLE_WEARABLE

    def __init__(
        self,
        byte_order: ByteOrder | None = None,
        offset_unit_ms: int | None = None,
        duration_unit_ms: int | None = None,
        motion_scale: float | None = None,
        default_confidence: float | None = None,
        heart_rate_layout: HeartRateLayout | None = None,
    ) -> None:
        self.byte_order = byte_order or settings.ble_byte_order
        self.offset_unit_ms = offset_unit_ms or settings.ble_offset_unit_ms
        self.duration_unit_ms = duration_unit_ms or settings.ble_duration_unit_ms
        self.motion_scale = motion_scale or settings.ble_motion_scale
        self.default_confidence = (
            settings.default_hr_confidence if default_confidence is None else default_confidence
        )
        self.heart_rate_layout = heart_rate_layout or settings.ble_heart_rate_layout

    def decode(self, payload: Any) -> DecodedBatch:
        notification = self._as_notification(payload)
        data = notification.data

        if notification.declared_length is not None and notification.declared_length != len(data):
            raise LengthMismatchError(self.source, notification.declared_length, len(data))

        time_base = TimeBase(
            epoch=notification.device_epoch or UNIX_EPOCH,
            offset_unit_ms=self.offset_unit_ms,
            duration_unit_ms=self.duration_unit_ms,
        )

        if notification.characteristic == BleCharacteristic.SLEEP_PHASES:
            phases = decode_phase_records(data, self.byte_order)
            return DecodedBatch(source=self.source, time_base=time_base, phases=tuple(phases))

        offset = self._received_offset(notification, time_base)
        if notification.characteristic == BleCharacteristic.HEART_RATE:
            sample = RawHeartRateSample(
                offset=offset, bpm=self._read_heart_rate(data), confidence=self.default_confidence
            )
            return DecodedBatch(source=self.source, time_base=time_base, heart_rate=(sample,))

        x, y, z = self._read_motion(data)
        motion = RawMotionSample(offset=offset, x=x, y=y, z=z)
        return DecodedBatch(source=self.source, time_base=time_base, motion=(motion,))

    def _as_notification(self, payload: Any) -> BleNotification:
        if isinstance(payload, BleNotification):
            return payload
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return BleNotification(
                characteristic=BleCharacteristic.SLEEP_PHASES, data=bytes(payload)
            )
        if isinstance(payload, dict):
            try:
                return BleNotification.model_validate(payload)
            except ValidationError as exc:
                raise UnrecognizedLayoutError(
                    self.source, f"invalid notification: {exc.errors()[0]['msg']}"
                ) from exc
        raise UnrecognizedLayoutError(
            self.source, f"expected bytes or a notification, got {type(payload).__name__}"
        )

    def _received_offset(self, notification: BleNotification, time_base: TimeBase) -> int:
        if notification.received_at is None:
            raise MissingFieldError(self.source, "received_at")
        elapsed = notification.received_at - time_base.epoch
        return elapsed // timedelta(milliseconds=time_base.offset_unit_ms)

    def _read_heart_rate(self, data: bytes) -> int:
        if self.heart_rate_layout == "scalar":
            if not data:
                raise TruncatedRecordError(self.source, 0, 1)
            return data[0]
        if len(data) < 2:
            raise TruncatedRecordError(self.source, len(data), 2)
        if data[0] & _HR_VALUE_FORMAT_UINT16:
            if len(data) < 3:
                raise TruncatedRecordError(self.source, len(data), 3)
            # GATT fields are little-endian regardless of the device's record layout
            return struct.unpack_from("<H", data, 1)[0]
        return data[1]

    def _read_motion(self, data: bytes) -> tuple[float, float, float]:
        if len(data) < MOTION_PAYLOAD_SIZE:
            raise TruncatedRecordError(self.source, len(data), MOTION_PAYLOAD_SIZE)
        raw = struct.unpack_from(f"{_prefix(self.byte_order)}hhh", data, 0)
        return tuple(axis * self.motion_scale for axis in raw)  # type: ignore[return-value]
