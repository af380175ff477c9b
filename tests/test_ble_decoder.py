"""Tests for the BLE wearable decoder (record walking, heart-rate and motion samples)."""

import struct
from datetime import timedelta

import pytest

from shared.config import settings
from sleeptracker.decoders.ble import (
    PHASE_RECORD_SIZE,
    BleCharacteristic,
    BleDecoder,
    BleNotification,
    decode_phase_records,
    encode_phase_records,
)
from sleeptracker.domain.errors import (
    LengthMismatchError,
    MissingFieldError,
    TruncatedRecordError,
    UnrecognizedLayoutError,
)
from sleeptracker.domain.models import RawPhaseEvent, SourceKind
from tests.conftest import NIGHT_START, phase_records


@pytest.fixture
def decoder():
    return BleDecoder(
        byte_order="big",
        offset_unit_ms=1000,
        duration_unit_ms=60_000,
        motion_scale=0.01,
        default_confidence=0.95,
        heart_rate_layout="scalar",
    )


class TestPhaseRecords:
    def test_walks_until_exhausted(self, decoder):
        data = phase_records((0, 0, 60), (1, 3600, 30), (2, 5400, 90))
        batch = decoder.decode(data)

        assert batch.source == SourceKind.BLE_WEARABLE
        assert [e.phase_code for e in batch.phases] == [0, 1, 2]
        assert [e.start_offset for e in batch.phases] == [0, 3600, 5400]
        assert [e.duration_units for e in batch.phases] == [60, 30, 90]

    def test_empty_buffer_yields_no_phases(self, decoder):
        batch = decoder.decode(b"")
        assert batch.phases == ()

    def test_trailing_partial_record_is_truncation(self, decoder):
        data = phase_records((0, 0, 60)) + b"\x01\x00\x00"
        with pytest.raises(TruncatedRecordError) as exc_info:
            decoder.decode(data)
        assert exc_info.value.available == PHASE_RECORD_SIZE + 3
        assert exc_info.value.reason == "truncated_record"

    def test_little_endian_layout(self):
        data = phase_records((1, 120, 45), byte_order="<")
        events = decode_phase_records(data, "little")
        assert events == [RawPhaseEvent(phase_code=1, start_offset=120, duration_units=45)]

    def test_byte_order_matters(self):
        data = phase_records((1, 1, 1), byte_order="<")
        events = decode_phase_records(data, "big")
        assert events[0].start_offset == 1 << 24

    def test_encode_then_walk_recovers_events(self):
        events = [
            RawPhaseEvent(phase_code=0, start_offset=0, duration_units=60),
            RawPhaseEvent(phase_code=3, start_offset=3600, duration_units=15),
        ]
        assert decode_phase_records(encode_phase_records(events)) == events

    @pytest.mark.parametrize("byte_order, prefix", [("big", ">"), ("little", "<")])
    @pytest.mark.parametrize(
        "records",
        [
            (),
            ((0, 0, 60),),
            ((0, 0, 120), (1, 7200, 90), (2, 12600, 270)),
            ((3, 0xFFFFFFFF, 0), (255, 1, 0xFFFFFFFF)),
        ],
    )
    def test_walk_then_encode_reproduces_bytes(self, byte_order, prefix, records):
        data = phase_records(*records, byte_order=prefix)
        assert encode_phase_records(decode_phase_records(data, byte_order), byte_order) == data

    def test_device_epoch_becomes_time_base(self, decoder):
        notification = BleNotification(
            characteristic=BleCharacteristic.SLEEP_PHASES,
            data=phase_records((0, 3600, 60)),
            device_epoch=NIGHT_START,
        )
        batch = decoder.decode(notification)
        assert batch.time_base.epoch == NIGHT_START
        assert batch.time_base.to_datetime(3600) == NIGHT_START + timedelta(hours=1)
        assert batch.time_base.to_minutes(60) == 60


class TestHeartRateMeasurement:
    @pytest.fixture
    def decoder(self):
        return BleDecoder(heart_rate_layout="gatt_2a37", offset_unit_ms=1000)

    def _notification(self, data: bytes, seconds: int = 600) -> BleNotification:
        return BleNotification(
            characteristic=BleCharacteristic.HEART_RATE,
            data=data,
            received_at=NIGHT_START + timedelta(seconds=seconds),
            device_epoch=NIGHT_START,
        )

    def test_uint8_value(self, decoder):
        batch = decoder.decode(self._notification(bytes([0x00, 72])))
        (sample,) = batch.heart_rate
        assert sample.bpm == 72
        assert sample.offset == 600
        assert sample.confidence == 0.95

    def test_uint16_value_is_little_endian(self, decoder):
        batch = decoder.decode(self._notification(b"\x01" + struct.pack("<H", 300)))
        assert batch.heart_rate[0].bpm == 300

    def test_flags_without_value_is_truncated(self, decoder):
        with pytest.raises(TruncatedRecordError):
            decoder.decode(self._notification(b"\x00"))

    def test_uint16_flag_with_one_value_byte_is_truncated(self, decoder):
        with pytest.raises(TruncatedRecordError):
            decoder.decode(self._notification(bytes([0x01, 0x2C])))

    def test_offset_floors_to_time_base_unit(self, decoder):
        notification = BleNotification(
            characteristic=BleCharacteristic.HEART_RATE,
            data=bytes([0x00, 60]),
            received_at=NIGHT_START + timedelta(seconds=10, milliseconds=900),
            device_epoch=NIGHT_START,
        )
        assert decoder.decode(notification).heart_rate[0].offset == 10

    def test_missing_received_at(self, decoder):
        notification = BleNotification(
            characteristic=BleCharacteristic.HEART_RATE, data=bytes([0x00, 60])
        )
        with pytest.raises(MissingFieldError) as exc_info:
            decoder.decode(notification)
        assert exc_info.value.field == "received_at"

    def test_custom_default_confidence(self):
        decoder = BleDecoder(default_confidence=0.5, heart_rate_layout="gatt_2a37")
        batch = decoder.decode(self._notification(bytes([0x00, 50])))
        assert batch.heart_rate[0].confidence == 0.5


class TestScalarHeartRate:
    def _notification(self, data: bytes) -> BleNotification:
        return BleNotification(
            characteristic=BleCharacteristic.HEART_RATE,
            data=data,
            received_at=NIGHT_START + timedelta(minutes=5),
            device_epoch=NIGHT_START,
        )

    def test_single_byte_is_bpm(self, decoder):
        (sample,) = decoder.decode(self._notification(bytes([72]))).heart_rate
        assert sample.bpm == 72
        assert sample.offset == 300

    def test_reads_offset_zero_only(self, decoder):
        assert decoder.decode(self._notification(bytes([64, 0xFF]))).heart_rate[0].bpm == 64

    def test_empty_value_is_truncated(self, decoder):
        with pytest.raises(TruncatedRecordError):
            decoder.decode(self._notification(b""))

    def test_layout_is_configurable(self, monkeypatch):
        monkeypatch.setattr(settings, "ble_heart_rate_layout", "gatt_2a37")
        batch = BleDecoder().decode(self._notification(bytes([0x00, 58])))
        assert batch.heart_rate[0].bpm == 58


class TestMotion:
    def test_scaled_axes(self, decoder):
        notification = BleNotification(
            characteristic=BleCharacteristic.MOTION,
            data=struct.pack(">hhh", 100, -200, 981),
            received_at=NIGHT_START + timedelta(minutes=1),
            device_epoch=NIGHT_START,
        )
        (sample,) = decoder.decode(notification).motion
        assert sample.offset == 60
        assert sample.x == pytest.approx(1.0)
        assert sample.y == pytest.approx(-2.0)
        assert sample.z == pytest.approx(9.81)

    def test_short_motion_payload(self, decoder):
        notification = BleNotification(
            characteristic=BleCharacteristic.MOTION,
            data=b"\x00\x01\x00\x02",
            received_at=NIGHT_START,
        )
        with pytest.raises(TruncatedRecordError):
            decoder.decode(notification)


class TestNotificationEnvelope:
    def test_declared_length_mismatch(self, decoder):
        notification = BleNotification(
            characteristic=BleCharacteristic.SLEEP_PHASES,
            data=phase_records((0, 0, 60)),
            declared_length=18,
        )
        with pytest.raises(LengthMismatchError) as exc_info:
            decoder.decode(notification)
        assert exc_info.value.declared == 18
        assert exc_info.value.actual == PHASE_RECORD_SIZE

    def test_dict_with_hex_data(self, decoder):
        batch = decoder.decode(
            {
                "characteristic": "sleep_phases",
                "data": phase_records((2, 60, 20)).hex(),
                "device_epoch": "2024-03-14T22:00:00Z",
            }
        )
        assert batch.phases[0].phase_code == 2
        assert batch.time_base.epoch == NIGHT_START

    @pytest.mark.parametrize(
        "payload",
        [
            {"characteristic": "battery", "data": "00"},
            {"characteristic": "heart_rate", "data": "zz"},
            {"characteristic": "heart_rate", "data": "0048", "received_at": "2024-03-14T22:00:00"},
            ["not", "a", "notification"],
            12,
        ],
    )
    def test_unrecognized_layout(self, decoder, payload):
        with pytest.raises(UnrecognizedLayoutError):
            decoder.decode(payload)
