"""Application configuration with startup validation.

All config is validated at import time via pydantic-settings.
Invalid decoding units cause an immediate, clear error instead of
silently producing wrong timestamps later.
"""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "ST_", "env_file": ".env"}

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # API
    api_version: str = "v1"

    # BLE wearable record layout
    ble_byte_order: Literal["big", "little"] = "big"
    ble_offset_unit_ms: int = 1000  # phase start offsets are device seconds
    ble_duration_unit_ms: int = 60_000  # phase durations are minutes
    ble_motion_scale: float = 0.01  # m/s² per LSB
    # "scalar": u8 bpm at offset 0; "gatt_2a37": Heart Rate Measurement with flags byte
    ble_heart_rate_layout: Literal["scalar", "gatt_2a37"] = "scalar"

    # Heart-rate confidence when a source does not report one
    default_hr_confidence: float = 0.95

    @model_validator(mode="after")
    def validate_decoding_units(self) -> "Settings":
        """Fail fast at startup if the decoder would be configured with unusable units."""
        problems = []
        if self.ble_offset_unit_ms <= 0:
            problems.append("ST_BLE_OFFSET_UNIT_MS must be positive")
        if self.ble_duration_unit_ms <= 0:
            problems.append("ST_BLE_DURATION_UNIT_MS must be positive")
        if self.ble_motion_scale <= 0:
            problems.append("ST_BLE_MOTION_SCALE must be positive")
        if not 0.0 <= self.default_hr_confidence <= 1.0:
            problems.append("ST_DEFAULT_HR_CONFIDENCE must be within [0, 1]")
        if problems:
            raise ValueError("; ".join(problems))
        return self


settings = Settings()
