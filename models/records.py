"""Event payloads exchanged over the biometrics and zone streams."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Zone(IntEnum):
    """Heart-rate training zones, ordered by increasing exertion."""

    NONE = 0
    ZONE1 = 1
    ZONE2 = 2
    ZONE3 = 3
    ZONE4 = 4
    ZONE5 = 5

    @property
    def label(self) -> str:
        return "None" if self is Zone.NONE else f"Zone{self.value}"

    @classmethod
    def parse(cls, value: str) -> "Zone":
        """Accept ``Zone3``, ``ZONE3``, ``3`` or ``none``."""
        candidate = value.strip().lower()
        if candidate.startswith("zone"):
            candidate = candidate[len("zone"):]
        if candidate in {"none", "0", ""}:
            return cls.NONE
        try:
            return cls(int(candidate))
        except ValueError as exc:
            raise ValueError(f"Unknown zone {value!r}.") from exc


class _StreamRecord(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    @field_validator("timestamp", check_fields=False)
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class BiometricReading(_StreamRecord):
    """A single heart-rate sample captured by a device."""

    device_id: str = Field(..., min_length=1, description="Device identifier, also the stream key.")
    heart_rate: float = Field(..., ge=0, allow_inf_nan=False, description="Beats per minute.")
    timestamp: datetime = Field(..., description="Instant the sample was captured.")


class ZoneEvent(_StreamRecord):
    """Notification that a device reached a heart-rate zone."""

    device_id: str = Field(..., min_length=1)
    zone: Zone
    timestamp: datetime
    heart_rate: float
    threshold: float = Field(..., description="Lower bound of the reached zone.")
