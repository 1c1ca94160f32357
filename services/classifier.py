"""Heart-rate zone classification."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from models.records import BiometricReading, Zone


class ClassificationError(ValueError):
    """A reading could not be classified because it is malformed."""


class ReachedPolicy(str, Enum):
    """When a classified zone counts as newly reached for a device."""

    change = "change"
    at_or_above = "at_or_above"


_ZONES = tuple(zone for zone in Zone if zone is not Zone.NONE)


@dataclass(frozen=True)
class ZoneThresholds:
    """Lower heart-rate bound of each zone, starting at ZONE1."""

    bounds: Tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.bounds:
            raise ValueError("At least one zone threshold is required.")
        if len(self.bounds) > len(_ZONES):
            raise ValueError(f"At most {len(_ZONES)} zone thresholds are supported.")
        if any(not math.isfinite(bound) or bound < 0 for bound in self.bounds):
            raise ValueError("Zone thresholds must be finite and non-negative.")
        if any(lower >= upper for lower, upper in zip(self.bounds, self.bounds[1:])):
            raise ValueError("Zone thresholds must be strictly increasing.")

    @classmethod
    def from_values(cls, values: Iterable[float]) -> "ZoneThresholds":
        return cls(bounds=tuple(float(value) for value in values))

    def items(self) -> list[tuple[Zone, float]]:
        return list(zip(_ZONES, self.bounds))

    def lower_bound(self, zone: Zone) -> Optional[float]:
        if zone is Zone.NONE or zone > len(self.bounds):
            return None
        return self.bounds[zone - 1]


@dataclass(frozen=True)
class Classification:
    zone: Zone
    reached: bool
    threshold: Optional[float]


class ZoneClassifier:
    """Pure mapping from a reading and the previous zone to the current zone."""

    def __init__(
        self,
        thresholds: ZoneThresholds,
        policy: ReachedPolicy = ReachedPolicy.change,
    ) -> None:
        self.thresholds = thresholds
        self.policy = policy

    def zone_for(self, heart_rate: float) -> Zone:
        if not math.isfinite(heart_rate) or heart_rate < 0:
            raise ClassificationError(f"Invalid heart rate {heart_rate!r}.")
        current = Zone.NONE
        for zone, lower_bound in self.thresholds.items():
            if lower_bound > heart_rate:
                break
            current = zone
        return current

    def classify(
        self, reading: BiometricReading, previous_zone: Optional[Zone] = None
    ) -> Classification:
        if not reading.device_id:
            raise ClassificationError("Reading is missing a device id.")
        zone = self.zone_for(reading.heart_rate)
        previous = previous_zone if previous_zone is not None else Zone.NONE
        return Classification(
            zone=zone,
            reached=self._is_reached(zone, previous),
            threshold=self.thresholds.lower_bound(zone),
        )

    def _is_reached(self, zone: Zone, previous: Zone) -> bool:
        if zone is Zone.NONE:
            return False
        if self.policy is ReachedPolicy.at_or_above:
            return zone >= previous
        return zone != previous
