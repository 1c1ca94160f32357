from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple


_BROKER_ADDRESS_ENV = "KAFKA_BOOTSTRAP_SERVERS"
_INPUT_TOPIC_ENV = "BIOMETRICS_TOPIC"
_OUTPUT_TOPIC_ENV = "ZONE_EVENTS_TOPIC"
_GROUP_ID_ENV = "WORKER_GROUP_ID"
_THRESHOLDS_ENV = "ZONE_THRESHOLDS"
_POLICY_ENV = "ZONE_REACHED_POLICY"
_BACKEND_ENV = "STREAM_BACKEND"
_POLL_TIMEOUT_ENV = "STREAM_POLL_TIMEOUT_MS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_THRESHOLDS: Tuple[float, ...] = (0.0, 120.0, 150.0, 170.0, 185.0)
_POLICIES = {"change", "at_or_above"}
_BACKENDS = {"kafka", "memory"}


@dataclass(frozen=True)
class Settings:
    broker_address: str
    input_topic: str
    output_topic: str
    consumer_group: str
    zone_thresholds: Tuple[float, ...]
    reached_policy: str
    stream_backend: str
    poll_timeout_ms: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_choice_env(name: str, choices: set[str], default: str) -> str:
    candidate = _read_str_env(name, default).lower()
    return candidate if candidate in choices else default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_thresholds(default: Tuple[float, ...]) -> Tuple[float, ...]:
    value = os.getenv(_THRESHOLDS_ENV)
    if value is None:
        return default
    parts = [part.strip() for part in value.split(",") if part.strip()]
    if not parts:
        return default
    try:
        bounds = tuple(float(part) for part in parts)
    except ValueError:
        return default
    # ZONE1..ZONE5 at most, finite, ascending, non-negative.
    if len(bounds) > len(default) or not all(math.isfinite(bound) for bound in bounds):
        return default
    if bounds[0] < 0:
        return default
    if any(lower >= upper for lower, upper in zip(bounds, bounds[1:])):
        return default
    return bounds


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        broker_address=_read_str_env(_BROKER_ADDRESS_ENV, "localhost:9092"),
        input_topic=_read_str_env(_INPUT_TOPIC_ENV, "BiometricsImported"),
        output_topic=_read_str_env(_OUTPUT_TOPIC_ENV, "HeartRateZoneReached"),
        consumer_group=_read_str_env(_GROUP_ID_ENV, "HeartRateZoneService"),
        zone_thresholds=_read_thresholds(DEFAULT_THRESHOLDS),
        reached_policy=_read_choice_env(_POLICY_ENV, _POLICIES, "change"),
        stream_backend=_read_choice_env(_BACKEND_ENV, _BACKENDS, "kafka"),
        poll_timeout_ms=_read_positive_int(_POLL_TIMEOUT_ENV, 100),
        log_level=_read_log_level("INFO"),
    )
