"""Tests for per-message zone transition handling."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

import pytest

from models.records import BiometricReading, Zone, ZoneEvent
from services.classifier import ClassificationError, ZoneClassifier, ZoneThresholds
from services.zone_handler import ZoneTransitionHandler, decode_reading
from streams.base import StreamMessage
from streams.cancellation import CancellationToken
from streams.memory import InMemoryBroker, InMemoryProducer

OUTPUT_TOPIC = "HeartRateZoneReached"
CAPTURED_AT = datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)


def _message(device_id: str, heart_rate: float) -> StreamMessage:
    reading = BiometricReading(device_id=device_id, heart_rate=heart_rate, timestamp=CAPTURED_AT)
    return StreamMessage(key=device_id, value=reading.to_bytes(), offset=0)


@pytest.fixture()
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture()
def handler(broker: InMemoryBroker) -> ZoneTransitionHandler:
    classifier = ZoneClassifier(ZoneThresholds((0.0, 120.0, 150.0, 170.0, 185.0)))
    return ZoneTransitionHandler(classifier, InMemoryProducer(broker), OUTPUT_TOPIC)


def test_publishes_zone_event_keyed_by_device(
    handler: ZoneTransitionHandler, broker: InMemoryBroker
) -> None:
    handler._last_zones["D1"] = Zone.ZONE2  # type: ignore[attr-defined]

    delivery = handler(_message("D1", 160), CancellationToken())

    assert delivery is not None
    published = broker.messages(OUTPUT_TOPIC)
    assert len(published) == 1
    assert published[0].key == "D1"
    event = ZoneEvent.model_validate_json(published[0].value)
    assert event == ZoneEvent(
        device_id="D1",
        zone=Zone.ZONE3,
        timestamp=CAPTURED_AT,
        heart_rate=160,
        threshold=150,
    )
    assert handler.last_zone("D1") is Zone.ZONE3


def test_zone_event_uses_camel_case_wire_names(
    handler: ZoneTransitionHandler, broker: InMemoryBroker
) -> None:
    handler(_message("D1", 175), CancellationToken())

    payload = json.loads(broker.messages(OUTPUT_TOPIC)[0].value)
    assert set(payload) == {"deviceId", "zone", "timestamp", "heartRate", "threshold"}
    assert payload["zone"] == 4


def test_repeated_zone_publishes_once(
    handler: ZoneTransitionHandler, broker: InMemoryBroker
) -> None:
    for rate in (125, 130, 140):
        handler(_message("D1", rate), CancellationToken())

    assert len(broker.messages(OUTPUT_TOPIC)) == 1


def test_devices_are_tracked_independently(
    handler: ZoneTransitionHandler, broker: InMemoryBroker
) -> None:
    handler(_message("D1", 125), CancellationToken())
    handler(_message("D2", 125), CancellationToken())
    handler(_message("D1", 126), CancellationToken())

    keys = [message.key for message in broker.messages(OUTPUT_TOPIC)]
    assert keys == ["D1", "D2"]
    assert handler.last_zone("D1") is Zone.ZONE2
    assert handler.last_zone("D2") is Zone.ZONE2
    assert handler.last_zone("D3") is None


def test_logs_reached_zone_with_context(handler: ZoneTransitionHandler, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="services.zone_handler"):
        handler(_message("D9", 190), CancellationToken())

    records = [record for record in caplog.records if record.name == "services.zone_handler"]
    assert any(record.getMessage() == "Zone reached" for record in records)
    assert any(getattr(record, "device_id", None) == "D9" for record in records)
    assert any(getattr(record, "zone", None) == "Zone5" for record in records)


def test_malformed_payload_raises_classification_error(handler: ZoneTransitionHandler) -> None:
    with pytest.raises(ClassificationError):
        handler(StreamMessage(key="D1", value=b"not json", offset=7), CancellationToken())


def test_missing_device_id_raises_classification_error() -> None:
    value = json.dumps({"deviceId": "  ", "heartRate": 100, "timestamp": "2024-01-01T00:00:00Z"})

    with pytest.raises(ClassificationError, match="offset 3"):
        decode_reading(StreamMessage(key=None, value=value.encode("utf-8"), offset=3))


def test_decode_normalizes_timestamps_to_utc() -> None:
    value = json.dumps({"deviceId": "D1", "heartRate": 100, "timestamp": "2024-01-01T02:00:00+02:00"})

    reading = decode_reading(StreamMessage(key="D1", value=value.encode("utf-8")))

    assert reading.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert reading.timestamp.tzinfo == timezone.utc


def test_failed_publish_leaves_last_zone_unchanged(
    handler: ZoneTransitionHandler, broker: InMemoryBroker
) -> None:
    broker.set_reachable(False)

    with pytest.raises(Exception):
        handler(_message("D1", 160), CancellationToken())

    assert handler.last_zone("D1") is None
