"""Per-message handling: decode a reading, detect zone transitions, publish events."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from pydantic import ValidationError

from models.records import BiometricReading, Zone, ZoneEvent
from services.classifier import ClassificationError, ZoneClassifier
from streams.base import DeliveryResult, StreamMessage, StreamProducer
from streams.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def decode_reading(message: StreamMessage) -> BiometricReading:
    try:
        return BiometricReading.model_validate_json(message.value)
    except ValidationError as exc:
        raise ClassificationError(
            f"Malformed biometric reading at offset {message.offset}: {exc}"
        ) from exc


class ZoneTransitionHandler:
    """Classifies readings and publishes a ZoneEvent whenever a zone is reached.

    Holds the last known zone of every device it has seen. The map is written
    only from the worker loop that invokes the handler, so it takes no lock.
    """

    def __init__(
        self,
        classifier: ZoneClassifier,
        producer: StreamProducer,
        output_topic: str,
    ) -> None:
        self.classifier = classifier
        self.producer = producer
        self.output_topic = output_topic
        self._last_zones: Dict[str, Zone] = {}

    def last_zone(self, device_id: str) -> Optional[Zone]:
        return self._last_zones.get(device_id)

    def __call__(
        self, message: StreamMessage, cancellation: CancellationToken
    ) -> Optional[DeliveryResult]:
        reading = decode_reading(message)
        previous = self._last_zones.get(reading.device_id)
        result = self.classifier.classify(reading, previous)

        if not result.reached:
            logger.debug(
                "Reading did not reach a new zone",
                extra={
                    "device_id": reading.device_id,
                    "heart_rate": reading.heart_rate,
                    "zone": result.zone.label,
                },
            )
            self._last_zones[reading.device_id] = result.zone
            return None

        event = ZoneEvent(
            device_id=reading.device_id,
            zone=result.zone,
            timestamp=reading.timestamp,
            heart_rate=reading.heart_rate,
            threshold=result.threshold,
        )
        delivery = self.producer.produce(
            self.output_topic,
            StreamMessage(key=reading.device_id, value=event.to_bytes()),
        )
        # Advance only once the publish is acknowledged.
        self._last_zones[reading.device_id] = result.zone
        logger.info(
            "Zone reached",
            extra={
                "device_id": reading.device_id,
                "zone": result.zone.label,
                "heart_rate": reading.heart_rate,
                "threshold": result.threshold,
                "topic": delivery.topic,
                "partition": delivery.partition,
                "offset": delivery.offset,
            },
        )
        return delivery
