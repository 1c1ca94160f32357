"""Kafka adapters for the stream interfaces, built on kafka-python."""

from __future__ import annotations

import logging
from typing import Optional

from kafka import KafkaConsumer, KafkaProducer
from kafka.errors import KafkaError, KafkaTimeoutError, NoBrokersAvailable

from streams.base import DeliveryResult, StreamMessage
from streams.cancellation import CancellationToken
from streams.errors import PublishError, StreamConnectionError

logger = logging.getLogger(__name__)


def _encode_key(key: Optional[str]) -> Optional[bytes]:
    return key.encode("utf-8") if key is not None else None


def _decode_key(raw: Optional[bytes]) -> Optional[str]:
    return raw.decode("utf-8") if raw is not None else None


class KafkaStreamConsumer:
    """Blocking consumer that polls in short slices so cancellation is observed promptly."""

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        poll_timeout_ms: int = 100,
        auto_offset_reset: str = "earliest",
    ) -> None:
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.poll_timeout_ms = poll_timeout_ms
        self.auto_offset_reset = auto_offset_reset
        self._consumer: Optional[KafkaConsumer] = None

    def subscribe(self, topic: str) -> None:
        try:
            if self._consumer is None:
                self._consumer = KafkaConsumer(
                    bootstrap_servers=self.bootstrap_servers,
                    group_id=self.group_id,
                    auto_offset_reset=self.auto_offset_reset,
                )
            self._consumer.subscribe([topic])
        except (NoBrokersAvailable, KafkaError) as exc:
            raise StreamConnectionError(
                f"Unable to subscribe to {topic!r} at {self.bootstrap_servers}: {exc}"
            ) from exc
        logger.info("Subscribed to topic", extra={"topic": topic})

    def consume(self, cancellation: CancellationToken) -> Optional[StreamMessage]:
        if self._consumer is None:
            raise RuntimeError("Consumer must subscribe before consuming.")
        while not cancellation.cancelled:
            try:
                batches = self._consumer.poll(timeout_ms=self.poll_timeout_ms, max_records=1)
            except KafkaError as exc:
                raise StreamConnectionError(f"Polling failed: {exc}") from exc
            for records in batches.values():
                for record in records:
                    return StreamMessage(
                        key=_decode_key(record.key),
                        value=record.value,
                        topic=record.topic,
                        partition=record.partition,
                        offset=record.offset,
                    )
        return None

    def close(self) -> None:
        if self._consumer is None:
            return
        consumer, self._consumer = self._consumer, None
        consumer.close()


class KafkaStreamProducer:
    """Synchronous-acknowledgment producer; each send waits for broker metadata."""

    def __init__(self, bootstrap_servers: str, send_timeout: float = 10.0) -> None:
        self.bootstrap_servers = bootstrap_servers
        self.send_timeout = send_timeout
        self._producer: Optional[KafkaProducer] = None

    def _client(self) -> KafkaProducer:
        if self._producer is None:
            try:
                self._producer = KafkaProducer(bootstrap_servers=self.bootstrap_servers)
            except (NoBrokersAvailable, KafkaError) as exc:
                raise StreamConnectionError(
                    f"Unable to reach broker at {self.bootstrap_servers}: {exc}"
                ) from exc
        return self._producer

    def produce(self, topic: str, message: StreamMessage) -> DeliveryResult:
        producer = self._client()
        try:
            future = producer.send(topic, key=_encode_key(message.key), value=message.value)
            metadata = future.get(timeout=self.send_timeout)
        except KafkaError as exc:
            raise PublishError(topic, message.key, str(exc)) from exc
        return DeliveryResult(
            topic=metadata.topic,
            key=message.key,
            partition=metadata.partition,
            offset=metadata.offset,
        )

    def flush(self) -> None:
        if self._producer is None:
            return
        try:
            self._producer.flush(timeout=self.send_timeout)
        except KafkaTimeoutError as exc:
            raise StreamConnectionError(f"Flush timed out: {exc}") from exc
        except KafkaError as exc:
            raise StreamConnectionError(f"Flush failed: {exc}") from exc

    def close(self) -> None:
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        producer.close(timeout=self.send_timeout)
