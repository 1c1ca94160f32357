"""Builds stream clients for the configured backend."""

from __future__ import annotations

from functools import lru_cache

from settings import Settings, get_settings
from streams.base import StreamConsumer, StreamProducer
from streams.kafka import KafkaStreamConsumer, KafkaStreamProducer
from streams.memory import InMemoryConsumer, InMemoryProducer, build_default_broker


def build_consumer(settings: Settings | None = None) -> StreamConsumer:
    """Create a consumer owned by a single worker; never shared."""
    settings = settings or get_settings()
    if settings.stream_backend == "memory":
        return InMemoryConsumer(build_default_broker())
    return KafkaStreamConsumer(
        bootstrap_servers=settings.broker_address,
        group_id=settings.consumer_group,
        poll_timeout_ms=settings.poll_timeout_ms,
    )


def build_producer(settings: Settings | None = None) -> StreamProducer:
    settings = settings or get_settings()
    if settings.stream_backend == "memory":
        return InMemoryProducer(build_default_broker())
    return KafkaStreamProducer(bootstrap_servers=settings.broker_address)


@lru_cache
def build_default_producer() -> StreamProducer:
    """Process-wide producer used by the HTTP gateway."""
    return build_producer()
