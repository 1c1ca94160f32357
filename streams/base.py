"""Broker-neutral stream interfaces the worker and the gateway depend on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from streams.cancellation import CancellationToken


@dataclass(frozen=True, slots=True)
class StreamMessage:
    """A keyed message; broker metadata is only set on consumed messages."""

    key: Optional[str]
    value: bytes
    topic: Optional[str] = None
    partition: Optional[int] = None
    offset: Optional[int] = None


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    """Broker acknowledgment of a publish."""

    topic: str
    key: Optional[str]
    partition: int
    offset: int


@runtime_checkable
class StreamConsumer(Protocol):
    def subscribe(self, topic: str) -> None:
        """Register interest in ``topic``; raises StreamConnectionError."""

    def consume(self, cancellation: CancellationToken) -> Optional[StreamMessage]:
        """Block until a message arrives; return None once cancelled."""

    def close(self) -> None:
        """Release broker resources."""


@runtime_checkable
class StreamProducer(Protocol):
    def produce(self, topic: str, message: StreamMessage) -> DeliveryResult:
        """Publish ``message``; raises PublishError on a failed send."""

    def flush(self) -> None:
        """Drain buffered sends."""

    def close(self) -> None:
        """Release broker resources."""
