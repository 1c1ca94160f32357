from __future__ import annotations

import threading
from functools import lru_cache
from typing import Dict, List, Optional

from streams.base import DeliveryResult, StreamMessage
from streams.cancellation import CancellationToken
from streams.errors import PublishError, StreamConnectionError


class InMemoryBroker:
    """Single-partition, append-only topics held in process memory."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._topics: Dict[str, List[StreamMessage]] = {}
        self._condition = threading.Condition(threading.RLock())
        self._reachable = True

    def set_reachable(self, reachable: bool) -> None:
        with self._condition:
            self._reachable = reachable
            self._condition.notify_all()

    def ensure_reachable(self) -> None:
        if not self._reachable:
            raise StreamConnectionError(f"Broker {self.name!r} is unreachable.")

    def append(self, topic: str, key: Optional[str], value: bytes) -> DeliveryResult:
        with self._condition:
            self.ensure_reachable()
            log = self._topics.setdefault(topic, [])
            offset = len(log)
            log.append(
                StreamMessage(key=key, value=value, topic=topic, partition=0, offset=offset)
            )
            self._condition.notify_all()
        return DeliveryResult(topic=topic, key=key, partition=0, offset=offset)

    def messages(self, topic: str) -> list[StreamMessage]:
        with self._condition:
            return list(self._topics.get(topic, ()))

    def wait_for(
        self, topic: str, offset: int, cancellation: CancellationToken
    ) -> Optional[StreamMessage]:
        """Return the message at ``offset``, blocking until it exists or cancellation."""
        handle = cancellation.register(self._wake)
        try:
            with self._condition:
                while True:
                    self.ensure_reachable()
                    log = self._topics.get(topic, ())
                    if offset < len(log):
                        return log[offset]
                    if cancellation.cancelled:
                        return None
                    self._condition.wait()
        finally:
            cancellation.unregister(handle)

    def _wake(self) -> None:
        with self._condition:
            self._condition.notify_all()


class InMemoryConsumer:
    """Reads a subscribed topic from the earliest offset, one message per call."""

    def __init__(self, broker: InMemoryBroker) -> None:
        self.broker = broker
        self.topic: Optional[str] = None
        self.position = 0
        self.closed = False

    def subscribe(self, topic: str) -> None:
        self.broker.ensure_reachable()
        self.topic = topic

    def consume(self, cancellation: CancellationToken) -> Optional[StreamMessage]:
        if self.topic is None:
            raise RuntimeError("Consumer must subscribe before consuming.")
        if self.closed:
            raise RuntimeError("Consumer is closed.")
        message = self.broker.wait_for(self.topic, self.position, cancellation)
        if message is not None:
            self.position += 1
        return message

    def close(self) -> None:
        self.closed = True


class InMemoryProducer:
    def __init__(self, broker: InMemoryBroker) -> None:
        self.broker = broker
        self.flush_count = 0

    def produce(self, topic: str, message: StreamMessage) -> DeliveryResult:
        try:
            return self.broker.append(topic, message.key, message.value)
        except StreamConnectionError as exc:
            raise PublishError(topic, message.key, str(exc)) from exc

    def flush(self) -> None:
        self.flush_count += 1

    def close(self) -> None:
        return None


@lru_cache
def build_default_broker(name: Optional[str] = None) -> InMemoryBroker:
    return InMemoryBroker(name=name or "memory")
