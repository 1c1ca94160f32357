"""Consume, classify, produce loop for heart-rate zone notifications."""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Optional

from services.classifier import ReachedPolicy, ZoneClassifier, ZoneThresholds
from services.zone_handler import ZoneTransitionHandler
from settings import Settings, get_settings
from streams.base import StreamConsumer, StreamMessage, StreamProducer
from streams.cancellation import CancellationToken
from streams.factory import build_consumer, build_producer

logger = logging.getLogger(__name__)

MessageHandler = Callable[[StreamMessage, CancellationToken], Any]


class WorkerState(str, Enum):
    """Lifecycle of a worker run."""

    idle = "idle"
    subscribing = "subscribing"
    running = "running"
    stopping = "stopping"
    stopped = "stopped"
    faulted = "faulted"


class Worker:
    """Owns one consumer and one producer and drives them until cancelled.

    Messages are handled strictly in order on the calling thread. Any exception
    raised while subscribing, consuming or handling ends the run: the worker
    moves to ``faulted``, attempts to flush and close its clients, and re-raises
    the original exception unchanged. A consumer that fails to close during a
    normal shutdown also leaves the worker ``faulted``.
    """

    def __init__(
        self,
        consumer: StreamConsumer,
        producer: StreamProducer,
        handler: MessageHandler,
        input_topic: str,
    ) -> None:
        self.consumer = consumer
        self.producer = producer
        self.handler = handler
        self.input_topic = input_topic
        self.state = WorkerState.idle
        self.consume_calls = 0
        self.messages_handled = 0

    def run(self, cancellation: CancellationToken) -> None:
        """Block until ``cancellation`` fires or a message cannot be handled."""
        if self.state is not WorkerState.idle:
            raise RuntimeError(f"Worker cannot run from state {self.state.value!r}.")

        try:
            self._transition(WorkerState.subscribing)
            self.consumer.subscribe(self.input_topic)
            self._transition(WorkerState.running)

            while not cancellation.cancelled:
                self.consume_calls += 1
                message = self.consumer.consume(cancellation)
                if message is None:
                    continue
                self.handler(message, cancellation)
                self.messages_handled += 1
        except BaseException as exc:
            self._transition(WorkerState.faulted, reason=type(exc).__name__)
            logger.exception(
                "Worker stopped on unhandled error",
                extra={"topic": self.input_topic, "reason": str(exc)},
            )
            self._flush_producer()
            self._close_consumer()
            raise

        self._transition(WorkerState.stopping)
        self._flush_producer()
        try:
            self.consumer.close()
        except Exception as exc:
            self._transition(WorkerState.faulted, reason=type(exc).__name__)
            logger.exception(
                "Consumer close failed during shutdown",
                extra={"topic": self.input_topic, "reason": str(exc)},
            )
            raise
        self._transition(WorkerState.stopped)

    def _transition(self, state: WorkerState, reason: Optional[str] = None) -> None:
        self.state = state
        logger.info(
            "Worker state changed",
            extra={"state": state.value, "topic": self.input_topic, "reason": reason},
        )

    def _flush_producer(self) -> None:
        try:
            self.producer.flush()
        except Exception as exc:  # noqa: BLE001 - flush is best effort
            logger.warning(
                "Producer flush failed",
                extra={"topic": self.input_topic, "reason": str(exc)},
            )

    def _close_consumer(self) -> None:
        try:
            self.consumer.close()
        except Exception as exc:  # noqa: BLE001 - original error takes precedence
            logger.warning(
                "Consumer close failed after fault",
                extra={"topic": self.input_topic, "reason": str(exc)},
            )


def build_zone_classifier(settings: Settings | None = None) -> ZoneClassifier:
    settings = settings or get_settings()
    return ZoneClassifier(
        thresholds=ZoneThresholds.from_values(settings.zone_thresholds),
        policy=ReachedPolicy(settings.reached_policy),
    )


@lru_cache
def build_default_worker() -> Worker:
    """Factory that wires a worker from environment settings."""
    settings = get_settings()
    producer = build_producer(settings)
    handler = ZoneTransitionHandler(
        classifier=build_zone_classifier(settings),
        producer=producer,
        output_topic=settings.output_topic,
    )
    return Worker(
        consumer=build_consumer(settings),
        producer=producer,
        handler=handler,
        input_topic=settings.input_topic,
    )
