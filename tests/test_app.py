from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from models.records import BiometricReading, Zone, ZoneEvent
from services.classifier import ZoneClassifier, ZoneThresholds
from services.worker import Worker
from services.zone_handler import ZoneTransitionHandler
from settings import get_settings
from streams.base import DeliveryResult, StreamMessage
from streams.cancellation import CancellationToken
from streams.errors import PublishError, StreamConnectionError
from streams.factory import build_default_producer
from streams.memory import InMemoryBroker, InMemoryConsumer, InMemoryProducer

INPUT_TOPIC = "BiometricsImported"
OUTPUT_TOPIC = "HeartRateZoneReached"


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker(name="test")


@pytest.fixture
def api_client(broker: InMemoryBroker, monkeypatch) -> Iterator[TestClient]:
    producer = InMemoryProducer(broker)

    def build_test_producer() -> InMemoryProducer:
        return producer

    build_test_producer.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_producer", build_test_producer)
    monkeypatch.setattr("app.api.build_default_producer", build_test_producer)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_closes_producer_and_clears_cache(monkeypatch) -> None:
    monkeypatch.setenv("STREAM_BACKEND", "memory")
    get_settings.cache_clear()
    build_default_producer.cache_clear()
    try:
        app = create_app()
        with TestClient(app):
            during = build_default_producer()
        after = build_default_producer()
        assert after is not during
    finally:
        build_default_producer.cache_clear()
        get_settings.cache_clear()


def test_hello_returns_greeting(api_client: TestClient) -> None:
    response = api_client.get("/ClientGateway/Hello")

    assert response.status_code == 200
    assert response.json() == "Hello World"


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_post_biometrics_publishes_keyed_reading(
    api_client: TestClient, broker: InMemoryBroker
) -> None:
    body = {"deviceId": "D1", "heartRate": 160, "timestamp": "2024-01-01T00:00:00Z"}

    response = api_client.post("/ClientGateway/Biometrics", json=body)

    assert response.status_code == 202
    echoed = response.json()
    assert echoed["deviceId"] == "D1"
    assert echoed["heartRate"] == 160

    published = broker.messages(INPUT_TOPIC)
    assert len(published) == 1
    assert published[0].key == "D1"
    reading = BiometricReading.model_validate_json(published[0].value)
    assert reading.device_id == "D1"
    assert reading.heart_rate == 160


def test_post_biometrics_rejects_missing_device(
    api_client: TestClient, broker: InMemoryBroker
) -> None:
    body = {"heartRate": 100, "timestamp": "2024-01-01T00:00:00Z"}

    response = api_client.post("/ClientGateway/Biometrics", json=body)

    assert response.status_code == 422
    assert broker.messages(INPUT_TOPIC) == []


def test_post_biometrics_returns_503_when_publish_fails(monkeypatch) -> None:
    class RejectingProducer:
        def produce(self, topic: str, message: StreamMessage) -> DeliveryResult:
            raise PublishError(topic, message.key, "broker rejected")

        def flush(self) -> None:
            return None

        def close(self) -> None:
            return None

    producer = RejectingProducer()

    def build_test_producer() -> RejectingProducer:
        return producer

    build_test_producer.cache_clear = lambda: None  # type: ignore[attr-defined]
    monkeypatch.setattr("app.main.build_default_producer", build_test_producer)
    monkeypatch.setattr("app.api.build_default_producer", build_test_producer)

    with TestClient(create_app()) as client:
        response = client.post(
            "/ClientGateway/Biometrics",
            json={"deviceId": "D1", "heartRate": 100, "timestamp": "2024-01-01T00:00:00Z"},
        )

    assert response.status_code == 503
    assert "broker rejected" in response.json()["detail"]


def test_post_biometrics_accepts_when_flush_fails(monkeypatch, caplog) -> None:
    class FlakyFlushProducer:
        def __init__(self, broker: InMemoryBroker) -> None:
            self.inner = InMemoryProducer(broker)

        def produce(self, topic: str, message: StreamMessage) -> DeliveryResult:
            return self.inner.produce(topic, message)

        def flush(self) -> None:
            raise StreamConnectionError("flush timed out")

        def close(self) -> None:
            return None

    broker = InMemoryBroker(name="flaky")
    producer = FlakyFlushProducer(broker)

    def build_test_producer() -> FlakyFlushProducer:
        return producer

    build_test_producer.cache_clear = lambda: None  # type: ignore[attr-defined]
    monkeypatch.setattr("app.main.build_default_producer", build_test_producer)
    monkeypatch.setattr("app.api.build_default_producer", build_test_producer)

    with TestClient(create_app()) as client:
        response = client.post(
            "/ClientGateway/Biometrics",
            json={"deviceId": "D1", "heartRate": 100, "timestamp": "2024-01-01T00:00:00Z"},
        )

    assert response.status_code == 202
    assert len(broker.messages(INPUT_TOPIC)) == 1
    records = [record for record in caplog.records if record.name == "app.api"]
    assert any(
        record.getMessage() == "Producer flush failed"
        and getattr(record, "reason", None) == "flush timed out"
        for record in records
    )


def test_gateway_reading_round_trips_through_worker(
    api_client: TestClient, broker: InMemoryBroker
) -> None:
    readings = [("D1", 110), ("D1", 160), ("D2", 190)]
    for device_id, heart_rate in readings:
        response = api_client.post(
            "/ClientGateway/Biometrics",
            json={"deviceId": device_id, "heartRate": heart_rate, "timestamp": "2024-01-01T00:00:00Z"},
        )
        assert response.status_code == 202

    producer = InMemoryProducer(broker)
    handler = ZoneTransitionHandler(
        ZoneClassifier(ZoneThresholds((0.0, 120.0, 150.0, 170.0, 185.0))),
        producer,
        OUTPUT_TOPIC,
    )
    cancellation = CancellationToken()

    def handle_then_stop(message: StreamMessage, token: CancellationToken) -> None:
        handler(message, token)
        if message.offset == len(readings) - 1:
            token.cancel()

    worker = Worker(InMemoryConsumer(broker), producer, handle_then_stop, INPUT_TOPIC)
    worker.run(cancellation)

    events = [ZoneEvent.model_validate_json(message.value) for message in broker.messages(OUTPUT_TOPIC)]
    assert [(event.device_id, event.heart_rate, event.zone) for event in events] == [
        ("D1", 110, Zone.ZONE1),
        ("D1", 160, Zone.ZONE3),
        ("D2", 190, Zone.ZONE5),
    ]
    assert worker.messages_handled == 3
