"""HTTP route definitions for the client gateway."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from models.records import BiometricReading
from settings import get_settings
from streams.base import StreamMessage, StreamProducer
from streams.errors import StreamError
from streams.factory import build_default_producer

logger = logging.getLogger(__name__)

router = APIRouter()


def get_producer() -> StreamProducer:
    return build_default_producer()


@router.get(
    "/ClientGateway/Hello",
    summary="Liveness greeting.",
    status_code=status.HTTP_200_OK,
)
async def hello() -> str:
    logger.info("Hello World")
    return "Hello World"


@router.post(
    "/ClientGateway/Biometrics",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=BiometricReading,
    summary="Accept a biometric reading and publish it for zone classification.",
)
def record_measurements(
    reading: BiometricReading,
    producer: StreamProducer = Depends(get_producer),
) -> BiometricReading:
    topic = get_settings().input_topic
    logger.info(
        "Accepted biometrics",
        extra={"device_id": reading.device_id, "heart_rate": reading.heart_rate},
    )
    try:
        delivery = producer.produce(
            topic, StreamMessage(key=str(reading.device_id), value=reading.to_bytes())
        )
    except StreamError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    try:
        producer.flush()
    except StreamError as exc:
        logger.warning(
            "Producer flush failed",
            extra={"topic": topic, "device_id": reading.device_id, "reason": str(exc)},
        )

    logger.info(
        "Published biometrics",
        extra={
            "topic": delivery.topic,
            "key": delivery.key,
            "partition": delivery.partition,
            "offset": delivery.offset,
        },
    )
    return reading


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
