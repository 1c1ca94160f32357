from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from streams.factory import build_default_producer


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    producer = build_default_producer()
    try:
        yield
    finally:
        producer.close()
        build_default_producer.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Client Gateway",
        description="Accepts device biometrics and republishes them onto the biometrics stream.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
