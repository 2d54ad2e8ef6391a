"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from camrelay.api.routes import config, detect, health, metrics, rooms, signaling


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Configures logging and builds the detection pipeline (loading the model in
    server mode) on startup. Stops the pipeline, the system sampler and the
    signaling state on shutdown.
    """

    from camrelay.api.services.state import get_pipeline, get_settings, shutdown

    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await run_in_threadpool(get_pipeline)
    yield
    await shutdown()


app = FastAPI(title="camrelay", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(config.router)
app.include_router(detect.router)
app.include_router(metrics.router)
app.include_router(rooms.router)
app.include_router(signaling.router)


if __name__ == "__main__":
    from camrelay.api.services.state import get_settings

    settings = get_settings()
    uvicorn.run("camrelay.api.main:app", host=settings.host, port=settings.port)
