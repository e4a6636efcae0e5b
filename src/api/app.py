from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from guide_converter.config import AppConfig, load_config
from guide_converter.jobs import RunScheduler
from guide_converter.logging import setup_logging
from guide_converter.store import RunStore
from guide_converter.uploads import UploadStore

from .routers import health, providers, runs, uploads


def create_app(config: AppConfig | None = None, *, scheduler: RunScheduler | None = None) -> FastAPI:
    config = config or load_config()
    setup_logging()
    run_store = RunStore(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.scheduler.stop()

    app = FastAPI(title="Guide Converter", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.run_store = run_store
    app.state.upload_store = UploadStore(config)
    app.state.scheduler = scheduler or RunScheduler(config, run_store)

    app.include_router(health.router)
    app.include_router(uploads.router)
    app.include_router(runs.router)
    app.include_router(providers.router)
    return app


__all__ = ["create_app"]
