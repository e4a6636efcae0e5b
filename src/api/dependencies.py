"""FastAPI dependency providers for application services."""

from __future__ import annotations

from fastapi import HTTPException, Request

from guide_converter.config import AppConfig
from guide_converter.jobs import RunScheduler
from guide_converter.store import RunStore
from guide_converter.uploads import UploadStore


def get_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise HTTPException(status_code=503, detail="CONFIG_UNAVAILABLE")
    return config


def get_run_store(request: Request) -> RunStore:
    store = getattr(request.app.state, "run_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="STORE_UNAVAILABLE")
    return store


def get_upload_store(request: Request) -> UploadStore:
    store = getattr(request.app.state, "upload_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="STORE_UNAVAILABLE")
    return store


def get_scheduler(request: Request) -> RunScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="SCHEDULER_UNAVAILABLE")
    return scheduler


__all__ = ["get_config", "get_run_store", "get_scheduler", "get_upload_store"]
