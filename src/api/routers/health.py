from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from guide_converter.config import AppConfig
from guide_converter.jobs import RunScheduler

from ..dependencies import get_config, get_scheduler

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check")
def health(
    config: AppConfig = Depends(get_config),
    scheduler: RunScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    return {
        "status": "ok",
        "mode": "inline" if config.runtime.inline_runs else "background",
        "worker": "running" if scheduler.running else "idle",
        "rewrite_providers": list(config.rewrite.configured_providers()),
    }


__all__ = ["router"]
