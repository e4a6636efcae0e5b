from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from guide_converter.config import AppConfig
from guide_converter.providers import build_providers, check_providers

from ..dependencies import get_config
from ..schemas import ProviderCheckResult

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("/check", summary="Check rewrite provider connectivity", response_model=list[ProviderCheckResult])
async def provider_check(config: AppConfig = Depends(get_config)) -> list[dict[str, Any]]:
    results = await check_providers(
        build_providers(config),
        expose_errors=config.runtime.expose_provider_errors,
    )
    return [result.to_payload() for result in results]


__all__ = ["router"]
