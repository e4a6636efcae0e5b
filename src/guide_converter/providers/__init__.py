"""Rewrite providers turning Markdown into guide HTML fragments."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from ..config import AppConfig, ProviderName
from ..errors import SUPPORT_MESSAGE
from ..logging import RunLogger, error_to_dict, get_logger
from .base import SYSTEM_PROMPT, RewriteProvider, build_prompt, normalize_html_fragment
from .gemini import GeminiProvider, pick_best_model
from .local import LocalRenderer
from .openai import OpenAIProvider
from .spacing import RequestSpacer

_CHECK_TITLE = "Connectivity check"
_CHECK_MARKDOWN = "Say hello in one short paragraph."


def build_providers(
    config: AppConfig,
    *,
    client: httpx.AsyncClient | None = None,
    spacer: RequestSpacer | None = None,
) -> dict[ProviderName, RewriteProvider]:
    """Return every provider, configured or not, keyed by name."""

    return {
        "openai": OpenAIProvider(config.rewrite.openai, client=client),
        "gemini": GeminiProvider(config.rewrite.gemini, client=client, spacer=spacer),
    }


@dataclass(slots=True)
class ProviderCheck:
    provider: ProviderName
    configured: bool
    ok: bool
    model: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "provider": self.provider,
            "configured": self.configured,
            "ok": self.ok,
            "model": self.model,
            "error": self.error,
        }


async def check_providers(
    providers: dict[ProviderName, RewriteProvider],
    *,
    expose_errors: bool = False,
    logger: RunLogger | None = None,
) -> list[ProviderCheck]:
    log = logger or get_logger("providers")
    results: list[ProviderCheck] = []
    for name, provider in providers.items():
        if not provider.configured:
            results.append(ProviderCheck(provider=name, configured=False, ok=False))
            continue
        try:
            await provider.rewrite(_CHECK_TITLE, _CHECK_MARKDOWN, log)
        except Exception as exc:
            log.warn("providers: check failed", provider=name, error=error_to_dict(exc))
            results.append(
                ProviderCheck(
                    provider=name,
                    configured=True,
                    ok=False,
                    model=getattr(provider, "model", None),
                    error=str(exc) if expose_errors else SUPPORT_MESSAGE,
                )
            )
            continue
        results.append(ProviderCheck(provider=name, configured=True, ok=True, model=getattr(provider, "model", None)))
    return results


__all__ = [
    "SYSTEM_PROMPT",
    "GeminiProvider",
    "LocalRenderer",
    "OpenAIProvider",
    "ProviderCheck",
    "RequestSpacer",
    "RewriteProvider",
    "build_prompt",
    "build_providers",
    "check_providers",
    "normalize_html_fragment",
    "pick_best_model",
]
