from __future__ import annotations

import re
from typing import Any

import httpx

from ..config import GeminiConfig, ProviderName
from ..errors import ProviderError, ProviderNotConfigured
from ..logging import RunLogger, error_to_dict, get_logger, mask_secret
from ..transport import error_snippet, open_client
from .base import SYSTEM_PROMPT, build_prompt, normalize_html_fragment
from .spacing import RequestSpacer

# First match wins; every pattern in a group must match the model name.
MODEL_PREFERENCES: tuple[tuple[re.Pattern[str], ...], ...] = tuple(
    tuple(re.compile(pattern, re.IGNORECASE) for pattern in group)
    for group in (
        (r"gemini", r"2\.5", r"flash", r"lite"),
        (r"gemini", r"2\.5", r"flash"),
        (r"gemini", r"flash", r"lite"),
        (r"gemini", r"2\.", r"flash"),
        (r"gemini", r"1\.", r"flash"),
    )
)

_FRAGMENT_REMINDER = "Return only an HTML fragment. No markdown. No code fences."


def pick_best_model(models: list[dict[str, Any]]) -> str | None:
    """Choose a generateContent-capable model name, without the ``models/`` prefix."""

    eligible = [
        str(model.get("name") or "")
        for model in models
        if isinstance(model, dict) and "generateContent" in (model.get("supportedGenerationMethods") or [])
    ]
    for group in MODEL_PREFERENCES:
        for name in eligible:
            if all(pattern.search(name) for pattern in group):
                return name.removeprefix("models/")
    if eligible and eligible[0]:
        return eligible[0].removeprefix("models/")
    return None


def _candidate_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    parts: list[str] = []
    for candidate in payload.get("candidates") or []:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        for part in (content or {}).get("parts") or []:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)


class GeminiProvider:
    name: ProviderName = "gemini"

    def __init__(
        self,
        config: GeminiConfig,
        *,
        client: httpx.AsyncClient | None = None,
        spacer: RequestSpacer | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._spacer = spacer
        self._model: str | None = config.model or None
        self._version: str = config.api_version or "v1"

    @property
    def configured(self) -> bool:
        return self._config.configured

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    @property
    def model(self) -> str | None:
        return self._model

    @property
    def spacer(self) -> RequestSpacer:
        if self._spacer is None:
            self._spacer = RequestSpacer.shared(self._config.min_delay_s)
        return self._spacer

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def list_models(self, client: httpx.AsyncClient, version: str) -> list[dict[str, Any]]:
        response = await client.get(self._url(f"{version}/models"), params={"key": self._config.api_key})
        if not response.is_success:
            raise ProviderError(
                self.name,
                f"ListModels {version} failed {response.status_code}: {error_snippet(response)}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, f"ListModels {version} returned invalid JSON") from exc
        models = payload.get("models") if isinstance(payload, dict) else None
        return [model for model in models or [] if isinstance(model, dict)]

    async def resolve_model(self, client: httpx.AsyncClient, logger: RunLogger | None = None) -> str:
        if self._model:
            return self._model
        log = logger or get_logger("rewrite")
        version = self._config.api_version or "v1"
        try:
            models = await self.list_models(client, version)
        except (ProviderError, httpx.HTTPError) as exc:
            log.warn("rewrite: gemini list models failed; retrying with v1beta", version=version, error=error_to_dict(exc))
            version = "v1beta"
            models = await self.list_models(client, version)
        model = pick_best_model(models)
        if not model:
            raise ProviderError(self.name, "No Gemini model supports generateContent")
        log.info("rewrite: gemini model selected", model=model, version=version, model_source="autodetect")
        self._model = model
        self._version = version
        return model

    async def rewrite(self, title: str, markdown: str, logger: RunLogger | None = None) -> str:
        log = logger or get_logger("rewrite")
        if not self.configured:
            raise ProviderNotConfigured(self.name)
        async with open_client(self._client, self._config.timeout_s) as client:
            model = await self.resolve_model(client, log)
            url = self._url(f"{self._version}/models/{model}:generateContent")
            log.info(
                "rewrite: request",
                provider=self.name,
                model=model,
                version=self._version,
                api_key=mask_secret(self._config.api_key),
                title=title,
                markdown_chars=len(markdown),
            )
            body = {
                "contents": [
                    {
                        "role": "user",
                        "parts": [{"text": f"{SYSTEM_PROMPT}\n\n{build_prompt(title, markdown)}\n\n{_FRAGMENT_REMINDER}"}],
                    }
                ],
                "generationConfig": {"temperature": 0.2},
            }

            async def _send() -> httpx.Response:
                return await client.post(
                    url,
                    params={"key": self._config.api_key},
                    json=body,
                    timeout=self._config.timeout_s,
                )

            response = await self.spacer.run(_send)
        if not response.is_success:
            raise ProviderError(
                self.name,
                f"Gemini error {response.status_code}: {error_snippet(response)}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "Gemini returned invalid JSON") from exc
        html = normalize_html_fragment(_candidate_text(payload))
        if not html:
            raise ProviderError(self.name, "Empty Gemini output")
        log.info("rewrite: success", provider=self.name, model=model, html_chars=len(html))
        return html


__all__ = ["GeminiProvider", "MODEL_PREFERENCES", "pick_best_model"]
