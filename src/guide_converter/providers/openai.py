from __future__ import annotations

from typing import Any

import httpx

from ..config import OpenAIConfig, ProviderName
from ..errors import ProviderError, ProviderNotConfigured
from ..logging import RunLogger, get_logger, mask_secret
from ..transport import error_snippet, open_client
from .base import SYSTEM_PROMPT, build_prompt, normalize_html_fragment


def _message_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    parts: list[str] = []
    for choice in payload.get("choices") or []:
        message = choice.get("message") if isinstance(choice, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            parts.append(content)
    return "".join(parts)


class OpenAIProvider:
    name: ProviderName = "openai"

    def __init__(self, config: OpenAIConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def configured(self) -> bool:
        return self._config.configured

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    @property
    def model(self) -> str:
        return self._config.model

    async def rewrite(self, title: str, markdown: str, logger: RunLogger | None = None) -> str:
        log = logger or get_logger("rewrite")
        if not self.configured:
            raise ProviderNotConfigured(self.name)
        url = f"{self._config.base_url.rstrip('/')}/chat/completions"
        log.info(
            "rewrite: request",
            provider=self.name,
            url=url,
            model=self._config.model,
            api_key=mask_secret(self._config.api_key),
            title=title,
            markdown_chars=len(markdown),
        )
        body = {
            "model": self._config.model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(title, markdown)},
            ],
        }
        async with open_client(self._client, self._config.timeout_s) as client:
            response = await client.post(
                url,
                headers={"authorization": f"Bearer {self._config.api_key}"},
                json=body,
                timeout=self._config.timeout_s,
            )
        if not response.is_success:
            raise ProviderError(
                self.name,
                f"OpenAI error {response.status_code}: {error_snippet(response)}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "OpenAI returned invalid JSON") from exc
        html = normalize_html_fragment(_message_text(payload))
        if not html:
            raise ProviderError(self.name, "Empty OpenAI output")
        log.info("rewrite: success", provider=self.name, html_chars=len(html))
        return html


__all__ = ["OpenAIProvider"]
