"""Client for the remote document ingestion capability."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

import httpx

from .config import IngestionConfig
from .errors import SUPPORT_MESSAGE, ChainExhausted, ProviderError, ProviderNotConfigured
from .executors import run_sync
from .transport import error_snippet, open_client
from .logging import RunLogger, error_to_dict, get_logger, mask_secret
from .retry import Candidate, RetryPolicy, SleepFn, try_in_order

DEFAULT_CONVERT_PATHS = (
    "/v1/ingestion/file/convert",
    "/v1/ingestion/convert",
    "/ingestion/file/convert",
    "/ingestion/convert",
)

MARKDOWN_FIELD_PATHS: tuple[tuple[str, ...], ...] = (
    ("markdown",),
    ("content",),
    ("data", "markdown"),
    ("data", "content"),
    ("result", "markdown"),
    ("result", "content"),
)


def candidate_urls(config: IngestionConfig) -> list[str]:
    if config.convert_urls:
        return [url for url in config.convert_urls if url]
    return [urljoin(config.base_url, path) for path in DEFAULT_CONVERT_PATHS]


def pick_markdown(payload: Any) -> str | None:
    for path in MARKDOWN_FIELD_PATHS:
        node = payload
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if isinstance(node, str):
            return node
    return None


class IngestionClient:
    def __init__(
        self,
        config: IngestionConfig,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
        expose_errors: bool = False,
    ) -> None:
        self._config = config
        self._client = client
        self._sleep = sleep
        self._expose_errors = expose_errors

    @property
    def configured(self) -> bool:
        return self._config.configured

    async def to_markdown(self, path: Path, logger: RunLogger | None = None) -> str:
        log = (logger or get_logger("ingestion")).bind("ingestion")
        if not self.configured:
            raise ProviderNotConfigured("ingestion")
        urls = candidate_urls(self._config)
        payload = await run_sync(path.read_bytes)
        log.info(
            "ingestion: start",
            file_name=path.name,
            base=self._config.base_url,
            token=mask_secret(self._config.token),
            candidates_count=len(urls),
            candidates_source="config" if self._config.convert_urls else "default",
        )
        policy = RetryPolicy(max_attempts=self._config.max_attempts, backoff_s=self._config.backoff_s)
        async with open_client(self._client, self._config.timeout_s) as client:
            candidates = [
                Candidate(
                    name=url,
                    call=self._attempt_factory(client, url, path.name, payload, log),
                    policy=policy,
                )
                for url in urls
            ]
            try:
                return await try_in_order(candidates, sleep=self._sleep, logger=log)
            except ChainExhausted as exc:
                log.error("ingestion: all endpoints failed", urls=urls, error=error_to_dict(exc))
                message = "Ingestion API: no endpoints worked" if self._expose_errors else SUPPORT_MESSAGE
                raise ProviderError("ingestion", message) from exc

    def _attempt_factory(
        self,
        client: httpx.AsyncClient,
        url: str,
        file_name: str,
        payload: bytes,
        log: RunLogger,
    ):
        async def _attempt(attempt: int) -> str:
            log.info("ingestion: attempt start", url=url, attempt=attempt, file_bytes=len(payload))
            response = await client.post(
                url,
                headers={"authorization": f"Bearer {self._config.token}"},
                files={"file": (file_name, payload)},
                data={"output": "markdown"},
                timeout=self._config.timeout_s,
            )
            if not response.is_success:
                raise ProviderError(
                    "ingestion",
                    f"Ingestion API error {response.status_code}: {error_snippet(response)}",
                    status=response.status_code,
                )
            try:
                body = response.json()
            except ValueError as exc:
                raise ProviderError("ingestion", "Ingestion API returned invalid JSON") from exc
            markdown = pick_markdown(body)
            if not markdown or not markdown.strip():
                raise ProviderError("ingestion", "Ingestion API response did not include markdown content")
            log.info("ingestion: endpoint success", url=url, attempt=attempt, markdown_chars=len(markdown))
            return markdown

        return _attempt


__all__ = ["IngestionClient", "candidate_urls", "pick_markdown"]
