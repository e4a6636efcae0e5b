"""Markdown to HTML rewrite stage with a run-scoped sticky provider preference."""

from __future__ import annotations

import asyncio

from .config import ProviderName, RewriteConfig
from .errors import CandidateExhausted, ChainExhausted, CriticalConversionError, is_non_retryable
from .logging import RunLogger, error_to_dict, get_logger
from .providers import LocalRenderer, RewriteProvider
from .retry import Candidate, RetryPolicy, SleepFn, try_in_order


def _other(name: ProviderName) -> ProviderName:
    return "gemini" if name == "openai" else "openai"


class ProviderPreference:
    """Which configured provider a run tries first.

    The value moves at most once: away from the starting provider the first
    time it exhausts its retries, and only when the other provider is
    configured too. It lives for one run and is never persisted.
    """

    def __init__(self, configured: tuple[ProviderName, ...], primary: ProviderName) -> None:
        self._configured = configured
        if primary in configured:
            self._current: ProviderName | None = primary
        else:
            self._current = configured[0] if configured else None
        self._flipped = False

    @property
    def current(self) -> ProviderName | None:
        return self._current

    def order(self) -> list[ProviderName]:
        if self._current is None:
            return []
        fallback = _other(self._current)
        return [self._current, fallback] if fallback in self._configured else [self._current]

    def record_exhausted(self, provider: ProviderName) -> bool:
        """Flip away from *provider* the first time it is exhausted as the current choice."""

        fallback = _other(provider)
        if self._flipped or self._current != provider or fallback not in self._configured:
            return False
        self._current = fallback
        self._flipped = True
        return True


class RewriteChain:
    def __init__(
        self,
        config: RewriteConfig,
        providers: dict[ProviderName, RewriteProvider],
        *,
        local: LocalRenderer | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._config = config
        self._providers = providers
        self._local = local or LocalRenderer()
        self._sleep = sleep

    def configured(self) -> tuple[ProviderName, ...]:
        return tuple(name for name, provider in self._providers.items() if provider.configured)

    def new_preference(self) -> ProviderPreference:
        return ProviderPreference(self.configured(), self._config.primary)

    async def to_html(
        self,
        title: str,
        markdown: str,
        preference: ProviderPreference,
        *,
        source: str = "",
        logger: RunLogger | None = None,
    ) -> str:
        log = (logger or get_logger("rewrite")).bind("rewrite")
        order = preference.order()
        if not order:
            log.info("rewrite: no providers configured; using local renderer", title=title)
            return self._local.render(title, markdown)

        preferred = order[0]

        def _on_exhausted(exhausted: CandidateExhausted) -> None:
            if exhausted.name == preferred and preference.record_exhausted(preferred):
                log.warn(
                    "rewrite: preferred provider exhausted; switching for the rest of the run",
                    provider=preferred,
                    next_provider=preference.current,
                )

        candidates = [self._candidate(name, title, markdown, log) for name in order]
        try:
            return await try_in_order(
                candidates,
                abandon_if=is_non_retryable,
                on_exhausted=_on_exhausted,
                sleep=self._sleep,
                logger=log,
            )
        except ChainExhausted as exc:
            log.error(
                "rewrite: all configured providers failed",
                source=source,
                providers=order,
                error=error_to_dict(exc),
            )
            raise CriticalConversionError(source or title) from exc

    def _candidate(self, name: ProviderName, title: str, markdown: str, log: RunLogger) -> Candidate[str]:
        provider = self._providers[name]

        async def _call(attempt: int) -> str:
            log.info("rewrite: attempt start", provider=name, attempt=attempt)
            return await provider.rewrite(title, markdown, log)

        return Candidate(
            name=name,
            call=_call,
            policy=RetryPolicy(max_attempts=provider.max_attempts, backoff_s=self._config.backoff_s),
        )


__all__ = ["ProviderPreference", "RewriteChain"]
