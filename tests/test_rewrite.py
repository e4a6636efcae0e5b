import asyncio

import pytest

from guide_converter.config import RewriteConfig
from guide_converter.errors import CriticalConversionError, ProviderError
from guide_converter.rewrite import ProviderPreference, RewriteChain


class FakeProvider:
    def __init__(self, name, outcomes=None, *, configured=True, max_attempts=3):
        self.name = name
        self.configured = configured
        self.max_attempts = max_attempts
        self.outcomes = list(outcomes or [])
        self.calls = 0

    async def rewrite(self, title, markdown, logger=None):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else ProviderError(self.name, "server error", status=503)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _chain(openai, gemini, no_sleep, primary="openai"):
    return RewriteChain(RewriteConfig(primary=primary), {"openai": openai, "gemini": gemini}, sleep=no_sleep)


def test_local_renderer_when_nothing_configured(no_sleep) -> None:
    chain = _chain(FakeProvider("openai", configured=False), FakeProvider("gemini", configured=False), no_sleep)
    preference = chain.new_preference()
    assert preference.current is None
    html = asyncio.run(chain.to_html("Guide", "# Hi", preference))
    assert 'data-generator="local-fallback"' in html


def test_primary_success_keeps_preference(no_sleep) -> None:
    openai = FakeProvider("openai", ["<p>openai</p>"])
    gemini = FakeProvider("gemini")
    chain = _chain(openai, gemini, no_sleep)
    preference = chain.new_preference()
    assert asyncio.run(chain.to_html("t", "m", preference)) == "<p>openai</p>"
    assert preference.current == "openai"
    assert gemini.calls == 0


def test_exhausted_primary_flips_preference_for_later_files(no_sleep) -> None:
    openai = FakeProvider("openai")
    gemini = FakeProvider("gemini", ["<p>one</p>", "<p>two</p>"])
    chain = _chain(openai, gemini, no_sleep)
    preference = chain.new_preference()

    assert asyncio.run(chain.to_html("first", "m", preference)) == "<p>one</p>"
    assert openai.calls == 3
    assert preference.current == "gemini"

    assert asyncio.run(chain.to_html("second", "m", preference)) == "<p>two</p>"
    assert openai.calls == 3


def test_non_retryable_error_abandons_without_retrying(no_sleep) -> None:
    openai = FakeProvider("openai", [ProviderError("openai", "OpenAI error 401: bad key", status=401)])
    gemini = FakeProvider("gemini", ["<p>ok</p>"])
    chain = _chain(openai, gemini, no_sleep)
    preference = chain.new_preference()
    assert asyncio.run(chain.to_html("t", "m", preference)) == "<p>ok</p>"
    assert openai.calls == 1
    assert no_sleep.delays == []
    assert preference.current == "gemini"


def test_single_provider_exhaustion_is_critical(no_sleep) -> None:
    openai = FakeProvider("openai")
    chain = _chain(openai, FakeProvider("gemini", configured=False), no_sleep)
    preference = chain.new_preference()
    with pytest.raises(CriticalConversionError):
        asyncio.run(chain.to_html("t", "m", preference, source="a/b.txt"))
    assert openai.calls == 3
    assert preference.current == "openai"


def test_both_providers_exhausted_is_critical(no_sleep) -> None:
    chain = _chain(FakeProvider("openai"), FakeProvider("gemini"), no_sleep)
    with pytest.raises(CriticalConversionError) as info:
        asyncio.run(chain.to_html("t", "m", chain.new_preference(), source="x.txt"))
    assert info.value.source == "x.txt"


def test_preference_start_and_transitions() -> None:
    assert ProviderPreference(("gemini",), "openai").current == "gemini"
    assert ProviderPreference(("openai", "gemini"), "gemini").order() == ["gemini", "openai"]

    preference = ProviderPreference(("openai", "gemini"), "openai")
    assert not preference.record_exhausted("gemini")
    assert preference.record_exhausted("openai")
    assert preference.current == "gemini"
    assert not preference.record_exhausted("gemini")
    assert preference.current == "gemini"
    assert preference.order() == ["gemini", "openai"]

    single = ProviderPreference(("openai",), "openai")
    assert not single.record_exhausted("openai")
    assert single.order() == ["openai"]


def test_preference_stays_flipped_after_fallback_exhausts(no_sleep) -> None:
    openai = FakeProvider("openai", [ProviderError("openai", "rate limited", status=429), "<p>openai</p>"])
    gemini = FakeProvider(
        "gemini",
        ["<p>one</p>", ProviderError("gemini", "quota exceeded", status=429)],
    )
    chain = _chain(openai, gemini, no_sleep)
    preference = chain.new_preference()

    assert asyncio.run(chain.to_html("first", "m", preference)) == "<p>one</p>"
    assert preference.current == "gemini"

    assert asyncio.run(chain.to_html("second", "m", preference)) == "<p>openai</p>"
    assert gemini.calls == 2
    assert preference.current == "gemini"
