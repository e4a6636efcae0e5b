import asyncio
import json

import httpx
import pytest

from guide_converter.config import AppConfig, GeminiConfig, OpenAIConfig, RewriteConfig
from guide_converter.errors import SUPPORT_MESSAGE, ProviderError, ProviderNotConfigured
from guide_converter.providers import (
    GeminiProvider,
    LocalRenderer,
    OpenAIProvider,
    RequestSpacer,
    build_providers,
    check_providers,
    normalize_html_fragment,
    pick_best_model,
)


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


def test_normalize_html_fragment() -> None:
    assert normalize_html_fragment("```html\n<p>Hi</p>\n```") == "<p>Hi</p>"
    assert normalize_html_fragment("<html><head></head><body><h2>A</h2></body></html>") == "<h2>A</h2>"
    assert normalize_html_fragment("<!doctype html><html><p>x</p></html>") == "<p>x</p>"
    assert normalize_html_fragment("  <section>ok</section>  ") == "<section>ok</section>"
    assert normalize_html_fragment("<html><body>   </body></html>") == ""
    assert normalize_html_fragment("   ") == ""


def test_local_renderer_is_deterministic() -> None:
    html = LocalRenderer().render("A <b> title", "# Heading\n\n- one\n- two")
    assert html.startswith('<article data-generator="local-fallback">')
    assert "<h1>A &lt;b&gt; title</h1>" in html
    assert '<h1 id="heading">Heading</h1>' in html or "<h1>Heading</h1>" in html
    assert "<li>one</li>" in html
    assert html == LocalRenderer().render("A <b> title", "# Heading\n\n- one\n- two")


def test_openai_provider_request_and_parsing() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "```html\n<p>Hi</p>\n```"}}]})

    async def scenario() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenAIProvider(OpenAIConfig(api_key="sk-test-123456"), client=client)
            return await provider.rewrite("Guide", "hello")

    assert asyncio.run(scenario()) == "<p>Hi</p>"
    request = captured[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test-123456"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o-mini"
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1]["content"].startswith("Title: Guide")


@pytest.mark.parametrize(
    ("response", "status"),
    [
        (httpx.Response(429, text="rate limit"), 429),
        (httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}), None),
    ],
)
def test_openai_failures_raise_provider_error(response, status) -> None:
    async def scenario() -> str:
        transport = httpx.MockTransport(lambda request: response)
        async with httpx.AsyncClient(transport=transport) as client:
            return await OpenAIProvider(OpenAIConfig(api_key="sk-test-123456"), client=client).rewrite("t", "m")

    with pytest.raises(ProviderError) as info:
        asyncio.run(scenario())
    assert info.value.status == status


def test_unconfigured_provider_raises() -> None:
    with pytest.raises(ProviderNotConfigured):
        asyncio.run(OpenAIProvider(OpenAIConfig()).rewrite("t", "m"))


def test_pick_best_model_prefers_flash_lite() -> None:
    models = [
        {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
        {"name": "models/gemini-1.5-flash", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-2.0-flash", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-2.5-flash-lite", "supportedGenerationMethods": ["generateContent"]},
    ]
    assert pick_best_model(models) == "gemini-2.5-flash-lite"
    assert pick_best_model(models[:3]) == "gemini-2.0-flash"
    assert pick_best_model([{"name": "models/gemini-pro", "supportedGenerationMethods": ["generateContent"]}]) == "gemini-pro"
    assert pick_best_model(models[:1]) is None


def test_gemini_autodetects_model_with_v1beta_fallback() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(f"{request.method} {request.url.path}")
        assert request.url.params["key"] == "gemini-key-123"
        if request.url.path == "/v1/models":
            return httpx.Response(404, text="not here")
        if request.url.path == "/v1beta/models":
            return httpx.Response(
                200,
                json={
                    "models": [
                        {"name": "models/gemini-1.5-flash", "supportedGenerationMethods": ["generateContent"]},
                        {"name": "models/gemini-2.5-flash", "supportedGenerationMethods": ["generateContent"]},
                    ]
                },
            )
        body = json.loads(request.content)
        assert body["generationConfig"] == {"temperature": 0.2}
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "<body><p>A</p>"}, {"text": "</body>"}]}}]},
        )

    clock = FakeClock()
    spacer = RequestSpacer(0.0, clock=clock, sleep=clock.sleep)

    async def scenario() -> tuple[str, str]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = GeminiProvider(GeminiConfig(api_key="gemini-key-123"), client=client, spacer=spacer)
            first = await provider.rewrite("t", "m")
            second = await provider.rewrite("t", "m")
            return first, second

    assert asyncio.run(scenario()) == ("<p>A</p>", "<p>A</p>")
    assert paths == [
        "GET /v1/models",
        "GET /v1beta/models",
        "POST /v1beta/models/gemini-2.5-flash:generateContent",
        "POST /v1beta/models/gemini-2.5-flash:generateContent",
    ]


def test_request_spacer_serializes_dispatches() -> None:
    clock = FakeClock()
    spacer = RequestSpacer(1.2, clock=clock, sleep=clock.sleep)
    assert spacer.reserve() == 0
    assert spacer.reserve() == pytest.approx(1.2)
    assert spacer.reserve() == pytest.approx(2.4)

    clock.now += 10
    order: list[int] = []

    async def dispatch(index: int) -> int:
        order.append(index)
        return index

    async def scenario() -> list[int]:
        return [await spacer.run(lambda i=i: dispatch(i)) for i in range(3)]

    assert asyncio.run(scenario()) == [0, 1, 2]
    assert order == [0, 1, 2]
    assert clock.sleeps == [pytest.approx(1.2), pytest.approx(1.2)]


def test_request_spacer_runs_one_request_at_a_time() -> None:
    clock = FakeClock()
    spacer = RequestSpacer(0.05, clock=clock, sleep=clock.sleep)
    in_flight = 0
    peak = 0
    started: list[int] = []

    async def call(index: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        started.append(index)
        for _ in range(5):
            await asyncio.sleep(0)
        clock.now += 0.3
        in_flight -= 1
        return index

    async def scenario() -> list[int]:
        return await asyncio.gather(*(spacer.run(lambda i=i: call(i)) for i in range(3)))

    assert asyncio.run(scenario()) == [0, 1, 2]
    assert peak == 1
    assert started == [0, 1, 2]
    assert clock.sleeps == []


def test_request_spacer_shared_instance() -> None:
    first = RequestSpacer.shared(1.2)
    assert RequestSpacer.shared(5.0) is first
    assert first.min_delay_s == pytest.approx(1.2)
    RequestSpacer.reset_shared()
    assert RequestSpacer.shared(0.5) is not first


def test_check_providers_reports_each_provider() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    config = AppConfig(rewrite=RewriteConfig(openai=OpenAIConfig(api_key="sk-test-123456")))

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await check_providers(build_providers(config, client=client))

    results = {result.provider: result for result in asyncio.run(scenario())}
    assert results["gemini"].configured is False
    assert results["openai"].configured is True
    assert results["openai"].ok is False
    assert results["openai"].error == SUPPORT_MESSAGE
    assert results["openai"].model == "gpt-4o-mini"
