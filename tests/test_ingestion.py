import asyncio
import json

import httpx
import pytest

from guide_converter.config import IngestionConfig
from guide_converter.errors import SUPPORT_MESSAGE, ProviderError, ProviderNotConfigured
from guide_converter.extraction import ExtractionChain
from guide_converter.ingestion import IngestionClient, candidate_urls, pick_markdown


def _config(**overrides) -> IngestionConfig:
    values = {"base_url": "https://ingest.example", "token": "ingest-token-123"}
    values.update(overrides)
    return IngestionConfig(**values)


def _run(config: IngestionConfig, handler, path, sleep, expose_errors: bool = False) -> str:
    async def scenario() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            ingestion = IngestionClient(config, client=client, sleep=sleep, expose_errors=expose_errors)
            return await ingestion.to_markdown(path)

    return asyncio.run(scenario())


def test_candidate_urls_default_and_override() -> None:
    urls = candidate_urls(_config())
    assert urls[0] == "https://ingest.example/v1/ingestion/file/convert"
    assert len(urls) == 4
    assert candidate_urls(_config(convert_urls=("https://only.example/x",))) == ["https://only.example/x"]


def test_pick_markdown_looks_in_known_fields() -> None:
    assert pick_markdown({"markdown": "# a"}) == "# a"
    assert pick_markdown({"data": {"content": "b"}}) == "b"
    assert pick_markdown({"result": {"markdown": "c"}}) == "c"
    assert pick_markdown({"data": "nope"}) is None
    assert pick_markdown(["markdown"]) is None


def test_first_endpoint_exhausted_then_second_succeeds(tmp_path, no_sleep) -> None:
    source = tmp_path / "doc.pdf"
    source.write_bytes(b"%PDF-1.4 fake")
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        assert request.headers["authorization"] == "Bearer ingest-token-123"
        assert b'name="output"' in request.content
        if request.url.path == "/v1/ingestion/file/convert":
            return httpx.Response(404, text="missing")
        return httpx.Response(200, json={"data": {"markdown": "# Converted"}})

    markdown = _run(_config(), handler, source, no_sleep)
    assert markdown == "# Converted"
    assert seen == ["/v1/ingestion/file/convert"] * 3 + ["/v1/ingestion/convert"]
    assert no_sleep.delays == [pytest.approx(0.4), pytest.approx(0.8)]


def test_blank_markdown_counts_as_failure(tmp_path, no_sleep) -> None:
    source = tmp_path / "doc.txt"
    source.write_text("hello")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps({"markdown": "   "}).encode())

    with pytest.raises(ProviderError) as info:
        _run(_config(max_attempts=1), handler, source, no_sleep)
    assert str(info.value) == SUPPORT_MESSAGE


def test_exposed_error_message(tmp_path, no_sleep) -> None:
    source = tmp_path / "doc.txt"
    source.write_text("hello")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(ProviderError) as info:
        _run(_config(max_attempts=1), handler, source, no_sleep, expose_errors=True)
    assert "no endpoints worked" in str(info.value)


def test_unconfigured_ingestion_raises(tmp_path, no_sleep) -> None:
    source = tmp_path / "doc.txt"
    source.write_text("hello")
    client = IngestionClient(IngestionConfig(), sleep=no_sleep)
    with pytest.raises(ProviderNotConfigured):
        asyncio.run(client.to_markdown(source))


def test_extraction_falls_back_to_local_when_ingestion_fails(tmp_path, no_sleep) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("local text", encoding="utf-8")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async def scenario() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            chain = ExtractionChain(IngestionClient(_config(max_attempts=1), client=client, sleep=no_sleep))
            return await chain.to_markdown(source)

    assert asyncio.run(scenario()) == "local text"
