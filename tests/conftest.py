from __future__ import annotations

from pathlib import Path

import pytest

from guide_converter.config import AppConfig, RuntimeConfig, SchedulerConfig
from guide_converter.providers import RequestSpacer
from guide_converter.uploads import UploadStore

ENV_VARS = (
    "GC_CONFIG_PATH",
    "GC_INLINE_RUNS",
    "DATA_DIR",
    "EXPOSE_DEBUG_ERRORS",
    "DEBUG_EXPOSE_PROVIDER_ERRORS",
    "RUN_LOGS_TO_FILE",
    "DATA_INGESTION_API_URL",
    "DATA_INGESTION_API_TOKEN",
    "DATA_INGESTION_CONVERT_URLS",
    "REWRITE_PRIMARY",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_API_VERSION",
    "GEMINI_MIN_DELAY_MS",
    "NETLIFY",
    "VERCEL",
    "AWS_LAMBDA_FUNCTION_NAME",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    RequestSpacer.reset_shared()
    yield
    RequestSpacer.reset_shared()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    runtime = RuntimeConfig(
        data_dir=tmp_path / "data",
        scheduler=SchedulerConfig(idle_poll_s=0.01, cooldown_s=0.0),
    )
    return AppConfig(runtime=runtime)


@pytest.fixture
def no_sleep():
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def make_upload(config: AppConfig):
    def _make(files: dict[str, bytes | str]) -> str:
        items = [(name, data.encode("utf-8") if isinstance(data, str) else data) for name, data in files.items()]
        return UploadStore(config).save(items).upload_id

    return _make
