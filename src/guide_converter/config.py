from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Mapping

from .settings import Settings, get_settings


CONFIG_FILE = Path("config.toml")
SERVERLESS_DATA_DIR = Path("/tmp/guide-converter-data")

ProviderName = Literal["openai", "gemini"]


@dataclass(slots=True)
class SchedulerConfig:
    idle_poll_s: float = 0.8
    cooldown_s: float = 0.2


@dataclass(slots=True)
class RuntimeConfig:
    data_dir: Path = Path(".data")
    log_file: str = "server.log"
    state_file: str = "state.json"
    max_file_size_mb: int = 25
    expose_debug_errors: bool = False
    expose_provider_errors: bool = False
    inline_runs: bool = False
    run_logs_to_file: bool = True
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def runs_dir(self) -> Path:
        return self.data_dir / "runs"


@dataclass(slots=True)
class IngestionConfig:
    base_url: str = ""
    token: str = ""
    convert_urls: tuple[str, ...] = ()
    max_attempts: int = 3
    backoff_s: float = 0.4
    timeout_s: float = 120.0

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)


@dataclass(slots=True)
class OpenAIConfig:
    api_key: str = ""
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    max_attempts: int = 3
    timeout_s: float = 120.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(slots=True)
class GeminiConfig:
    api_key: str = ""
    model: str = ""
    api_version: str = ""
    base_url: str = "https://generativelanguage.googleapis.com"
    max_attempts: int = 3
    min_delay_s: float = 1.2
    timeout_s: float = 120.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(slots=True)
class RewriteConfig:
    primary: ProviderName = "openai"
    backoff_s: float = 0.4
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)

    def configured_providers(self) -> tuple[ProviderName, ...]:
        names: list[ProviderName] = []
        if self.openai.configured:
            names.append("openai")
        if self.gemini.configured:
            names.append("gemini")
        return tuple(names)


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    rewrite: RewriteConfig = field(default_factory=RewriteConfig)
    api: APIConfig = field(default_factory=APIConfig)


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _section(data: Mapping[str, object] | None, key: str) -> Mapping[str, object] | None:
    if not isinstance(data, Mapping):
        return None
    value = data.get(key)
    return value if isinstance(value, Mapping) else None


def _build_scheduler(data: Mapping[str, object] | None) -> SchedulerConfig:
    if not data:
        return SchedulerConfig()
    return SchedulerConfig(
        idle_poll_s=float(data.get("idle_poll_s", 0.8)),
        cooldown_s=float(data.get("cooldown_s", 0.2)),
    )


def _build_runtime(data: Mapping[str, object] | None) -> RuntimeConfig:
    if not data:
        return RuntimeConfig()
    return RuntimeConfig(
        data_dir=Path(str(data.get("data_dir", ".data"))),
        log_file=str(data.get("log_file", "server.log")),
        state_file=str(data.get("state_file", "state.json")),
        max_file_size_mb=int(data.get("max_file_size_mb", 25)),
        expose_debug_errors=bool(data.get("expose_debug_errors", False)),
        expose_provider_errors=bool(data.get("expose_provider_errors", False)),
        inline_runs=bool(data.get("inline_runs", False)),
        run_logs_to_file=bool(data.get("run_logs_to_file", True)),
        scheduler=_build_scheduler(_section(data, "scheduler")),
    )


def _build_ingestion(data: Mapping[str, object] | None) -> IngestionConfig:
    if not data:
        return IngestionConfig()
    return IngestionConfig(
        base_url=str(data.get("base_url", "")),
        token=str(data.get("token", "")),
        convert_urls=_tuple_of_strings(data.get("convert_urls"), ()),
        max_attempts=int(data.get("max_attempts", 3)),
        backoff_s=float(data.get("backoff_s", 0.4)),
        timeout_s=float(data.get("timeout_s", 120.0)),
    )


def _build_openai(data: Mapping[str, object] | None) -> OpenAIConfig:
    if not data:
        return OpenAIConfig()
    defaults = OpenAIConfig()
    return OpenAIConfig(
        api_key=str(data.get("api_key", "")),
        model=str(data.get("model", defaults.model)),
        base_url=str(data.get("base_url", defaults.base_url)),
        max_attempts=int(data.get("max_attempts", 3)),
        timeout_s=float(data.get("timeout_s", 120.0)),
    )


def _build_gemini(data: Mapping[str, object] | None) -> GeminiConfig:
    if not data:
        return GeminiConfig()
    defaults = GeminiConfig()
    return GeminiConfig(
        api_key=str(data.get("api_key", "")),
        model=str(data.get("model", "")),
        api_version=str(data.get("api_version", "")),
        base_url=str(data.get("base_url", defaults.base_url)),
        max_attempts=int(data.get("max_attempts", 3)),
        min_delay_s=float(data.get("min_delay_s", 1.2)),
        timeout_s=float(data.get("timeout_s", 120.0)),
    )


def _build_rewrite(data: Mapping[str, object] | None) -> RewriteConfig:
    if not data:
        return RewriteConfig()
    return RewriteConfig(
        primary=_provider_name(data.get("primary", "openai")),
        backoff_s=float(data.get("backoff_s", 0.4)),
        openai=_build_openai(_section(data, "openai")),
        gemini=_build_gemini(_section(data, "gemini")),
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "127.0.0.1")), port=int(data.get("port", 8000)))


def _provider_name(value: object) -> ProviderName:
    name = str(value).strip().lower()
    if name not in {"openai", "gemini"}:
        raise ValueError(f"Unsupported rewrite provider: {value!r}")
    return name  # type: ignore[return-value]


def _tuple_of_strings(value: object | None, default: Iterable[str]) -> tuple[str, ...]:
    if not value:
        return tuple(default)
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    if isinstance(value, Iterable):
        return tuple(str(item) for item in value)
    raise TypeError(f"Unsupported list configuration: {value!r}")


def apply_settings(config: AppConfig, settings: Settings) -> AppConfig:
    """Overlay environment settings onto a file-based config in place."""

    runtime = config.runtime
    if settings.data_dir:
        runtime.data_dir = Path(settings.data_dir)
    elif settings.is_serverless and runtime.data_dir == RuntimeConfig().data_dir:
        runtime.data_dir = SERVERLESS_DATA_DIR
    if settings.expose_debug_errors is not None:
        runtime.expose_debug_errors = settings.expose_debug_errors
    if settings.debug_expose_provider_errors is not None:
        runtime.expose_provider_errors = settings.debug_expose_provider_errors
    if settings.run_logs_to_file is not None:
        runtime.run_logs_to_file = settings.run_logs_to_file
    if settings.inline_runs is not None:
        runtime.inline_runs = settings.inline_runs
    elif settings.is_serverless:
        runtime.inline_runs = True

    ingestion = config.ingestion
    if settings.data_ingestion_api_url:
        ingestion.base_url = settings.data_ingestion_api_url
    if settings.data_ingestion_api_token:
        ingestion.token = settings.data_ingestion_api_token
    if settings.data_ingestion_convert_urls:
        ingestion.convert_urls = _tuple_of_strings(settings.data_ingestion_convert_urls, ())

    rewrite = config.rewrite
    if settings.rewrite_primary:
        rewrite.primary = _provider_name(settings.rewrite_primary)
    if settings.openai_api_key:
        rewrite.openai.api_key = settings.openai_api_key
    if settings.openai_model:
        rewrite.openai.model = settings.openai_model
    if settings.openai_base_url:
        rewrite.openai.base_url = settings.openai_base_url
    if settings.gemini_api_key:
        rewrite.gemini.api_key = settings.gemini_api_key
    if settings.gemini_model:
        rewrite.gemini.model = settings.gemini_model
    if settings.gemini_api_version:
        rewrite.gemini.api_version = settings.gemini_api_version
    if settings.gemini_min_delay_ms is not None:
        rewrite.gemini.min_delay_s = max(0.0, settings.gemini_min_delay_ms / 1000)
    return config


def load_config(path: Path | None = None, settings: Settings | None = None) -> AppConfig:
    settings = settings or get_settings()
    path = path or settings.config_path or CONFIG_FILE
    raw = _read_toml(path)
    config = AppConfig(
        runtime=_build_runtime(_section(raw, "runtime")),
        ingestion=_build_ingestion(_section(raw, "ingestion")),
        rewrite=_build_rewrite(_section(raw, "rewrite")),
        api=_build_api(_section(raw, "api")),
    )
    return apply_settings(config, settings)


def dump_config(config: AppConfig) -> str:
    from .logging import mask_secret

    payload = {
        "runtime": {
            "data_dir": str(config.runtime.data_dir),
            "log_file": config.runtime.log_file,
            "state_file": config.runtime.state_file,
            "max_file_size_mb": config.runtime.max_file_size_mb,
            "expose_debug_errors": config.runtime.expose_debug_errors,
            "expose_provider_errors": config.runtime.expose_provider_errors,
            "inline_runs": config.runtime.inline_runs,
            "run_logs_to_file": config.runtime.run_logs_to_file,
            "scheduler": {
                "idle_poll_s": config.runtime.scheduler.idle_poll_s,
                "cooldown_s": config.runtime.scheduler.cooldown_s,
            },
        },
        "ingestion": {
            "base_url": config.ingestion.base_url,
            "token": mask_secret(config.ingestion.token),
            "convert_urls": list(config.ingestion.convert_urls),
            "max_attempts": config.ingestion.max_attempts,
        },
        "rewrite": {
            "primary": config.rewrite.primary,
            "configured": list(config.rewrite.configured_providers()),
            "openai": {
                "api_key": mask_secret(config.rewrite.openai.api_key),
                "model": config.rewrite.openai.model,
                "base_url": config.rewrite.openai.base_url,
            },
            "gemini": {
                "api_key": mask_secret(config.rewrite.gemini.api_key),
                "model": config.rewrite.gemini.model or None,
                "api_version": config.rewrite.gemini.api_version or None,
                "min_delay_s": config.rewrite.gemini.min_delay_s,
            },
        },
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)
