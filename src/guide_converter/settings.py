from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "GC_"


class Settings(BaseSettings):
    """Process settings sourced from environment variables and ``.env``."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    config_path: Path | None = Field(default=None, validation_alias=f"{ENV_PREFIX}CONFIG_PATH")
    inline_runs: bool | None = Field(default=None, validation_alias=f"{ENV_PREFIX}INLINE_RUNS")

    data_dir: str | None = Field(default=None, validation_alias="DATA_DIR")
    expose_debug_errors: bool | None = Field(default=None, validation_alias="EXPOSE_DEBUG_ERRORS")
    debug_expose_provider_errors: bool | None = Field(
        default=None, validation_alias="DEBUG_EXPOSE_PROVIDER_ERRORS"
    )
    run_logs_to_file: bool | None = Field(default=None, validation_alias="RUN_LOGS_TO_FILE")

    data_ingestion_api_url: str | None = Field(default=None, validation_alias="DATA_INGESTION_API_URL")
    data_ingestion_api_token: str | None = Field(default=None, validation_alias="DATA_INGESTION_API_TOKEN")
    data_ingestion_convert_urls: str | None = Field(
        default=None, validation_alias="DATA_INGESTION_CONVERT_URLS"
    )

    rewrite_primary: str | None = Field(default=None, validation_alias="REWRITE_PRIMARY")
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_model: str | None = Field(default=None, validation_alias="OPENAI_MODEL")
    openai_base_url: str | None = Field(default=None, validation_alias="OPENAI_BASE_URL")
    gemini_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY")
    )
    gemini_model: str | None = Field(default=None, validation_alias="GEMINI_MODEL")
    gemini_api_version: str | None = Field(default=None, validation_alias="GEMINI_API_VERSION")
    gemini_min_delay_ms: int | None = Field(default=None, validation_alias="GEMINI_MIN_DELAY_MS")

    netlify: str | None = Field(default=None, validation_alias="NETLIFY")
    vercel: str | None = Field(default=None, validation_alias="VERCEL")
    aws_lambda_function_name: str | None = Field(default=None, validation_alias="AWS_LAMBDA_FUNCTION_NAME")

    @property
    def is_serverless(self) -> bool:
        return self.netlify == "true" or self.vercel == "1" or self.aws_lambda_function_name is not None


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["ENV_PREFIX", "Settings", "get_settings"]
