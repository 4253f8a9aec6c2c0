"""Import mapper configuration settings."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


def _optional_path_env(var_name: str) -> Path | None:
    raw = os.getenv(var_name, "").strip()
    return Path(raw) if raw else None


class RetryConfig(BaseModel):
    """Retry and backoff configuration."""

    max_retries: int = Field(default=2, ge=0)
    backoff_base_ms: int = Field(default=1000, ge=0)
    backoff_max_ms: int = Field(default=30000, ge=0)
    jitter: bool = False


class ExtractionConfig(BaseModel):
    """Extraction orchestrator configuration."""

    enable_parallel_execution: bool = True
    enable_early_termination: bool = True
    max_strategies: int = Field(default=5, ge=1)
    min_confidence_threshold: int = Field(default=70, ge=0, le=100)
    timeout_ms: int = Field(default=30000, ge=1)
    sample_size_bytes: int = Field(default=2048, ge=1)
    sample_line_count: int = Field(default=10, ge=1)
    profile_sample_rows: int = Field(default=100, ge=1)


class MappingConfig(BaseModel):
    """Field mapping engine configuration."""

    min_confidence: int = Field(default=60, ge=0, le=100)
    learn_threshold: int = Field(default=70, ge=0, le=100)
    allow_duplicate_targets: bool = False
    timeout_s: float = Field(default=10.0, gt=0)
    max_cost_per_session: float = Field(default=0.001, ge=0)
    fuzzy_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    historical_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    historical_pool_size: int = Field(default=100, ge=1)
    llm_sample_rows: int = Field(default=3, ge=0)


class LLMConfig(BaseModel):
    """Chat completion gateway configuration (OpenRouter-compatible)."""

    api_key: str = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY", ""))
    base_url: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    )
    model: str = "openai/gpt-4o-mini"
    http_referer: str = "http://localhost"
    app_title: str = "Import Mapper"
    input_price_per_million: float = 0.150
    output_price_per_million: float = 0.600
    max_tokens: int = Field(default=1500, ge=1)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    timeout_s: float = Field(default=30.0, gt=0)
    cost_limit: float = Field(default=0.01, ge=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid LLM base URL: {value}")
        return value.rstrip("/")


class LearningConfig(BaseModel):
    """Learning cache configuration."""

    store_path: Path | None = Field(
        default_factory=lambda: _optional_path_env("IMPORT_MAPPER_PATTERN_STORE")
    )
    min_usage_for_pattern: int = 3
    min_success_rate: float = 70
    cache_warm_threshold: int = 10
    cache_warm_limit: int = 50
    retention_days: int = Field(default=90, ge=1)
    variation_factor: float = Field(default=0.8, gt=0.0, le=1.0)
    strategy_history_limit: int = Field(default=10, ge=1)
    max_suggestions: int = Field(default=3, ge=1)


class APIConfig(BaseModel):
    """HTTP surface controls from environment."""

    allowed_origins: list[str] = Field(
        default_factory=lambda: APIConfig.parse_allowed_origins(
            os.getenv("IMPORT_MAPPER_ALLOWED_ORIGINS", "")
        )
    )
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, ge=1)

    @staticmethod
    def parse_allowed_origins(value: str) -> list[str]:
        if not value.strip():
            return ["http://localhost", "http://127.0.0.1"]
        origins = [origin.strip() for origin in value.split(",") if origin.strip()]
        if "*" in origins:
            raise ValueError("IMPORT_MAPPER_ALLOWED_ORIGINS cannot include '*'")
        return origins

    @field_validator("allowed_origins")
    @classmethod
    def _validate_allowed_origins(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("allowed_origins cannot be empty")
        for origin in value:
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"Invalid CORS origin: {origin}")
        return value


class EngineConfig(BaseModel):
    """Root configuration for the import mapping engine."""

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    mapping: MappingConfig = Field(default_factory=MappingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    log_level: str = Field(default_factory=lambda: os.getenv("IMPORT_MAPPER_LOG_LEVEL", "INFO"))
