# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for streaming limits, matching thresholds,
provider discipline and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_prefix="DOCMAPPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Streaming ===
    batch_size_bytes: int = 64 * 1024
    row_batch_size: int = 100
    max_memory_usage_bytes: int = 50 * 1024 * 1024
    memory_pressure_ratio: float = 0.8
    text_encoding: str = "utf-8"

    # === Matching ===
    sample_size: int = 10
    fuzzy_match_threshold: int = 80  # 0-100
    escalation_threshold: float = 0.9  # 0-1

    # === AI escalation ===
    smart_mapping_enabled: bool = False
    ai_min_confidence: float = 0.5
    session_cost_ceiling: float = 1.0  # USD
    provider_timeout_seconds: float = 120.0
    session_timeout_seconds: float = 1800.0
    max_retries: int = 2
    retry_base_delay_seconds: float = 1.0
    retry_backoff_factor: float = 2.0
    rate_limit_max_wait_seconds: float = 60.0
    expected_output_tokens: int = 512
    provider_default: str = ""
    provider_profiles_file: Path | None = None

    # Provider credentials / endpoints
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-4o-mini"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # === Progress ===
    progress_queue_size: int = 100

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("fuzzy_match_threshold")
    @classmethod
    def validate_fuzzy_threshold(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("fuzzy_match_threshold must be within 0-100")
        return v

    @field_validator("escalation_threshold", "memory_pressure_ratio", "ai_min_confidence")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("value must be within 0-1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.escalation_threshold < self.fuzzy_match_threshold / 100.0:
            errors.append("ESCALATION_THRESHOLD must be >= FUZZY_MATCH_THRESHOLD / 100")

        if self.batch_size_bytes <= 0:
            errors.append("BATCH_SIZE_BYTES must be > 0")

        if self.batch_size_bytes >= self.max_memory_usage_bytes:
            errors.append("BATCH_SIZE_BYTES must be < MAX_MEMORY_USAGE_BYTES")

        if not 1 <= self.row_batch_size <= 10_000:
            errors.append("ROW_BATCH_SIZE must be within 1-10000")

        if self.sample_size < 1:
            errors.append("SAMPLE_SIZE must be >= 1")

        if self.max_retries < 0:
            errors.append("MAX_RETRIES must be >= 0")

        if self.session_cost_ceiling < 0:
            errors.append("SESSION_COST_CEILING must be >= 0")

        if self.progress_queue_size < 1:
            errors.append("PROGRESS_QUEUE_SIZE must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def fuzzy_threshold_score(self) -> float:
        """Fuzzy threshold on the 0-1 score scale."""
        return self.fuzzy_match_threshold / 100.0

    @property
    def memory_pressure_bytes(self) -> int:
        return int(self.max_memory_usage_bytes * self.memory_pressure_ratio)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
