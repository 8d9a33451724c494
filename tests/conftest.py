# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a scripted fake provider client, sample documents, schemas and
settings. No network access: every provider call is served in memory.
"""

from __future__ import annotations

import pytest

from docmapper.config.settings import Settings
from docmapper.core.models import TargetField, TargetSchema
from docmapper.extraction.chunk_source import ChunkSource
from docmapper.extraction.csv_extractor import CsvExtractor
from docmapper.llm.profiles import ProviderLimits, ProviderProfile
from fakes import FakeLLMClient


# === FIXTURES: Settings ===


@pytest.fixture
def settings() -> Settings:
    """Default settings isolated from any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with instant retries and small batches."""
    return Settings(
        _env_file=None,
        row_batch_size=2,
        retry_base_delay_seconds=0.0,
        rate_limit_max_wait_seconds=0.0,
    )


# === FIXTURES: Sample data ===


@pytest.fixture
def employee_csv() -> bytes:
    return (
        "emp_id,full_name,age,hired_on\n"
        "1,Ada Lovelace,36,2024-01-15\n"
        "2,Alan Turing,41,2023-06-01\n"
        "3,Grace Hopper,n/a,2022-11-30\n"
        "4,Edsger Dijkstra,72,2021-03-09\n"
    ).encode("utf-8")


@pytest.fixture
def employee_schema() -> TargetSchema:
    return TargetSchema(
        name="employee",
        fields=(
            TargetField(name="Id", field_type="integer", required=True),
            TargetField(name="FullName", field_type="string", required=True),
            TargetField(name="Age", field_type="integer"),
            TargetField(name="HireDate", field_type="datetime"),
        ),
    )


@pytest.fixture
def make_csv_source(fast_settings: Settings):
    """Factory: ChunkSource over CSV bytes plus its extractor."""

    def _make(data: bytes, settings: Settings | None = None) -> tuple[ChunkSource, CsvExtractor]:
        extractor = CsvExtractor()
        source = ChunkSource.open(
            data, "text/csv", settings=settings or fast_settings, name="sample.csv",
            mode=extractor.source_mode,
        )
        return source, extractor

    return _make


# === FIXTURES: Providers ===


@pytest.fixture
def fake_profile() -> ProviderProfile:
    return ProviderProfile(
        name="fake",
        kind="custom",
        model="fake-model",
        limits=ProviderLimits(cost_per_input_token=1e-6, cost_per_output_token=2e-6),
    )


@pytest.fixture
def fake_client() -> FakeLLMClient:
    return FakeLLMClient()
