# tests/unit/tracking/test_cost_calculator.py — v2
"""Tests for tracking/cost_calculator.py."""

from __future__ import annotations

import pytest

from docmapper.llm.profiles import ProviderLimits, ProviderProfile
from docmapper.tracking.call_logger import CallLogger
from docmapper.tracking.cost_calculator import (
    compute_call_cost,
    compute_provider_stats,
    summarize_usage,
)


@pytest.fixture
def records():
    logger = CallLogger()
    logger.record("a", "m", 100, 10, 200, cost_usd=0.01)
    logger.record("a", "m", 0, 0, 400, status="failed", error="auth")
    logger.record("b", "m", 50, 5, 100, cost_usd=0.002)
    return logger.records


class TestComputeCallCost:
    def test_from_profile(self, records):
        profile = ProviderProfile(
            name="a", limits=ProviderLimits(cost_per_input_token=1e-5, cost_per_output_token=1e-4),
        )
        assert compute_call_cost(records[0], profile) == pytest.approx(0.002)

    def test_unknown_profile(self, records):
        assert compute_call_cost(records[0], None) == 0.0


class TestProviderStats:
    def test_per_provider(self, records):
        stats = compute_provider_stats(records)
        assert set(stats) == {"a", "b"}
        assert stats["a"].total_calls == 2
        assert stats["a"].failed_calls == 1
        assert stats["a"].avg_latency_ms == 300.0
        assert stats["a"].max_latency_ms == 400
        assert stats["b"].cost_usd == pytest.approx(0.002)

    def test_empty(self):
        assert compute_provider_stats([]) == {}


class TestSummarizeUsage:
    def test_totals(self, records):
        usage = summarize_usage(records)
        assert usage.calls == 3
        assert usage.failed_calls == 1
        assert usage.input_tokens == 150
        assert usage.total_tokens == 165
        assert usage.cost_usd == pytest.approx(0.012)
