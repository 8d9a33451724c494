# src/tracking/cost_calculator.py — v2
"""Cost and usage aggregation from provider call records.

Prices come from each ProviderProfile's limits (USD per token).
"""

from __future__ import annotations

from collections import defaultdict

from docmapper.core.models import SessionUsage
from docmapper.llm.profiles import ProviderProfile
from docmapper.tracking.models import ProviderCallRecord, ProviderStats


def compute_call_cost(record: ProviderCallRecord, profile: ProviderProfile | None) -> float:
    """Compute the cost of a single call in USD (0 for unknown providers)."""
    if profile is None:
        return 0.0
    return profile.estimate_cost(record.input_tokens, record.output_tokens)


def compute_provider_stats(records: list[ProviderCallRecord]) -> dict[str, ProviderStats]:
    """Compute per-provider statistics from call records."""
    by_provider: dict[str, list[ProviderCallRecord]] = defaultdict(list)
    for r in records:
        by_provider[r.provider].append(r)

    result: dict[str, ProviderStats] = {}
    for provider, provider_records in by_provider.items():
        latencies = [r.latency_ms for r in provider_records]
        result[provider] = ProviderStats(
            provider=provider,
            total_calls=len(provider_records),
            failed_calls=sum(1 for r in provider_records if r.status == "failed"),
            total_input_tokens=sum(r.input_tokens for r in provider_records),
            total_output_tokens=sum(r.output_tokens for r in provider_records),
            total_tokens=sum(r.total_tokens for r in provider_records),
            avg_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
            max_latency_ms=max(latencies) if latencies else 0,
            cost_usd=sum(r.cost_usd for r in provider_records),
        )
    return result


def summarize_usage(records: list[ProviderCallRecord]) -> SessionUsage:
    """Fold call records into session totals."""
    usage = SessionUsage()
    for r in records:
        usage.add(r.input_tokens, r.output_tokens, r.cost_usd, failed=r.status == "failed")
    return usage
