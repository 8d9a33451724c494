# src/tracking/models.py — v2
"""Tracking domain models: ProviderCallRecord, ProviderStats."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class ProviderCallRecord(BaseModel):
    """Individual provider call log entry."""

    call_id: str
    timestamp: datetime
    session_id: str | None = None
    provider: str
    model: str
    batch_index: int | None = None
    input_tokens: int
    output_tokens: int
    total_tokens: int
    latency_ms: int
    status: Literal["success", "retry", "failed"]
    retry_count: int = 0
    error: str | None = None
    cost_usd: float = 0.0


class ProviderStats(BaseModel):
    """Per-provider aggregated stats."""

    provider: str
    total_calls: int
    failed_calls: int = 0
    total_input_tokens: int
    total_output_tokens: int
    total_tokens: int
    avg_latency_ms: float
    max_latency_ms: int
    cost_usd: float = 0.0
