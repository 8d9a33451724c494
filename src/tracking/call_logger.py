# src/tracking/call_logger.py — v2
"""Provider call logging: records every call for cost tracking.

Writes ProviderCallRecord entries for post-run analysis.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from docmapper.core.models import SessionUsage
from docmapper.tracking.cost_calculator import compute_provider_stats, summarize_usage
from docmapper.tracking.models import ProviderCallRecord, ProviderStats

logger = logging.getLogger(__name__)


class CallLogger:
    """Accumulates provider call records; safe to share between sessions."""

    def __init__(self) -> None:
        self._records: list[ProviderCallRecord] = []
        self._lock = threading.Lock()

    def record(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        latency_ms: int,
        status: str = "success",
        retry_count: int = 0,
        cost_usd: float = 0.0,
        session_id: str | None = None,
        batch_index: int | None = None,
        error: str | None = None,
    ) -> ProviderCallRecord:
        """Record a provider call.

        Args:
            provider: Profile name the call was routed to.
            model: Model identifier.
            status: Call status (success, retry, failed).
            retry_count: Number of retries before this result.

        Returns:
            The recorded ProviderCallRecord.
        """
        record = ProviderCallRecord(
            call_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            session_id=session_id,
            provider=provider,
            model=model,
            batch_index=batch_index,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            latency_ms=latency_ms,
            status=status,
            retry_count=retry_count,
            error=error,
            cost_usd=cost_usd,
        )
        with self._lock:
            self._records.append(record)
        logger.debug(
            "Provider call %s/%s %s: %d in, %d out, $%.6f",
            provider, model, status, input_tokens, output_tokens, cost_usd,
        )
        return record

    @property
    def records(self) -> list[ProviderCallRecord]:
        """All recorded calls."""
        with self._lock:
            return list(self._records)

    def for_session(self, session_id: str) -> list[ProviderCallRecord]:
        return [r for r in self.records if r.session_id == session_id]

    @property
    def total_tokens(self) -> int:
        """Total tokens consumed across all calls."""
        return sum(r.total_tokens for r in self.records)

    @property
    def total_calls(self) -> int:
        """Total number of provider calls."""
        return len(self.records)

    def stats(self) -> dict[str, ProviderStats]:
        """Per-provider totals over every recorded call."""
        return compute_provider_stats(self.records)

    def usage(self, session_id: str | None = None) -> SessionUsage:
        records = self.for_session(session_id) if session_id else self.records
        return summarize_usage(records)

    def save(self, path: Path) -> None:
        """Save all records to a JSON Lines file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            for record in self.records:
                f.write(json.dumps(record.model_dump(), default=str) + "\n")
