# src/llm/profiles.py — v1
"""Provider profiles and their rolling usage windows.

A ProviderProfile is static configuration. The UsageWindow attached to it
is owned by the gateway and guarded by one lock per profile: a slot is
reserved before a call and reconciled with actual usage afterwards, so no
network I/O ever happens while the lock is held.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from pydantic import BaseModel, Field

from docmapper.llm.base_client import ProviderKind

DAY_SECONDS = 86_400.0


class ProviderCapabilities(BaseModel):
    """What a provider can serve."""

    supports_streaming: bool = False
    max_tokens: int = 8192
    # Empty means any language.
    supported_languages: list[str] = Field(default_factory=list)

    def supports_language(self, language: str | None) -> bool:
        if not language or not self.supported_languages:
            return True
        return language.lower() in {lang.lower() for lang in self.supported_languages}


class ProviderLimits(BaseModel):
    """Rate and pricing limits; None means unlimited."""

    requests_per_minute: int | None = None
    requests_per_day: int | None = None
    tokens_per_minute: int | None = None
    cost_per_input_token: float = 0.0
    cost_per_output_token: float = 0.0
    window_seconds: float = Field(default=60.0, gt=0)


class ProviderProfile(BaseModel):
    """Named provider configuration."""

    name: str
    kind: ProviderKind = "custom"
    model: str = ""
    capabilities: ProviderCapabilities = Field(default_factory=ProviderCapabilities)
    limits: ProviderLimits = Field(default_factory=ProviderLimits)

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.limits.cost_per_input_token
            + output_tokens * self.limits.cost_per_output_token
        )


@dataclass
class _Slot:
    timestamp: float
    tokens: int


@dataclass(frozen=True)
class Reservation:
    """Handle on one reserved request slot."""

    profile: str
    slot: _Slot
    estimated_tokens: int


class UsageWindow:
    """Rolling request and token counters for one provider profile."""

    def __init__(self, profile: ProviderProfile, clock: Callable[[], float] = time.monotonic) -> None:
        self.profile = profile
        self._clock = clock
        self._lock = threading.Lock()
        self._minute: deque[_Slot] = deque()
        self._day: deque[_Slot] = deque()
        self.total_calls = 0
        self.failed_calls = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self.cost_usd = 0.0

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    def _prune(self, now: float) -> None:
        window = self.profile.limits.window_seconds
        while self._minute and now - self._minute[0].timestamp >= window:
            self._minute.popleft()
        while self._day and now - self._day[0].timestamp >= DAY_SECONDS:
            self._day.popleft()

    def _wait_needed(self, tokens: int, now: float) -> tuple[float, str | None]:
        """Seconds until a request of `tokens` fits, and the blocking limit."""
        limits = self.profile.limits
        window = limits.window_seconds
        wait, blocking = 0.0, None

        if limits.requests_per_minute is not None and len(self._minute) >= limits.requests_per_minute:
            excess = len(self._minute) - limits.requests_per_minute
            candidate = self._minute[excess].timestamp + window - now
            if candidate > wait:
                wait, blocking = candidate, "requests_per_minute"

        if limits.requests_per_day is not None and len(self._day) >= limits.requests_per_day:
            excess = len(self._day) - limits.requests_per_day
            candidate = self._day[excess].timestamp + DAY_SECONDS - now
            if candidate > wait:
                wait, blocking = candidate, "requests_per_day"

        if limits.tokens_per_minute is not None:
            if tokens > limits.tokens_per_minute:
                return float("inf"), "tokens_per_minute"
            used = sum(s.tokens for s in self._minute)
            if used + tokens > limits.tokens_per_minute:
                freed = 0
                for slot in self._minute:
                    freed += slot.tokens
                    if used - freed + tokens <= limits.tokens_per_minute:
                        candidate = slot.timestamp + window - now
                        if candidate > wait:
                            wait, blocking = candidate, "tokens_per_minute"
                        break

        return max(0.0, wait), blocking

    def try_reserve(self, tokens: int) -> tuple[Reservation | None, float, str | None]:
        """Reserve a slot if every limit allows it.

        Returns:
            (reservation, 0.0, None) on success, else
            (None, seconds_to_wait, blocking_limit).
        """
        with self._lock:
            now = self._clock()
            self._prune(now)
            wait, blocking = self._wait_needed(tokens, now)
            if blocking is not None:
                return None, wait, blocking
            slot = _Slot(timestamp=now, tokens=tokens)
            self._minute.append(slot)
            self._day.append(slot)
            return Reservation(self.profile.name, slot, tokens), 0.0, None

    def reconcile(
        self,
        reservation: Reservation,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float,
        failed: bool = False,
    ) -> None:
        """Replace the estimate with actual usage and update totals."""
        with self._lock:
            reservation.slot.tokens = input_tokens + output_tokens
            self.total_calls += 1
            if failed:
                self.failed_calls += 1
            self.input_tokens += input_tokens
            self.output_tokens += output_tokens
            self.cost_usd += cost_usd

    def snapshot(self) -> dict[str, float]:
        """Current counters, for diagnostics."""
        with self._lock:
            self._prune(self._clock())
            return {
                "requests_in_window": len(self._minute),
                "requests_today": len(self._day),
                "tokens_in_window": sum(s.tokens for s in self._minute),
                "total_calls": self.total_calls,
                "failed_calls": self.failed_calls,
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "cost_usd": self.cost_usd,
            }
