# src/llm/gateway.py — v1
"""Uniform, limit-aware access to the registered AI providers.

Before each dispatch the gateway:
  1. waits for a slot in the provider's rolling usage window, up to
     ``rate_limit_max_wait_seconds`` (else RateLimitExceeded);
  2. rejects the call up front if the estimated cost would push the
     session past ``session_cost_ceiling``;
  3. bounds the call by ``provider_timeout_seconds`` and retries transient
     failures with exponential backoff.

Usage counters live in one UsageWindow per profile and are only touched
under that window's lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from docmapper.config.settings import Settings
from docmapper.core.errors import (
    CostCeilingExceeded,
    NoProviderAvailable,
    ProviderError,
    ProviderTimeout,
    RateLimitExceeded,
)
from docmapper.core.models import PropertyMatch, SessionUsage, TargetSchema
from docmapper.llm.base_client import BaseLLMClient
from docmapper.llm.models import LLMResponse
from docmapper.llm.profiles import ProviderProfile, Reservation, UsageWindow
from docmapper.llm.prompts import MappingRequest, SuggestionPayload, build_prompt, parse_suggestions
from docmapper.llm.retry import RetryConfig, with_retry
from docmapper.llm.token_budget import estimate_request_tokens
from docmapper.pipeline.cancellation import CancellationToken
from docmapper.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)


@dataclass
class ProviderSuggestion:
    """Normalized outcome of one gateway request."""

    is_success: bool
    matches: list[PropertyMatch] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    warnings: list[str] = field(default_factory=list)
    provider: str | None = None
    attempts: int = 0
    error: ProviderError | None = None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


class ProviderGateway:
    """Dispatch mapping requests to registered providers.

    One gateway may be shared by concurrent sessions.

    Args:
        settings: Limits, timeouts and retry policy.
        call_logger: Optional tracker recording every provider call.
        clock: Monotonic clock used by the usage windows.
        sleep: Awaitable sleep used while waiting for a window slot.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        call_logger: CallLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or Settings()
        self._call_logger = call_logger
        self._clock = clock
        self._sleep = sleep
        self._profiles: dict[str, ProviderProfile] = {}
        self._clients: dict[str, BaseLLMClient] = {}
        self._windows: dict[str, UsageWindow] = {}

    # --- Registry ---

    def register(self, profile: ProviderProfile, client: BaseLLMClient) -> None:
        """Register a provider under its profile name.

        Raises:
            ValueError: If the name is already registered.
        """
        if profile.name in self._profiles:
            raise ValueError(f"Provider already registered: {profile.name!r}")
        self._profiles[profile.name] = profile
        self._clients[profile.name] = client
        self._windows[profile.name] = UsageWindow(profile, clock=self._clock)
        logger.info("Registered provider %s (%s, model=%s)", profile.name, profile.kind, profile.model)

    def unregister(self, name: str) -> None:
        self._profiles.pop(name, None)
        self._clients.pop(name, None)
        self._windows.pop(name, None)

    @property
    def providers(self) -> list[str]:
        return list(self._profiles)

    @property
    def has_providers(self) -> bool:
        return bool(self._profiles)

    def usage(self, name: str) -> UsageWindow:
        return self._windows[name]

    def select_provider(
        self,
        estimated_tokens: int,
        language: str | None = None,
        name: str | None = None,
    ) -> ProviderProfile:
        """Explicit name, else the default, else the first fitting profile.

        Raises:
            NoProviderAvailable: If nothing registered fits.
        """
        name = name or self._settings.provider_default or None
        if name is not None:
            if name not in self._profiles:
                raise NoProviderAvailable(f"Provider {name!r} is not registered", name)
            return self._profiles[name]
        for profile in self._profiles.values():
            caps = profile.capabilities
            if caps.max_tokens >= estimated_tokens and caps.supports_language(language):
                return profile
        raise NoProviderAvailable(
            f"No registered provider fits {estimated_tokens} tokens"
            + (f" in language {language!r}" if language else ""),
            "gateway",
        )

    # --- Dispatch ---

    async def map(
        self,
        request: MappingRequest,
        target_schema: TargetSchema,
        *,
        session_usage: SessionUsage | None = None,
        cancel_token: CancellationToken | None = None,
        provider: str | None = None,
        session_id: str | None = None,
    ) -> ProviderSuggestion:
        """Like call(), but provider errors come back as a failed suggestion."""
        try:
            return await self.call(
                request, target_schema,
                session_usage=session_usage, cancel_token=cancel_token,
                provider=provider, session_id=session_id,
            )
        except ProviderError as exc:
            logger.warning("Provider request failed: %s", exc)
            return ProviderSuggestion(is_success=False, provider=exc.provider, error=exc)

    async def call(
        self,
        request: MappingRequest,
        target_schema: TargetSchema,
        *,
        session_usage: SessionUsage | None = None,
        cancel_token: CancellationToken | None = None,
        provider: str | None = None,
        session_id: str | None = None,
    ) -> ProviderSuggestion:
        """Send one mapping request through rate, cost and retry discipline.

        Raises:
            ProviderError: On any provider failure after retries.
            SessionCancelled: If the token is cancelled before an attempt.
        """
        settings = self._settings
        system, messages = build_prompt(request, target_schema)
        input_estimate, output_estimate = estimate_request_tokens(
            messages, system, settings.expected_output_tokens,
        )
        estimate = input_estimate + output_estimate
        profile = self.select_provider(estimate, request.language, provider)
        client = self._clients[profile.name]
        window = self._windows[profile.name]
        usage = session_usage if session_usage is not None else SessionUsage()
        max_tokens = min(output_estimate, profile.capabilities.max_tokens)
        attempts = 0

        async def attempt() -> LLMResponse:
            nonlocal attempts
            attempts += 1
            self._check_cost(profile, input_estimate, output_estimate, usage)
            reservation = await self._acquire(window, estimate, cancel_token)
            started = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    client.complete(
                        messages,
                        system=system,
                        max_tokens=max_tokens,
                        temperature=0.0,
                        response_format=SuggestionPayload,
                    ),
                    timeout=settings.provider_timeout_seconds,
                )
            except Exception as exc:
                if isinstance(exc, asyncio.TimeoutError):
                    error: ProviderError = ProviderTimeout(
                        f"No answer within {settings.provider_timeout_seconds:.0f}s", profile.name,
                    )
                elif isinstance(exc, ProviderError):
                    error = exc
                else:
                    error = ProviderError(f"Unexpected failure: {exc}", profile.name)
                self._settle(
                    profile, window, reservation, usage, 0, 0, started,
                    status="retry" if error.transient else "failed",
                    attempt_index=attempts, session_id=session_id,
                    batch_index=request.batch_index, error=str(error),
                )
                if error is exc:
                    raise
                raise error from exc
            self._settle(
                profile, window, reservation, usage,
                response.input_tokens, response.output_tokens, started,
                status="success", attempt_index=attempts,
                session_id=session_id, batch_index=request.batch_index,
            )
            return response

        response = await with_retry(
            attempt,
            provider=profile.name,
            config=RetryConfig(
                max_retries=settings.max_retries,
                base_delay_s=settings.retry_base_delay_seconds,
                backoff_factor=settings.retry_backoff_factor,
            ),
            before_attempt=cancel_token.raise_if_cancelled if cancel_token else None,
        )
        matches, notes = parse_suggestions(response.content, request, profile.name)
        return ProviderSuggestion(
            is_success=True,
            matches=matches,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost=profile.estimate_cost(response.input_tokens, response.output_tokens),
            warnings=notes,
            provider=profile.name,
            attempts=attempts,
        )

    # --- Internals ---

    def _check_cost(
        self,
        profile: ProviderProfile,
        input_tokens: int,
        output_tokens: int,
        usage: SessionUsage,
    ) -> None:
        estimated = profile.estimate_cost(input_tokens, output_tokens)
        ceiling = self._settings.session_cost_ceiling
        if usage.cost_usd + estimated > ceiling:
            raise CostCeilingExceeded(profile.name, estimated, usage.cost_usd, ceiling)

    async def _acquire(
        self,
        window: UsageWindow,
        tokens: int,
        cancel_token: CancellationToken | None,
    ) -> Reservation:
        """Block until the window has room, up to the configured wait cap."""
        max_wait = self._settings.rate_limit_max_wait_seconds
        deadline = self._clock() + max_wait
        while True:
            reservation, wait, limit = window.try_reserve(tokens)
            if reservation is not None:
                return reservation
            remaining = deadline - self._clock()
            if wait > remaining:
                raise RateLimitExceeded(window.profile.name, limit or "rate", wait)
            logger.info(
                "Provider %s %s window full; waiting %.2fs", window.profile.name, limit, wait,
            )
            await self._sleep(wait)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

    def _settle(
        self,
        profile: ProviderProfile,
        window: UsageWindow,
        reservation: Reservation,
        usage: SessionUsage,
        input_tokens: int,
        output_tokens: int,
        started: float,
        status: str,
        attempt_index: int,
        session_id: str | None,
        batch_index: int | None,
        error: str | None = None,
    ) -> None:
        cost = profile.estimate_cost(input_tokens, output_tokens)
        failed = status != "success"
        window.reconcile(reservation, input_tokens, output_tokens, cost, failed=failed)
        usage.add(input_tokens, output_tokens, cost, failed=failed)
        if self._call_logger is not None:
            self._call_logger.record(
                provider=profile.name,
                model=profile.model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                latency_ms=int((time.monotonic() - started) * 1000),
                status=status,
                retry_count=attempt_index - 1,
                cost_usd=cost,
                session_id=session_id,
                batch_index=batch_index,
                error=error,
            )
