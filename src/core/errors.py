# src/core/errors.py — v1
"""Exception hierarchy for extraction, mapping and provider calls.

Only SessionFatalError ends a mapping stream. Every other error is local
to a batch and is recorded as a MappingWarning by the orchestrator.
"""

from __future__ import annotations


class DocMapperError(Exception):
    """Base exception for all docmapper errors."""


# === EXTRACTION ===


class ExtractionError(DocMapperError):
    """Malformed or corrupt source content."""

    def __init__(self, message: str, chunk_index: int | None = None) -> None:
        self.chunk_index = chunk_index
        super().__init__(message)


class SourceConsumedError(ExtractionError):
    """A ChunkSource was iterated twice."""


class UnsupportedFormatError(ExtractionError, ValueError):
    """No extractor is registered for a media type."""


# === MAPPING ===


class MatchingError(DocMapperError):
    """A field could not be matched (never fatal)."""


class TypeInferenceError(DocMapperError):
    """Type inference failed for a field (degrades to string/0)."""


class TypeCoercionError(TypeInferenceError, ValueError):
    """A raw value could not be converted to its target type."""

    def __init__(self, value: object, field_type: str) -> None:
        self.value = value
        self.field_type = field_type
        super().__init__(f"Cannot coerce {value!r} to {field_type}")


# === PROVIDERS ===


class ProviderError(DocMapperError):
    """Base for AI provider failures."""

    transient: bool = False

    def __init__(self, message: str, provider: str = "unknown") -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderTimeout(ProviderError):
    """Provider call exceeded its timeout."""

    transient = True


class ProviderServerError(ProviderError):
    """5xx-equivalent provider failure."""

    transient = True


class RateLimited(ProviderError):
    """Provider reported a rate limit, optionally with a retry-after hint."""

    transient = True

    def __init__(self, message: str, provider: str = "unknown", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message, provider)


class RateLimitExceeded(ProviderError):
    """Local usage window stays exhausted beyond the configured wait cap."""

    def __init__(self, provider: str, limit: str, wait_seconds: float) -> None:
        self.limit = limit
        self.wait_seconds = wait_seconds
        super().__init__(
            f"{limit} limit exhausted; window frees in {wait_seconds:.1f}s", provider,
        )


class AuthFailure(ProviderError):
    """Credentials rejected by the provider."""


class InvalidResponse(ProviderError):
    """Provider answered with content that fails validation."""


class CostCeilingExceeded(ProviderError):
    """Estimated cost would push the session past its ceiling."""

    def __init__(self, provider: str, estimated_cost: float, spent: float, ceiling: float) -> None:
        self.estimated_cost = estimated_cost
        self.spent = spent
        self.ceiling = ceiling
        super().__init__(
            f"estimated ${estimated_cost:.4f} on top of ${spent:.4f} exceeds ceiling ${ceiling:.4f}",
            provider,
        )


class NoProviderAvailable(ProviderError):
    """No registered provider satisfies the request."""


class ProviderRetryExhausted(ProviderError):
    """All retries exhausted for a transient provider failure."""

    def __init__(self, provider: str, attempts: int, last_error: Exception) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"failed after {attempts} attempts: {last_error}", provider)


# === SESSION ===


class SessionFatalError(DocMapperError):
    """Ends the mapping stream immediately."""


class SchemaValidationError(SessionFatalError):
    """The target schema is malformed."""


class SessionCancelled(SessionFatalError):
    """Cancellation was requested by the caller."""

    def __init__(self, message: str = "Session cancelled") -> None:
        super().__init__(message)


class SessionTimeout(SessionFatalError):
    """Session exceeded its total wall-clock budget."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Session exceeded {timeout_seconds:.0f}s timeout")


class StreamReadError(SessionFatalError):
    """The underlying byte stream failed on the terminal chunk."""
