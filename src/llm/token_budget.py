# src/llm/token_budget.py — v3
"""Token estimation for provider requests.

Estimates are deliberately coarse (about four characters per token); they
gate rate-limit and cost-ceiling checks before dispatch and are reconciled
against the provider's reported usage afterwards.
"""

from __future__ import annotations

from docmapper.llm.models import Message

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count of a text (at least 1 for non-empty text)."""
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


def estimate_request_tokens(
    messages: list[Message],
    system: str | None = None,
    expected_output_tokens: int = 512,
) -> tuple[int, int]:
    """Estimated (input, output) tokens of one request."""
    input_tokens = sum(estimate_tokens(m.content) for m in messages)
    if system:
        input_tokens += estimate_tokens(system)
    return input_tokens, expected_output_tokens
