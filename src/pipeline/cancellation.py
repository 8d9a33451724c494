# src/pipeline/cancellation.py — v1
"""Cooperative cancellation shared between a caller and its session."""

from __future__ import annotations

import threading

from docmapper.core.errors import SessionCancelled


class CancellationToken:
    """Thread-safe flag checked before each chunk pull and provider call."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "Cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raises SessionCancelled once cancel() has been called."""
        if self._event.is_set():
            raise SessionCancelled(self._reason or "Session cancelled")
