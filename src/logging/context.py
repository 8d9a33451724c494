# src/logging/context.py — v1
"""Contextual logging support: attach session, document, stage and batch to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per mapping session.
_session_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_id", default=None
)
_document: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "document", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_batch_index: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "batch_index", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    session_id: str | None = None
    document: str | None = None
    stage: str | None = None
    batch_index: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        session_id=_session_id.get(),
        document=_document.get(),
        stage=_stage.get(),
        batch_index=_batch_index.get(),
    )


def set_session_context(session_id: str, document: str) -> None:
    """Set session-level context (called once per mapping session)."""
    _session_id.set(session_id)
    _document.set(document)


def set_stage_context(stage: str, batch_index: int | None = None) -> None:
    """Set stage-level context (called on each state transition)."""
    _stage.set(stage)
    _batch_index.set(batch_index)


def clear_context() -> None:
    """Reset all context variables."""
    _session_id.set(None)
    _document.set(None)
    _stage.set(None)
    _batch_index.set(None)
