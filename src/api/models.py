# src/api/models.py — v2
"""API-level models: DocumentInput, MappingOptions."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel


class MappingOptions(BaseModel):
    """Per-request overrides, a validated subset of Settings."""

    fuzzy_match_threshold: int | None = None
    escalation_threshold: float | None = None
    sample_size: int | None = None
    smart_mapping_enabled: bool | None = None
    ai_min_confidence: float | None = None
    session_cost_ceiling: float | None = None
    session_timeout_seconds: float | None = None
    provider_timeout_seconds: float | None = None
    batch_size_bytes: int | None = None
    row_batch_size: int | None = None
    max_memory_usage_bytes: int | None = None
    provider_default: str | None = None


class DocumentInput(BaseModel):
    """Input document for mapping.

    ``content`` may be raw bytes, text, a file path or a binary stream.
    When ``media_type`` is omitted it is derived from the filename.
    """

    model_config = {"arbitrary_types_allowed": True}

    content: Any
    filename: str = "document"
    media_type: str | None = None

    @classmethod
    def from_path(cls, path: Path | str, media_type: str | None = None) -> DocumentInput:
        path = Path(path)
        return cls(content=path, filename=path.name, media_type=media_type)
