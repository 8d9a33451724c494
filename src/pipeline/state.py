# src/pipeline/state.py — v2
"""Mutable state of one mapping session.

Owns the committed matches, the bounded per-field samples, inferred types,
accumulated warnings and provider usage. Committed matches stay injective:
a target is owned by at most one source field.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from pydantic import BaseModel, Field

from docmapper.core.models import (
    Confidence,
    MappingWarning,
    PipelineStage,
    PropertyMatch,
    SessionUsage,
    SourceDocument,
    TargetSchema,
    TypeInference,
)
from docmapper.mapping.confidence import aggregate_confidence


class MappingSession(BaseModel):
    """State accumulated while one document is mapped."""

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document: SourceDocument
    target_schema: TargetSchema | None = None
    stage: PipelineStage = "idle"
    started_at: float = Field(default_factory=time.monotonic)

    # Source fields in first-seen order.
    source_fields: list[str] = Field(default_factory=list)
    samples: dict[str, list[Any]] = Field(default_factory=dict)
    inferred_types: dict[str, TypeInference] = Field(default_factory=dict)

    # source field → committed match
    matches: dict[str, PropertyMatch] = Field(default_factory=dict)
    best_rejected: dict[str, PropertyMatch] = Field(default_factory=dict)
    best_target_scores: dict[str, float] = Field(default_factory=dict)
    escalated: set[str] = Field(default_factory=set)

    warnings: list[MappingWarning] = Field(default_factory=list)
    usage: SessionUsage = Field(default_factory=SessionUsage)
    batches_processed: int = 0
    chunks_emitted: int = 0

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at

    # --- Sources and samples ---

    def add_sources(self, names: list[str]) -> list[str]:
        """Register field names; returns the ones not seen before."""
        new = [n for n in names if n not in self.samples]
        for name in new:
            self.source_fields.append(name)
            self.samples[name] = []
        return new

    def add_samples(self, fields: dict[str, list[Any]], sample_size: int) -> list[str]:
        """Append values until each field holds sample_size; returns grown fields."""
        grown = []
        for name, values in fields.items():
            bucket = self.samples.setdefault(name, [])
            room = sample_size - len(bucket)
            if room > 0 and values:
                bucket.extend(values[:room])
                grown.append(name)
        return grown

    # --- Matches ---

    def owner_of(self, target: str) -> str | None:
        for source, match in self.matches.items():
            if match.target_field == target:
                return source
        return None

    def free_targets(self) -> list[str]:
        if self.target_schema is None:
            return []
        taken = {m.target_field for m in self.matches.values()}
        return [name for name in self.target_schema.field_names if name not in taken]

    def unmatched_sources(self) -> list[str]:
        return [s for s in self.source_fields if s not in self.matches]

    def commit(self, match: PropertyMatch) -> None:
        """Commit or replace the match of a source field.

        Raises:
            ValueError: If the target already belongs to another source.
        """
        owner = self.owner_of(match.target_field)
        if owner is not None and owner != match.source_field:
            raise ValueError(
                f"Target {match.target_field!r} already mapped from {owner!r}"
            )
        self.matches[match.source_field] = match
        self.best_rejected.pop(match.source_field, None)

    def committed_matches(self) -> list[PropertyMatch]:
        """Committed matches in source first-seen order."""
        return [self.matches[s] for s in self.source_fields if s in self.matches]

    def confidence(self) -> Confidence:
        if self.target_schema is None:
            return Confidence()
        return aggregate_confidence(self.committed_matches(), self.target_schema)

    def add_warnings(self, warnings: list[MappingWarning]) -> None:
        self.warnings.extend(warnings)
