# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

FieldType = Literal["integer", "decimal", "boolean", "datetime", "string"]
MatchKind = Literal["exact", "normalized", "fuzzy", "ai_inferred"]
ConfidenceLevel = Literal["low", "medium", "high"]
PipelineStage = Literal[
    "idle", "extracting", "matching", "ai_escalating", "emitting", "completed", "failed",
]
WarningKind = Literal[
    "unmapped_target",
    "unmatched_source",
    "extraction",
    "type_inference",
    "type_coercion",
    "provider",
    "cost_ceiling",
    "ai_rejected",
]

# Ordered from most to least specific.
TYPE_PRECEDENCE: tuple[FieldType, ...] = ("integer", "decimal", "boolean", "datetime", "string")

LOW_CONFIDENCE_CEILING = 0.6
HIGH_CONFIDENCE_FLOOR = 0.85


def confidence_level(score: float) -> ConfidenceLevel:
    """Discretize a 0-1 score: low < 0.6 <= medium <= 0.85 < high."""
    if score < LOW_CONFIDENCE_CEILING:
        return "low"
    if score > HIGH_CONFIDENCE_FLOOR:
        return "high"
    return "medium"


# === SOURCE SIDE ===


class SourceDocument(BaseModel):
    """Identity of the document owned by one extraction session."""

    model_config = {"frozen": True}

    name: str
    media_type: str
    byte_length: int | None = None


class ContentChunk(BaseModel):
    """One bounded unit of extracted content.

    An error with is_last=False is a recoverable warning; an error on the
    terminal chunk is fatal for the stream.
    """

    index: int = Field(ge=0)
    text: str | None = None
    fields: dict[str, list[Any]] = Field(default_factory=dict)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_last: bool = False
    error: str | None = None
    byte_count: int = 0

    @property
    def is_fatal(self) -> bool:
        return self.is_last and self.error is not None


# === TARGET SIDE ===


class TargetField(BaseModel):
    """One named field of the caller-supplied schema."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    field_type: FieldType = "string"
    required: bool = False
    description: str | None = None


class TargetSchema(BaseModel):
    """Ordered, immutable set of target fields."""

    model_config = {"frozen": True}

    name: str = "schema"
    fields: tuple[TargetField, ...]

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v: tuple[TargetField, ...]) -> tuple[TargetField, ...]:
        if not v:
            raise ValueError("target schema must declare at least one field")
        names = [f.name for f in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate target fields: {', '.join(duplicates)}")
        return v

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> TargetField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @classmethod
    def from_names(cls, names: list[str], **kwargs: Any) -> TargetSchema:
        """Build a schema of optional string fields from bare names."""
        return cls(fields=tuple(TargetField(name=n) for n in names), **kwargs)


# === MAPPING DECISIONS ===


class PropertyMatch(BaseModel):
    """Proposed or committed source → target assignment."""

    source_field: str
    target_field: str
    score: float = Field(ge=0.0, le=1.0)
    match_kind: MatchKind
    algorithm: str


class TypeInference(BaseModel):
    """Inferred semantic type of one source field."""

    field: str
    inferred_type: FieldType = "string"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    sample_count: int = 0
    non_empty_count: int = 0
    matching_count: int = 0
    ambiguous_count: int = 0


class Confidence(BaseModel):
    """Per-property scores plus weighted aggregate."""

    per_property: dict[str, float] = Field(default_factory=dict)
    aggregate: float = 0.0
    level: ConfidenceLevel = "low"


class MappingWarning(BaseModel):
    """Non-fatal issue recorded during a session."""

    field: str | None = None
    message: str
    kind: WarningKind
    confidence: float | None = None
    batch_index: int | None = None


# === PROVIDER USAGE ===


class SessionUsage(BaseModel):
    """Provider usage accrued by one mapping session."""

    calls: int = 0
    failed_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, input_tokens: int, output_tokens: int, cost_usd: float, failed: bool = False) -> None:
        """Accumulate one call (mutates in place)."""
        self.calls += 1
        if failed:
            self.failed_calls += 1
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.cost_usd += cost_usd


# === STREAM OUTPUT ===


class ProgressEvent(BaseModel):
    """Progress snapshot published at each batch boundary."""

    stage: PipelineStage
    percent: float = Field(ge=0.0, le=100.0)
    items_processed: int
    total_items_estimate: int | None = None
    elapsed_seconds: float
    estimated_remaining_seconds: float | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MappingChunk(BaseModel):
    """One streamed unit of mapped output."""

    index: int = Field(ge=0)
    source_index: int | None = None
    records: list[dict[str, Any]] = Field(default_factory=list)
    text: str | None = None
    matches: list[PropertyMatch] = Field(default_factory=list)
    inferred_types: dict[str, TypeInference] = Field(default_factory=dict)
    confidence: Confidence = Field(default_factory=Confidence)
    warnings: list[MappingWarning] = Field(default_factory=list)
    is_last_chunk: bool = False
    is_success: bool = True
    error_message: str | None = None
    cancelled: bool = False
    stage: PipelineStage = "emitting"
    # Populated on the terminal chunk only.
    all_warnings: list[MappingWarning] = Field(default_factory=list)
    usage: SessionUsage | None = None

    @model_validator(mode="after")
    def validate_failure_has_message(self) -> MappingChunk:
        if not self.is_success and not self.error_message:
            raise ValueError("failed chunk must carry an error_message")
        return self


class MappingResult(BaseModel):
    """Collected form of a finished mapping stream."""

    document: SourceDocument
    is_success: bool
    error_message: str | None = None
    cancelled: bool = False
    matches: list[PropertyMatch] = Field(default_factory=list)
    inferred_types: dict[str, TypeInference] = Field(default_factory=dict)
    confidence: Confidence = Field(default_factory=Confidence)
    warnings: list[MappingWarning] = Field(default_factory=list)
    records: list[dict[str, Any]] = Field(default_factory=list)
    text: str = ""
    chunks_emitted: int = 0
    usage: SessionUsage = Field(default_factory=SessionUsage)
