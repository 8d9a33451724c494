# src/llm/prompts.py — v1
"""Prompt and response contract for AI-assisted field mapping.

The provider receives the candidate source fields with sample values and
the free target fields with their descriptions, and must answer with a
JSON object validated against SuggestionPayload.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from docmapper.core.errors import InvalidResponse
from docmapper.core.models import PropertyMatch, TargetSchema
from docmapper.llm.models import Message

MAX_SAMPLES_IN_PROMPT = 5
MAX_SAMPLE_CHARS = 80

SYSTEM_PROMPT = (
    "You map fields of an extracted document onto a target schema. "
    "Answer with a single JSON object of the form "
    '{"mappings": [{"source_field": str, "target_field": str, '
    '"confidence": float between 0 and 1, "reason": str}]}. '
    "Only use source and target names from the request. Map each source "
    "and each target at most once. Omit fields you cannot map."
)

_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class EscalationCandidate(BaseModel):
    """One source field sent for an AI second opinion."""

    source_field: str
    samples: list[Any] = Field(default_factory=list)
    current_target: str | None = None
    current_score: float | None = None


class MappingRequest(BaseModel):
    """One batch of escalation candidates."""

    candidates: list[EscalationCandidate]
    available_targets: list[str]
    batch_index: int | None = None
    language: str | None = None


class SuggestedMapping(BaseModel):
    source_field: str
    target_field: str
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class SuggestionPayload(BaseModel):
    """Expected JSON body of a provider answer."""

    mappings: list[SuggestedMapping] = Field(default_factory=list)


def _sample_text(value: Any) -> str:
    text = str(value)
    return text if len(text) <= MAX_SAMPLE_CHARS else text[:MAX_SAMPLE_CHARS] + "..."


def build_prompt(request: MappingRequest, schema: TargetSchema) -> tuple[str, list[Message]]:
    """Render the system prompt and user message for a request."""
    targets = []
    for name in request.available_targets:
        field = schema.get(name)
        entry: dict[str, Any] = {"name": name}
        if field is not None:
            entry["type"] = field.field_type
            entry["required"] = field.required
            if field.description:
                entry["description"] = field.description
        targets.append(entry)

    sources = []
    for candidate in request.candidates:
        entry = {
            "name": candidate.source_field,
            "samples": [_sample_text(v) for v in candidate.samples[:MAX_SAMPLES_IN_PROMPT]],
        }
        if candidate.current_target is not None:
            entry["current_guess"] = candidate.current_target
            entry["current_score"] = candidate.current_score
        sources.append(entry)

    body = json.dumps(
        {"schema": schema.name, "source_fields": sources, "target_fields": targets},
        ensure_ascii=False,
        indent=2,
        default=str,
    )
    return SYSTEM_PROMPT, [Message(role="user", content=body)]


def _extract_json(content: str) -> str:
    fenced = _JSON_FENCE.search(content)
    if fenced:
        return fenced.group(1).strip()
    start, end = content.find("{"), content.rfind("}")
    if start != -1 and end > start:
        return content[start : end + 1]
    return content.strip()


def parse_suggestions(
    content: str,
    request: MappingRequest,
    provider: str = "unknown",
) -> tuple[list[PropertyMatch], list[str]]:
    """Validate a provider answer into ai_inferred matches.

    Suggestions naming unknown fields, or reusing a source or target, are
    dropped with a note.

    Returns:
        (matches, notes)

    Raises:
        InvalidResponse: If the content is not a valid SuggestionPayload.
    """
    try:
        payload = SuggestionPayload.model_validate_json(_extract_json(content))
    except ValidationError as exc:
        raise InvalidResponse(f"Unparseable mapping suggestion: {exc.error_count()} errors", provider) from exc

    known_sources = {c.source_field for c in request.candidates}
    known_targets = set(request.available_targets)
    used_sources: set[str] = set()
    used_targets: set[str] = set()
    matches: list[PropertyMatch] = []
    notes: list[str] = []

    for s in payload.mappings:
        if s.source_field not in known_sources or s.target_field not in known_targets:
            notes.append(f"Ignored suggestion {s.source_field!r} -> {s.target_field!r}: unknown field")
            continue
        if s.source_field in used_sources or s.target_field in used_targets:
            notes.append(f"Ignored suggestion {s.source_field!r} -> {s.target_field!r}: field reused")
            continue
        used_sources.add(s.source_field)
        used_targets.add(s.target_field)
        matches.append(PropertyMatch(
            source_field=s.source_field,
            target_field=s.target_field,
            score=round(s.confidence, 6),
            match_kind="ai_inferred",
            algorithm=f"ai:{provider}",
        ))
    return matches, notes
