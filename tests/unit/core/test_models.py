# tests/unit/core/test_models.py — v1
"""Tests for core/models.py — schema validation and confidence levels."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from docmapper.core.models import (
    ContentChunk,
    MappingChunk,
    SessionUsage,
    TargetField,
    TargetSchema,
    confidence_level,
)


class TestConfidenceLevel:
    @pytest.mark.parametrize(
        "score,level",
        [(0.0, "low"), (0.59, "low"), (0.6, "medium"), (0.85, "medium"), (0.851, "high"), (1.0, "high")],
    )
    def test_boundaries(self, score, level):
        assert confidence_level(score) == level


class TestTargetSchema:
    def test_field_names_keep_order(self):
        schema = TargetSchema.from_names(["B", "A", "C"])
        assert schema.field_names == ["B", "A", "C"]

    def test_empty_schema_rejected(self):
        with pytest.raises(ValidationError, match="at least one field"):
            TargetSchema(fields=())

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError, match="duplicate"):
            TargetSchema(fields=(TargetField(name="Id"), TargetField(name="Id")))

    def test_get(self):
        schema = TargetSchema(fields=(TargetField(name="Id", field_type="integer"),))
        assert schema.get("Id").field_type == "integer"
        assert schema.get("Missing") is None

    def test_frozen(self):
        schema = TargetSchema.from_names(["Id"])
        with pytest.raises(ValidationError):
            schema.name = "other"


class TestContentChunk:
    def test_fatal_only_on_last(self):
        assert ContentChunk(index=0, error="bad", is_last=True).is_fatal
        assert not ContentChunk(index=0, error="bad", is_last=False).is_fatal


class TestMappingChunk:
    def test_failure_requires_message(self):
        with pytest.raises(ValidationError, match="error_message"):
            MappingChunk(index=0, is_success=False)

    def test_failure_with_message(self):
        chunk = MappingChunk(index=0, is_success=False, error_message="boom", is_last_chunk=True)
        assert chunk.error_message == "boom"


class TestSessionUsage:
    def test_add_accumulates(self):
        usage = SessionUsage()
        usage.add(100, 20, 0.01)
        usage.add(50, 0, 0.0, failed=True)
        assert usage.calls == 2
        assert usage.failed_calls == 1
        assert usage.total_tokens == 170
        assert usage.cost_usd == pytest.approx(0.01)
