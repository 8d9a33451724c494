# tests/unit/llm/test_prompts.py — v1
"""Tests for llm/prompts.py — prompt rendering and suggestion parsing."""

from __future__ import annotations

import json

import pytest

from docmapper.core.errors import InvalidResponse
from docmapper.llm.prompts import (
    EscalationCandidate,
    MappingRequest,
    build_prompt,
    parse_suggestions,
)
from fakes import suggestion


@pytest.fixture
def request_() -> MappingRequest:
    return MappingRequest(
        candidates=[
            EscalationCandidate(source_field="dob", samples=["1990-01-01"] * 8),
            EscalationCandidate(
                source_field="emp_no", samples=["7"], current_target="Id", current_score=0.82,
            ),
        ],
        available_targets=["BirthDate", "Id"],
        batch_index=1,
    )


class TestBuildPrompt:
    def test_payload(self, request_, employee_schema):
        system, messages = build_prompt(request_, employee_schema)
        assert "JSON" in system
        assert len(messages) == 1
        body = json.loads(messages[0].content)
        assert body["schema"] == "employee"
        assert [s["name"] for s in body["source_fields"]] == ["dob", "emp_no"]
        assert len(body["source_fields"][0]["samples"]) == 5
        assert body["source_fields"][1]["current_guess"] == "Id"
        targets = {t["name"]: t for t in body["target_fields"]}
        assert targets["Id"]["type"] == "integer"
        assert targets["Id"]["required"] is True
        assert "type" not in targets["BirthDate"]

    def test_long_samples_truncated(self, employee_schema):
        request = MappingRequest(
            candidates=[EscalationCandidate(source_field="note", samples=["x" * 500])],
            available_targets=["Id"],
        )
        body = json.loads(build_prompt(request, employee_schema)[1][0].content)
        assert body["source_fields"][0]["samples"][0].endswith("...")
        assert len(body["source_fields"][0]["samples"][0]) == 83


class TestParseSuggestions:
    def test_valid(self, request_):
        matches, notes = parse_suggestions(
            suggestion(("dob", "BirthDate", 0.93)), request_, provider="fake",
        )
        assert notes == []
        assert len(matches) == 1
        assert matches[0].match_kind == "ai_inferred"
        assert matches[0].algorithm == "ai:fake"
        assert matches[0].score == 0.93

    def test_code_fence(self, request_):
        content = "Here you go:\n```json\n" + suggestion(("dob", "BirthDate", 0.9)) + "\n```"
        matches, _ = parse_suggestions(content, request_)
        assert matches[0].target_field == "BirthDate"

    def test_surrounding_prose(self, request_):
        content = "Sure! " + suggestion(("emp_no", "Id", 0.8)) + " Hope this helps."
        matches, _ = parse_suggestions(content, request_)
        assert matches[0].source_field == "emp_no"

    def test_unknown_fields_dropped(self, request_):
        matches, notes = parse_suggestions(
            suggestion(("dob", "Salary", 0.9), ("ghost", "Id", 0.9)), request_,
        )
        assert matches == []
        assert len(notes) == 2
        assert all("unknown field" in n for n in notes)

    def test_reused_target_dropped(self, request_):
        matches, notes = parse_suggestions(
            suggestion(("dob", "Id", 0.9), ("emp_no", "Id", 0.95)), request_,
        )
        assert [m.source_field for m in matches] == ["dob"]
        assert "reused" in notes[0]

    def test_not_json(self, request_):
        with pytest.raises(InvalidResponse, match="fake"):
            parse_suggestions("I cannot help with that.", request_, provider="fake")

    def test_confidence_out_of_range(self, request_):
        with pytest.raises(InvalidResponse):
            parse_suggestions(suggestion(("dob", "BirthDate", 1.5)), request_)
