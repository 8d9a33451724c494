# tests/unit/logging/test_context.py — v2
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

from docmapper.logging.context import (
    clear_context,
    get_context,
    set_session_context,
    set_stage_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.session_id is None
        assert ctx.document is None
        assert ctx.stage is None
        assert ctx.batch_index is None

    def test_set_session_context(self):
        set_session_context("s1", "people.csv")
        ctx = get_context()
        assert ctx.session_id == "s1"
        assert ctx.document == "people.csv"

    def test_set_stage_context(self):
        set_stage_context("matching", batch_index=4)
        ctx = get_context()
        assert ctx.stage == "matching"
        assert ctx.batch_index == 4

    def test_stage_without_batch_resets_batch(self):
        set_stage_context("matching", batch_index=4)
        set_stage_context("completed")
        assert get_context().batch_index is None

    def test_as_dict_filters_none(self):
        set_session_context("s1", "doc")
        d = get_context().as_dict()
        assert d == {"session_id": "s1", "document": "doc"}

    def test_batch_index_zero_kept(self):
        set_stage_context("extracting", batch_index=0)
        assert get_context().as_dict()["batch_index"] == 0

    def test_clear(self):
        set_session_context("s1", "doc")
        set_stage_context("inferring", 1)
        clear_context()
        assert get_context().as_dict() == {}
