# tests/unit/config/test_providers.py — v1
"""Tests for config/providers.py — JSON provider profiles."""

from __future__ import annotations

import json

import pytest

from docmapper.config.providers import load_provider_profiles
from docmapper.config.settings import ConfigurationError


def _write(tmp_path, payload) -> str:
    path = tmp_path / "providers.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestLoadProviderProfiles:
    def test_object_form(self, tmp_path):
        path = _write(tmp_path, {"providers": [{
            "name": "openai", "kind": "openai_compatible", "model": "gpt-4o-mini",
            "limits": {"requests_per_minute": 60, "cost_per_input_token": 1.5e-7},
        }]})
        profiles = load_provider_profiles(path)
        assert len(profiles) == 1
        assert profiles[0].kind == "openai_compatible"
        assert profiles[0].limits.requests_per_minute == 60

    def test_list_form(self, tmp_path):
        path = _write(tmp_path, [{"name": "a"}, {"name": "b", "kind": "local_inference"}])
        names = [p.name for p in load_provider_profiles(path)]
        assert names == ["a", "b"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_provider_profiles(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_provider_profiles(path)

    def test_unknown_kind(self, tmp_path):
        path = _write(tmp_path, [{"name": "x", "kind": "quantum"}])
        with pytest.raises(ConfigurationError, match="invalid"):
            load_provider_profiles(path)

    def test_duplicate_names(self, tmp_path):
        path = _write(tmp_path, [{"name": "x"}, {"name": "x"}])
        with pytest.raises(ConfigurationError, match="duplicate"):
            load_provider_profiles(path)
