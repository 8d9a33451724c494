# src/config/providers.py — v1
"""Provider profiles loaded from a JSON file.

File format::

    {"providers": [
        {"name": "openai", "kind": "openai_compatible", "model": "gpt-4o-mini",
         "capabilities": {"max_tokens": 16384},
         "limits": {"requests_per_minute": 60, "cost_per_input_token": 1.5e-7}}
    ]}

A bare list of profile objects is accepted as well.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from docmapper.config.settings import ConfigurationError
from docmapper.llm.profiles import ProviderProfile

logger = logging.getLogger(__name__)


def load_provider_profiles(path: Path | str) -> list[ProviderProfile]:
    """Parse and validate the provider profiles file.

    Raises:
        ConfigurationError: If the file is missing, malformed or declares
            the same provider name twice.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Provider profiles file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    entries = raw.get("providers", []) if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise ConfigurationError(f"{path}: 'providers' must be a list")

    profiles: list[ProviderProfile] = []
    seen: set[str] = set()
    for i, entry in enumerate(entries):
        try:
            profile = ProviderProfile.model_validate(entry)
        except ValidationError as e:
            raise ConfigurationError(f"{path}: provider #{i} is invalid: {e}") from e
        if profile.name in seen:
            raise ConfigurationError(f"{path}: duplicate provider name {profile.name!r}")
        seen.add(profile.name)
        profiles.append(profile)

    logger.debug("Loaded %d provider profiles from %s", len(profiles), path)
    return profiles
