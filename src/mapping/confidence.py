# src/mapping/confidence.py — v1
"""Aggregate confidence over committed matches.

The aggregate is the weighted mean of committed scores, with required
target fields counting twice. No committed match gives 0.0 / low.
"""

from __future__ import annotations

from collections.abc import Iterable

from docmapper.core.models import Confidence, PropertyMatch, TargetSchema, confidence_level

REQUIRED_WEIGHT = 2.0


def aggregate_confidence(matches: Iterable[PropertyMatch], schema: TargetSchema) -> Confidence:
    per_property: dict[str, float] = {}
    weighted = 0.0
    weights = 0.0
    for match in matches:
        field = schema.get(match.target_field)
        weight = REQUIRED_WEIGHT if field is not None and field.required else 1.0
        per_property[match.target_field] = match.score
        weighted += weight * match.score
        weights += weight
    aggregate = round(weighted / weights, 6) if weights else 0.0
    return Confidence(
        per_property=per_property,
        aggregate=aggregate,
        level=confidence_level(aggregate),
    )
