# src/mapping/record_mapper.py — v1
"""Re-key extracted rows to target field names and coerce their values."""

from __future__ import annotations

import logging
from typing import Any

from docmapper.core.errors import TypeCoercionError
from docmapper.core.models import MappingWarning, PropertyMatch, TargetSchema
from docmapper.mapping.type_inferencer import coerce

logger = logging.getLogger(__name__)


def map_rows(
    rows: list[dict[str, Any]],
    matches: dict[str, PropertyMatch],
    schema: TargetSchema,
    batch_index: int | None = None,
) -> tuple[list[dict[str, Any]], list[MappingWarning]]:
    """Map rows through the committed source → target matches.

    Only mapped targets appear in a record. A value that cannot be coerced
    to its target type is kept raw, with one warning per field per call.

    Args:
        rows: Extracted rows keyed by source field.
        matches: Committed matches keyed by source field.
        schema: Target schema giving each field's type.

    Returns:
        (records, warnings)
    """
    records: list[dict[str, Any]] = []
    failures: dict[str, tuple[int, Any]] = {}

    for row in rows:
        record: dict[str, Any] = {}
        for source, match in matches.items():
            if source not in row:
                continue
            target = schema.get(match.target_field)
            value = row[source]
            if target is None:
                record[match.target_field] = value
                continue
            try:
                record[target.name] = coerce(value, target.field_type)
            except TypeCoercionError:
                record[target.name] = value
                count, first = failures.get(target.name, (0, value))
                failures[target.name] = (count + 1, first)
        records.append(record)

    warnings = []
    for target_name, (count, first) in failures.items():
        field_type = schema.get(target_name).field_type  # type: ignore[union-attr]
        warnings.append(MappingWarning(
            field=target_name,
            message=(
                f"{count} value(s) could not be coerced to {field_type} "
                f"(first: {first!r}); raw values kept"
            ),
            kind="type_coercion",
            batch_index=batch_index,
        ))
    if warnings:
        logger.debug("Coercion failures in batch %s: %d fields", batch_index, len(warnings))
    return records, warnings
