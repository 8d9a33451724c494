# src/mapping/type_inferencer.py — v1
"""Semantic type inference from sample values, and value coercion.

Types are tested in precedence order integer, decimal, boolean, datetime,
string. Empty values (None, "", whitespace) count towards sample_count but
are excluded from the test. When not every non-empty sample parses, the
most specific type a strict majority parses as wins and the outliers lower
the confidence.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from docmapper.core.errors import TypeCoercionError, TypeInferenceError
from docmapper.core.models import TYPE_PRECEDENCE, FieldType, MappingWarning, TypeInference

logger = logging.getLogger(__name__)

AMBIGUITY_PENALTY = 0.1

_INTEGER = re.compile(r"^[+-]?\d+$")
_DECIMAL = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_COMPACT_DATE = re.compile(r"^\d{8}$")

TRUE_VALUES = frozenset({"true", "yes", "y", "on", "t"})
FALSE_VALUES = frozenset({"false", "no", "n", "off", "f"})

DATETIME_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%d-%m-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%Y%m%d",
)


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else str(value)


def parse_integer(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = _text(value)
    return int(text) if _INTEGER.match(text) else None


def parse_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    text = _text(value)
    if not _DECIMAL.match(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def parse_boolean(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = _text(value).lower()
    if text in TRUE_VALUES or text == "1":
        return True
    if text in FALSE_VALUES or text == "0":
        return False
    return None


def parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


_PARSERS = {
    "integer": parse_integer,
    "decimal": parse_decimal,
    "boolean": parse_boolean,
    "datetime": parse_datetime,
}


def parses_as(value: Any, field_type: FieldType) -> bool:
    if field_type == "string":
        return True
    return _PARSERS[field_type](value) is not None


def is_ambiguous(value: Any) -> bool:
    """An 8-digit integer that is also a valid YYYYMMDD calendar date."""
    text = _text(value)
    if not _COMPACT_DATE.match(text):
        return False
    try:
        datetime.strptime(text, "%Y%m%d")
    except ValueError:
        return False
    return True


def coerce(value: Any, field_type: FieldType) -> Any:
    """Convert a raw value to the Python value of field_type.

    Empty values coerce to None for every type except string.

    Raises:
        TypeCoercionError: If the value does not parse as field_type.
    """
    if field_type == "string":
        return value if value is None or isinstance(value, str) else str(value)
    if is_empty(value):
        return None
    parsed = _PARSERS[field_type](value)
    if parsed is None:
        raise TypeCoercionError(value, field_type)
    return parsed


class TypeInferencer:
    """Infer the semantic type of source fields from sampled values.

    Args:
        sample_size: Max values considered per field.
    """

    def __init__(self, sample_size: int = 10) -> None:
        if sample_size < 1:
            raise ValueError("sample_size must be >= 1")
        self.sample_size = sample_size

    def infer(self, field: str, values: list[Any]) -> TypeInference:
        """Infer one field's type.

        Raises:
            TypeInferenceError: If the samples cannot be evaluated.
        """
        samples = list(values[: self.sample_size])
        non_empty = [v for v in samples if not is_empty(v)]
        if not non_empty:
            return TypeInference(field=field, sample_count=len(samples))

        try:
            counts = {t: sum(1 for v in non_empty if parses_as(v, t)) for t in TYPE_PRECEDENCE}
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise TypeInferenceError(f"Cannot evaluate samples of '{field}': {exc}") from exc

        total = len(non_empty)
        chosen: FieldType = next(t for t in TYPE_PRECEDENCE if counts[t] == total)
        if chosen == "string":
            # Nothing parses fully; fall back to a strict-majority type.
            for field_type in TYPE_PRECEDENCE[:-1]:
                if counts[field_type] * 2 > total:
                    chosen = field_type
                    break

        matching = counts[chosen]
        ambiguous = 0
        if chosen in ("integer", "datetime"):
            ambiguous = sum(1 for v in non_empty if is_ambiguous(v))
        confidence = matching / total - AMBIGUITY_PENALTY * ambiguous
        confidence = round(min(1.0, max(0.0, confidence)), 6)

        return TypeInference(
            field=field,
            inferred_type=chosen,
            confidence=confidence,
            sample_count=len(samples),
            non_empty_count=total,
            matching_count=matching,
            ambiguous_count=ambiguous,
        )

    def infer_all(
        self,
        fields: dict[str, list[Any]],
        batch_index: int | None = None,
    ) -> tuple[dict[str, TypeInference], list[MappingWarning]]:
        """Infer every field; evaluation failures fall back to string/0."""
        results: dict[str, TypeInference] = {}
        warnings: list[MappingWarning] = []
        for name, values in fields.items():
            try:
                results[name] = self.infer(name, values)
            except TypeInferenceError as exc:
                logger.warning("Type inference failed for %s: %s", name, exc)
                results[name] = TypeInference(field=name, sample_count=min(len(values), self.sample_size))
                warnings.append(MappingWarning(
                    field=name, message=str(exc), kind="type_inference",
                    confidence=0.0, batch_index=batch_index,
                ))
        return results, warnings
