# src/extraction/table_extractor.py — v3
"""Table helpers shared by extractors: header cleanup and row → record conversion."""

from __future__ import annotations

import re
from typing import Any

_SEPARATOR_ROW = re.compile(r"^\|?[\s\-:|]+\|?$")


def normalize_header(cells: list[str]) -> list[str]:
    """Return unique, non-empty column names for a header row.

    Blank names become ``column_<n>``; repeated names get a ``_<k>`` suffix.
    """
    names: list[str] = []
    seen: dict[str, int] = {}
    for i, cell in enumerate(cells):
        name = (cell or "").strip() or f"column_{i + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        names.append(name)
    return names


def rows_to_records(header: list[str], rows: list[list[Any]]) -> list[dict[str, Any]]:
    """Key each row by the header; short rows are padded with None.

    Cells beyond the header are kept under ``column_<n>``.
    """
    records: list[dict[str, Any]] = []
    for row in rows:
        record: dict[str, Any] = {}
        for i, name in enumerate(header):
            record[name] = row[i] if i < len(row) else None
        for i in range(len(header), len(row)):
            record[f"column_{i + 1}"] = row[i]
        records.append(record)
    return records


def table_to_records(table: list[list[str | None]]) -> list[dict[str, Any]]:
    """Convert a raw table (first row = header) to records."""
    if not table or len(table) < 2:
        return []
    header = normalize_header([c or "" for c in table[0]])
    body = [[(c.strip() if isinstance(c, str) else c) for c in row] for row in table[1:]]
    return rows_to_records(header, body)


def is_pipe_row(line: str) -> bool:
    """Whether a line is a Markdown pipe-table row."""
    stripped = line.strip()
    return stripped.startswith("|") and stripped.endswith("|") and len(stripped) > 1


def is_separator_row(line: str) -> bool:
    """Whether a pipe row is the ``|---|:---:|`` separator."""
    stripped = line.strip()
    return is_pipe_row(stripped) and "-" in stripped and bool(_SEPARATOR_ROW.match(stripped))


def split_pipe_row(line: str) -> list[str]:
    """Split ``| a | b |`` into ``["a", "b"]``."""
    inner = line.strip()[1:-1]
    return [cell.strip() for cell in inner.split("|")]
