# src/extraction/csv_extractor.py — v2
"""Delimited-text extractor (CSV, TSV) yielding row batches."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterator

from docmapper.core.models import ContentChunk
from docmapper.extraction.base_extractor import BaseExtractor, ChunkEmitter
from docmapper.extraction.chunk_source import ChunkSource, SourceMode
from docmapper.extraction.table_extractor import normalize_header, rows_to_records

logger = logging.getLogger(__name__)


class CsvExtractor(BaseExtractor):
    """Extractor for comma-separated files (.csv).

    The first non-blank record is the header. A quoted field spanning a
    chunk boundary is carried over to the next chunk.
    """

    delimiter = ","

    @property
    def supported_media_types(self) -> list[str]:
        return ["text/csv"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".csv"]

    @property
    def source_mode(self) -> SourceMode:
        return "lines"

    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        emitter = ChunkEmitter()
        header: list[str] | None = None
        carry = ""
        carry_bytes = 0

        for raw in source:
            text = carry + (raw.text or "")
            byte_count = carry_bytes + raw.byte_count
            if not raw.is_last and _has_open_quote(text, self.delimiter):
                if len(text) > source.max_memory_usage_bytes:
                    yield emitter.emit(
                        is_last=True,
                        error="Unterminated quoted field exceeds memory ceiling",
                        byte_count=byte_count,
                    )
                    return
                carry, carry_bytes = text, byte_count
                emitter.defer_error(raw.error)
                continue
            carry, carry_bytes = "", 0

            error = raw.error
            try:
                parsed = [
                    row for row in csv.reader(io.StringIO(text), delimiter=self.delimiter)
                    if any(cell.strip() for cell in row)
                ]
            except csv.Error as exc:
                logger.warning("Malformed CSV in chunk %d: %s", raw.index, exc)
                parsed = []
                error = "; ".join(e for e in (error, f"Malformed CSV: {exc}") if e)

            if header is None and parsed:
                header = normalize_header(parsed[0])
                parsed = parsed[1:]
            records = rows_to_records(header, parsed) if header else []
            chunk = emitter.emit(
                is_last=raw.is_last,
                error=error,
                byte_count=byte_count,
                text=text,
                rows=records,
                metadata={"row_count": len(records)},
            )
            if header and not chunk.fields:
                # Header-only batch still exposes the column names.
                chunk.fields = {name: [] for name in header}
            yield chunk


class TsvExtractor(CsvExtractor):
    """Extractor for tab-separated files (.tsv)."""

    delimiter = "\t"

    @property
    def supported_media_types(self) -> list[str]:
        return ["text/tab-separated-values"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".tsv", ".tab"]


def _has_open_quote(text: str, delimiter: str = ",") -> bool:
    """Whether text ends inside a quoted field.

    Follows the default csv dialect: a quote opens a field only as its
    first character, and ``""`` inside a quoted field is a literal quote.
    A quote elsewhere in an unquoted field (``12" pipe``) is data.
    """
    in_quotes = False
    field_start = True
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    i += 2
                    continue
                in_quotes = False
        elif ch == '"' and field_start:
            in_quotes = True
        field_start = not in_quotes and ch in (delimiter, "\n", "\r")
        i += 1
    return in_quotes
