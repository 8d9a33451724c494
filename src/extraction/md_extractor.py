# src/extraction/md_extractor.py — v3
"""Markdown extractor: text spans plus pipe tables as rows."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from docmapper.core.models import ContentChunk
from docmapper.extraction.base_extractor import BaseExtractor, ChunkEmitter
from docmapper.extraction.chunk_source import ChunkSource, SourceMode
from docmapper.extraction.table_extractor import (
    is_pipe_row,
    is_separator_row,
    normalize_header,
    rows_to_records,
    split_pipe_row,
)


class MdExtractor(BaseExtractor):
    """Extractor for Markdown files (.md, .markdown).

    A table header seen in one chunk stays active for rows in the
    following chunks until a non-table line ends the table.
    """

    @property
    def supported_media_types(self) -> list[str]:
        return ["text/markdown"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".md", ".markdown"]

    @property
    def source_mode(self) -> SourceMode:
        return "lines"

    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        emitter = ChunkEmitter()
        header: list[str] | None = None
        candidate: list[str] | None = None

        for raw in source:
            text = raw.text or ""
            records: list[dict[str, Any]] = []
            for line in text.splitlines():
                if not is_pipe_row(line):
                    header, candidate = None, None
                    continue
                if is_separator_row(line):
                    if candidate is not None:
                        header = normalize_header(candidate)
                    candidate = None
                    continue
                if header is None:
                    candidate = split_pipe_row(line)
                else:
                    records.extend(rows_to_records(header, [split_pipe_row(line)]))

            yield emitter.emit(
                is_last=raw.is_last,
                error=raw.error,
                byte_count=raw.byte_count,
                text=text,
                rows=records,
            )
