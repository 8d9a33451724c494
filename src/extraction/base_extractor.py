# src/extraction/base_extractor.py — v2
"""Abstract extractor interface for document formats.

An extractor pulls raw chunks from a ChunkSource and yields structured
ContentChunks (text spans, rows, field samples) with their own contiguous
0-based indices. Source chunk errors are carried onto the next emitted
chunk; exactly one emitted chunk has is_last=True.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from docmapper.core.models import ContentChunk
from docmapper.extraction.chunk_source import ChunkSource, SourceMode


class BaseExtractor(ABC):
    """Unified interface for document format extractors."""

    @property
    @abstractmethod
    def supported_media_types(self) -> list[str]:
        """Media types this extractor handles (e.g., ['text/csv'])."""

    @property
    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """File extensions this extractor handles (e.g., ['.csv'])."""

    @abstractmethod
    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        """Yield structured chunks lazily from the source."""

    @property
    def source_mode(self) -> SourceMode:
        """Reading mode the ChunkSource should be opened with."""
        return "blocks"

    @property
    def name(self) -> str:
        return type(self).__name__


class ChunkEmitter:
    """Re-indexes output chunks and carries pending source errors forward."""

    def __init__(self) -> None:
        self._index = 0
        self._pending_errors: list[str] = []

    def defer_error(self, error: str | None) -> None:
        if error:
            self._pending_errors.append(error)

    def emit(
        self,
        *,
        is_last: bool = False,
        error: str | None = None,
        byte_count: int = 0,
        text: str | None = None,
        rows: list[dict[str, Any]] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ContentChunk:
        """Build the next chunk; field samples are derived from rows."""
        errors = self._pending_errors + ([error] if error else [])
        self._pending_errors = []
        rows = rows or []
        chunk = ContentChunk(
            index=self._index,
            text=text,
            rows=rows,
            fields=rows_to_fields(rows),
            metadata=metadata or {},
            is_last=is_last,
            error="; ".join(errors) if errors else None,
            byte_count=byte_count,
        )
        self._index += 1
        return chunk


def rows_to_fields(rows: list[dict[str, Any]]) -> dict[str, list[Any]]:
    """Column-wise view of rows, keeping first-seen field order."""
    fields: dict[str, list[Any]] = {}
    for row in rows:
        for key in row:
            fields.setdefault(key, [])
    for name, values in fields.items():
        values.extend(row.get(name) for row in rows)
    return fields


class WholeDocumentExtractor(BaseExtractor):
    """Base for formats that need random access (PDF, DOCX, HTML).

    The stream is read once through ChunkSource.read_all(), bounded by the
    memory ceiling, then parsed into units (pages, sections) which are
    emitted one chunk at a time; rows are split into row batches.
    """

    @abstractmethod
    def parse(self, data: bytes) -> Iterator[tuple[str, list[dict[str, Any]]]]:
        """Yield (text, rows) units from the whole document."""

    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        emitter = ChunkEmitter()
        try:
            data = source.read_all()
            units = self.parse(data)
            current = next(units, None)
        except Exception as exc:  # noqa: BLE001
            yield emitter.emit(is_last=True, error=f"{self.name} failed: {exc}")
            return

        if current is None:
            yield emitter.emit(is_last=True, byte_count=len(data))
            return

        batch = max(1, source.row_batch_size)
        while current is not None:
            try:
                following = next(units, None)
                parse_error = None
            except Exception as exc:  # noqa: BLE001
                following, parse_error = None, f"{self.name} failed: {exc}"
            text, rows = current
            groups = [rows[i:i + batch] for i in range(0, len(rows), batch)] or [[]]
            for g, group in enumerate(groups):
                last_group = g == len(groups) - 1
                yield emitter.emit(
                    is_last=following is None and last_group,
                    error=parse_error if last_group else None,
                    text=text if g == 0 else None,
                    rows=group,
                )
            current = following
