# src/extraction/txt_extractor.py — v3
"""Plain text extractor: passthrough text spans plus ``key: value`` sniffing."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any

from docmapper.core.models import ContentChunk
from docmapper.extraction.base_extractor import BaseExtractor, ChunkEmitter
from docmapper.extraction.chunk_source import ChunkSource, SourceMode

# "Invoice Number: 12345" / "total = 10.5"
_KEY_VALUE = re.compile(r"^\s*([A-Za-z][\w .()/#-]{0,63}?)\s*[:=]\s*(\S.*?)\s*$")


class TxtExtractor(BaseExtractor):
    """Extractor for plain text files (.txt)."""

    @property
    def supported_media_types(self) -> list[str]:
        return ["text/plain"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".txt", ".text", ".log"]

    @property
    def source_mode(self) -> SourceMode:
        return "lines"

    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        emitter = ChunkEmitter()
        for raw in source:
            text = raw.text or ""
            record = extract_key_values(text)
            yield emitter.emit(
                is_last=raw.is_last,
                error=raw.error,
                byte_count=raw.byte_count,
                text=text,
                rows=[record] if record else [],
            )


def extract_key_values(text: str) -> dict[str, Any]:
    """Collect ``key: value`` lines; the first occurrence of a key wins."""
    record: dict[str, Any] = {}
    for line in text.splitlines():
        match = _KEY_VALUE.match(line)
        if match and "://" not in line:
            record.setdefault(match.group(1).strip(), match.group(2))
    return record
