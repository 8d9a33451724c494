# src/extraction/json_extractor.py — v1
"""JSON and JSON Lines extractors.

A top-level JSON array is decoded element by element as blocks arrive, so
large arrays never need to be held in memory at once. Nested objects are
flattened to dotted keys (``address.city``).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from docmapper.core.models import ContentChunk
from docmapper.extraction.base_extractor import BaseExtractor, ChunkEmitter
from docmapper.extraction.chunk_source import ChunkSource, SourceMode

logger = logging.getLogger(__name__)

_WHITESPACE = " \t\r\n"


class JsonExtractor(BaseExtractor):
    """Extractor for JSON documents (.json)."""

    @property
    def supported_media_types(self) -> list[str]:
        return ["application/json"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".json"]

    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        emitter = ChunkEmitter()
        decoder = json.JSONDecoder()
        buffer = ""
        state = "start"  # start → array | values → done

        for raw in source:
            buffer += raw.text or ""
            records: list[dict[str, Any]] = []
            error = raw.error
            pos = 0

            while True:
                pos = _skip(buffer, pos, _WHITESPACE + ("," if state == "array" else ""))
                if pos >= len(buffer) or state == "done":
                    break
                if state == "start":
                    if buffer[pos] == "[":
                        state, pos = "array", pos + 1
                        continue
                    state = "values"
                if state == "array" and buffer[pos] == "]":
                    state, pos = "done", pos + 1
                    break
                try:
                    value, end = decoder.raw_decode(buffer, pos)
                except json.JSONDecodeError as exc:
                    if raw.is_last:
                        error = "; ".join(e for e in (error, f"Malformed JSON: {exc.msg} at char {exc.pos}") if e)
                        pos = len(buffer)
                    break
                if end >= len(buffer) and not raw.is_last:
                    # A number at the end of the buffer may continue in the next block.
                    break
                records.extend(_to_records(value, unwrap=state == "values"))
                pos = end

            buffer = buffer[pos:]
            if not raw.is_last and len(buffer) > source.max_memory_usage_bytes:
                yield emitter.emit(
                    is_last=True,
                    error="Undecodable JSON value exceeds memory ceiling",
                    byte_count=raw.byte_count,
                )
                return
            if raw.is_last and state == "array" and not error:
                error = "Unterminated JSON array"

            yield emitter.emit(
                is_last=raw.is_last,
                error=error,
                byte_count=raw.byte_count,
                rows=records,
                metadata={"record_count": len(records)},
            )


class JsonLinesExtractor(BaseExtractor):
    """Extractor for newline-delimited JSON (.jsonl, .ndjson)."""

    @property
    def supported_media_types(self) -> list[str]:
        return ["application/x-ndjson", "application/jsonl"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".jsonl", ".ndjson"]

    @property
    def source_mode(self) -> SourceMode:
        return "lines"

    def extract(self, source: ChunkSource) -> Iterator[ContentChunk]:
        emitter = ChunkEmitter()
        line_no = 0
        for raw in source:
            records: list[dict[str, Any]] = []
            bad_lines: list[int] = []
            for line in (raw.text or "").splitlines():
                line_no += 1
                if not line.strip():
                    continue
                try:
                    records.extend(_to_records(json.loads(line), unwrap=False))
                except json.JSONDecodeError:
                    bad_lines.append(line_no)
            error = raw.error
            if bad_lines:
                logger.warning("Skipped %d malformed JSON lines in chunk %d", len(bad_lines), raw.index)
                msg = f"Malformed JSON on lines {', '.join(map(str, bad_lines[:10]))}"
                error = "; ".join(e for e in (error, msg) if e)
            yield emitter.emit(
                is_last=raw.is_last,
                error=error,
                byte_count=raw.byte_count,
                rows=records,
                metadata={"record_count": len(records)},
            )


def _skip(text: str, pos: int, chars: str) -> int:
    while pos < len(text) and text[pos] in chars:
        pos += 1
    return pos


def _to_records(value: Any, unwrap: bool) -> list[dict[str, Any]]:
    """Turn a decoded JSON value into flat records.

    With ``unwrap``, a top-level object holding a single list of objects
    (``{"data": [...]}``) yields the list elements.
    """
    if unwrap and isinstance(value, dict):
        lists = [v for v in value.values() if isinstance(v, list)]
        if len(value) == 1 and lists and all(isinstance(i, dict) for i in lists[0]):
            return [flatten(item) for item in lists[0]]
    if isinstance(value, list):
        return [flatten(v) if isinstance(v, dict) else {"value": v} for v in value]
    if isinstance(value, dict):
        return [flatten(value)]
    return [{"value": value}]


def flatten(obj: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested objects to dotted keys; lists are kept as values."""
    flat: dict[str, Any] = {}
    for key, value in obj.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            flat.update(flatten(value, prefix=f"{name}."))
        else:
            flat[name] = value
    return flat
