# src/extraction/chunk_source.py — v2
"""Bounded, pull-based reader turning a byte stream into ContentChunks.

Bytes are read from the underlying stream only when next() is called, so a
slow consumer blocks the producer instead of growing a buffer. Two reading
modes are supported:

- ``lines``: up to ``row_batch_size`` whole lines per chunk (tabular and
  line-oriented formats); a line is never split across chunks.
- ``blocks``: decoded blocks of at most ``batch_size_bytes`` bytes; a
  multi-byte UTF-8 sequence is never split across chunks.

Formats needing random access (PDF, DOCX) call read_all(), which is bounded
by ``max_memory_usage_bytes``.
"""

from __future__ import annotations

import codecs
import gc
import io
import logging
from collections.abc import Iterator
from typing import BinaryIO, Literal

from docmapper.config.settings import Settings
from docmapper.core.errors import ExtractionError, SourceConsumedError
from docmapper.core.models import ContentChunk, SourceDocument

logger = logging.getLogger(__name__)

SourceMode = Literal["lines", "blocks"]

# Media types read line by line.
LINE_MEDIA_TYPES: frozenset[str] = frozenset({
    "text/csv",
    "text/tab-separated-values",
    "application/x-ndjson",
    "application/jsonl",
    "text/markdown",
    "text/plain",
})


class ChunkSource:
    """Lazy, finite, non-restartable sequence of raw content chunks.

    Args:
        stream: Binary stream to read from.
        document: Identity of the source document.
        mode: "lines" or "blocks".
        batch_size_bytes: Max bytes per chunk.
        row_batch_size: Max lines per chunk in "lines" mode.
        max_memory_usage_bytes: Ceiling on buffered-but-unconsumed bytes.
        memory_pressure_bytes: Above this, transient buffers are reclaimed
            between batches.
        encoding: Text encoding of the stream.
    """

    def __init__(
        self,
        stream: BinaryIO,
        document: SourceDocument,
        mode: SourceMode = "blocks",
        batch_size_bytes: int = 64 * 1024,
        row_batch_size: int = 100,
        max_memory_usage_bytes: int = 50 * 1024 * 1024,
        memory_pressure_bytes: int | None = None,
        encoding: str = "utf-8",
    ) -> None:
        if batch_size_bytes >= max_memory_usage_bytes:
            raise ValueError("batch_size_bytes must be below max_memory_usage_bytes")
        self._stream = stream
        self.document = document
        self.mode = mode
        self.batch_size_bytes = batch_size_bytes
        self.row_batch_size = row_batch_size
        self.max_memory_usage_bytes = max_memory_usage_bytes
        self.memory_pressure_bytes = (
            memory_pressure_bytes
            if memory_pressure_bytes is not None
            else int(max_memory_usage_bytes * 0.8)
        )
        self.encoding = encoding

        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._lookahead = b""
        self._next_index = 0
        self._exhausted = False
        self._iterated = False
        self._buffered = 0
        self.peak_buffered_bytes = 0
        self.bytes_consumed = 0
        self.reclamations = 0

    @classmethod
    def open(
        cls,
        stream: BinaryIO | bytes | bytearray,
        declared_media_type: str,
        settings: Settings | None = None,
        name: str = "document",
        byte_length: int | None = None,
        mode: SourceMode | None = None,
    ) -> ChunkSource:
        """Open a chunk source over a stream and its declared media type."""
        settings = settings or Settings()
        if isinstance(stream, (bytes, bytearray)):
            byte_length = len(stream) if byte_length is None else byte_length
            stream = io.BytesIO(bytes(stream))
        media_type = declared_media_type.split(";")[0].strip().lower()
        if mode is None:
            mode = "lines" if media_type in LINE_MEDIA_TYPES else "blocks"
        document = SourceDocument(name=name, media_type=media_type, byte_length=byte_length)
        logger.debug(
            "Opened source %s (%s, mode=%s, batch=%dB, rows=%d)",
            name, media_type, mode, settings.batch_size_bytes, settings.row_batch_size,
        )
        return cls(
            stream,
            document,
            mode=mode,
            batch_size_bytes=settings.batch_size_bytes,
            row_batch_size=settings.row_batch_size,
            max_memory_usage_bytes=settings.max_memory_usage_bytes,
            memory_pressure_bytes=settings.memory_pressure_bytes,
            encoding=settings.text_encoding,
        )

    # --- Observability ---

    @property
    def buffered_bytes(self) -> int:
        """Bytes read from the stream but not yet handed to the consumer."""
        return self._buffered

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def progress_fraction(self) -> float | None:
        """Fraction of the declared byte length consumed, if known."""
        total = self.document.byte_length
        if not total:
            return None
        return min(1.0, self.bytes_consumed / total)

    # --- Pull interface ---

    def next(self) -> ContentChunk | None:
        """Return the next chunk, or None at end of stream."""
        if self._exhausted:
            return None
        if self.mode == "lines":
            chunk = self._next_lines()
        else:
            chunk = self._next_block()
        if chunk.is_last:
            self._exhausted = True
        self.bytes_consumed += chunk.byte_count
        self._hand_off()
        return chunk

    def __iter__(self) -> Iterator[ContentChunk]:
        if self._iterated:
            raise SourceConsumedError(
                f"Chunk source for {self.document.name!r} is not restartable"
            )
        self._iterated = True
        return self._iterate()

    def _iterate(self) -> Iterator[ContentChunk]:
        while True:
            chunk = self.next()
            if chunk is None:
                return
            yield chunk

    def read_all(self) -> bytes:
        """Read the remaining stream at once, bounded by the memory ceiling.

        Raises:
            ExtractionError: If the stream is larger than the ceiling or
                the read fails.
        """
        if self._iterated or self._next_index > 0:
            raise SourceConsumedError(
                f"Chunk source for {self.document.name!r} already partially consumed"
            )
        self._iterated = True
        parts: list[bytes] = []
        try:
            while True:
                block = self._stream.read(self.batch_size_bytes)
                if not block:
                    break
                self._account(len(block))
                parts.append(block)
        except (OSError, ValueError) as exc:
            raise ExtractionError(f"Stream read failed: {exc}", chunk_index=0) from exc
        finally:
            self._exhausted = True
        data = b"".join(parts)
        self.bytes_consumed += len(data)
        self._hand_off()
        return data

    # --- Internals ---

    def _account(self, n: int) -> None:
        """Track n more buffered bytes, enforcing the ceiling."""
        if self._buffered + n > self.max_memory_usage_bytes:
            raise ExtractionError(
                f"Buffered data would exceed memory ceiling of "
                f"{self.max_memory_usage_bytes} bytes",
                chunk_index=self._next_index,
            )
        self._buffered += n
        self.peak_buffered_bytes = max(self.peak_buffered_bytes, self._buffered)

    def _hand_off(self) -> None:
        """Release everything except the lookahead to the consumer."""
        pending = len(self._lookahead) + len(self._decoder.getstate()[0])
        handed = self._buffered - pending
        if handed >= self.memory_pressure_bytes:
            self.reclamations += 1
            gc.collect()
            logger.debug("Memory pressure after %d bytes; reclaimed transient buffers", handed)
        self._buffered = pending

    def _take_index(self) -> int:
        index = self._next_index
        self._next_index += 1
        return index

    def _at_eof(self) -> bool:
        """Peek one byte ahead to decide whether the stream is exhausted."""
        if self._lookahead:
            return False
        byte = self._stream.read(1)
        if not byte:
            return True
        self._account(1)
        self._lookahead = byte
        return False

    def _read(self, size: int) -> bytes:
        # The peeked byte stays in _lookahead until the read succeeds.
        head = self._lookahead
        data = self._stream.read(size - len(head)) if size > len(head) else b""
        self._lookahead = b""
        self._account(len(data))
        return head + data

    def _readline(self, limit: int) -> bytes:
        head = self._lookahead
        if head.endswith(b"\n"):
            self._lookahead = b""
            return head
        data = self._stream.readline(max(1, limit - len(head)))
        self._lookahead = b""
        self._account(len(data))
        return head + data

    def _next_block(self) -> ContentChunk:
        index = self._take_index()
        raw = b""
        try:
            raw = self._read(self.batch_size_bytes)
            is_last = self._at_eof()
        except ExtractionError as exc:
            return self._error_chunk(index, raw, str(exc))
        except (OSError, ValueError) as exc:
            return self._error_chunk(index, raw + self._lookahead, f"Stream read failed: {exc}")
        text = self._decoder.decode(raw, final=is_last)
        return ContentChunk(index=index, text=text, is_last=is_last, byte_count=len(raw))

    def _next_lines(self) -> ContentChunk:
        index = self._take_index()
        lines: list[bytes] = []
        size = 0
        try:
            while len(lines) < self.row_batch_size and size < self.batch_size_bytes:
                line = self._readline(self.max_memory_usage_bytes - self._buffered)
                if not line:
                    break
                if not line.endswith(b"\n") and not self._at_eof():
                    raise ExtractionError(
                        f"Line exceeds memory ceiling of {self.max_memory_usage_bytes} bytes",
                        chunk_index=index,
                    )
                lines.append(line)
                size += len(line)
            is_last = self._at_eof()
        except ExtractionError as exc:
            return self._error_chunk(index, b"".join(lines), str(exc))
        except (OSError, ValueError) as exc:
            return self._error_chunk(
                index, b"".join(lines) + self._lookahead, f"Stream read failed: {exc}",
            )
        text = "".join(line.decode(self.encoding, errors="replace") for line in lines)
        return ContentChunk(
            index=index,
            text=text,
            is_last=is_last,
            byte_count=size,
            metadata={"line_count": len(lines)},
        )

    def _error_chunk(self, index: int, raw: bytes, message: str) -> ContentChunk:
        """Terminal chunk carrying whatever was read before the failure."""
        logger.error("Source %s failed at chunk %d: %s", self.document.name, index, message)
        self._lookahead = b""
        # Flushes bytes of a character split by the previous block.
        text = self._decoder.decode(raw, final=True)
        return ContentChunk(
            index=index, text=text, is_last=True, error=message, byte_count=len(raw),
        )
