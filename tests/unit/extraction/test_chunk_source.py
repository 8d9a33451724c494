# tests/unit/extraction/test_chunk_source.py — v1
"""Tests for extraction/chunk_source.py — bounded pull-based reader."""

from __future__ import annotations

import io

import pytest

from docmapper.core.errors import ExtractionError, SourceConsumedError
from docmapper.core.models import SourceDocument
from docmapper.extraction.chunk_source import ChunkSource


def _source(data: bytes, mode: str = "lines", **kwargs) -> ChunkSource:
    params = {"batch_size_bytes": 64, "row_batch_size": 2, "max_memory_usage_bytes": 1024}
    params.update(kwargs)
    return ChunkSource(
        io.BytesIO(data), SourceDocument(name="t", media_type="text/plain"), mode=mode, **params,
    )


class _BrokenStream(io.RawIOBase):
    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        raise OSError("disk gone")

    def readline(self, size: int = -1) -> bytes:
        raise OSError("disk gone")


class _ScriptedStream(io.RawIOBase):
    """Returns scripted reads in order; exception items are raised."""

    def __init__(self, script: list) -> None:
        self._script = list(script)

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    readline = read


class TestLinesMode:
    def test_row_batches(self):
        chunks = list(_source(b"a\nb\nc\n"))
        assert [c.text for c in chunks] == ["a\nb\n", "c\n"]
        assert [c.index for c in chunks] == [0, 1]
        assert [c.is_last for c in chunks] == [False, True]
        assert chunks[0].metadata["line_count"] == 2

    def test_missing_trailing_newline(self):
        chunks = list(_source(b"a\nb"))
        assert "".join(c.text for c in chunks) == "a\nb"
        assert chunks[-1].is_last

    def test_batch_bytes_bound(self):
        chunks = list(_source(b"aaaa\nbbbb\ncccc\n", row_batch_size=100, batch_size_bytes=5))
        assert [c.text for c in chunks] == ["aaaa\n", "bbbb\n", "cccc\n"]

    def test_line_over_ceiling_is_fatal(self):
        chunks = list(_source(b"x" * 40 + b"\n", batch_size_bytes=8, max_memory_usage_bytes=16))
        assert len(chunks) == 1
        assert chunks[0].is_fatal
        assert "memory ceiling" in chunks[0].error


class TestBlocksMode:
    def test_multibyte_never_split(self):
        data = "héllo wörld".encode("utf-8")
        chunks = list(_source(data, mode="blocks", batch_size_bytes=2))
        assert "".join(c.text for c in chunks) == "héllo wörld"
        assert all("�" not in c.text for c in chunks)
        assert sum(c.byte_count for c in chunks) == len(data)
        assert [c.is_last for c in chunks].count(True) == 1

    def test_empty_stream(self):
        chunks = list(_source(b"", mode="blocks"))
        assert len(chunks) == 1
        assert chunks[0].is_last
        assert chunks[0].text == ""


class TestPullInterface:
    def test_next_after_end(self):
        source = _source(b"a\n")
        assert source.next() is not None
        assert source.next() is None
        assert source.exhausted

    def test_not_restartable(self):
        source = _source(b"a\n")
        list(source)
        with pytest.raises(SourceConsumedError):
            iter(source)

    def test_buffer_bounded(self):
        data = b"".join(f"{i},value-{i}\n".encode() for i in range(500))
        source = _source(data, batch_size_bytes=128, max_memory_usage_bytes=512)
        total = sum(c.byte_count for c in source)
        assert total == len(data)
        assert source.peak_buffered_bytes <= 512
        assert source.buffered_bytes <= 1

    def test_progress_fraction(self, settings):
        source = ChunkSource.open(b"a\nb\nc\nd\n", "text/plain", settings=settings, name="p.txt")
        assert source.progress_fraction == 0.0
        list(source)
        assert source.progress_fraction == 1.0

    def test_stream_failure_is_terminal_error_chunk(self):
        source = ChunkSource(
            _BrokenStream(), SourceDocument(name="b", media_type="text/csv"), mode="lines",
            batch_size_bytes=8, max_memory_usage_bytes=64,
        )
        chunks = list(source)
        assert len(chunks) == 1
        assert chunks[0].is_fatal
        assert "disk gone" in chunks[0].error

    def test_peeked_byte_kept_on_block_read_failure(self):
        source = ChunkSource(
            _ScriptedStream([b"abcd", b"X", OSError("disk gone")]),
            SourceDocument(name="b", media_type="application/octet-stream"), mode="blocks",
            batch_size_bytes=4, max_memory_usage_bytes=64,
        )
        chunks = list(source)
        assert len(chunks) == 2
        assert chunks[-1].is_fatal
        assert "".join(c.text for c in chunks) == "abcdX"

    def test_peeked_byte_kept_on_line_read_failure(self):
        source = ChunkSource(
            _ScriptedStream([b"a\n", b"b\n", b"c", OSError("disk gone")]),
            SourceDocument(name="b", media_type="text/plain"), mode="lines",
            batch_size_bytes=16, row_batch_size=2, max_memory_usage_bytes=64,
        )
        chunks = list(source)
        assert [c.text for c in chunks] == ["a\nb\n", "c"]
        assert chunks[-1].is_fatal

    def test_batch_must_be_below_ceiling(self):
        with pytest.raises(ValueError):
            _source(b"", batch_size_bytes=1024, max_memory_usage_bytes=1024)


class TestOpen:
    def test_media_type_and_mode(self, settings):
        source = ChunkSource.open(b"a,b\n", "Text/CSV; charset=utf-8", settings=settings)
        assert source.document.media_type == "text/csv"
        assert source.document.byte_length == 4
        assert source.mode == "lines"

    def test_blocks_for_binary_types(self, settings):
        assert ChunkSource.open(b"{}", "application/json", settings=settings).mode == "blocks"


class TestReadAll:
    def test_reads_everything(self):
        source = _source(b"abc" * 10, mode="blocks", batch_size_bytes=4)
        assert source.read_all() == b"abc" * 10
        assert source.exhausted

    def test_over_ceiling(self):
        source = _source(b"x" * 100, mode="blocks", batch_size_bytes=8, max_memory_usage_bytes=32)
        with pytest.raises(ExtractionError, match="memory ceiling"):
            source.read_all()

    def test_after_partial_consumption(self):
        source = _source(b"a\nb\nc\n")
        source.next()
        with pytest.raises(SourceConsumedError):
            source.read_all()
