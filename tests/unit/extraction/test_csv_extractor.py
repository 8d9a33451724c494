# tests/unit/extraction/test_csv_extractor.py — v1
"""Tests for extraction/csv_extractor.py — row batches from delimited text."""

from __future__ import annotations

from docmapper.extraction.chunk_source import ChunkSource
from docmapper.extraction.csv_extractor import CsvExtractor, TsvExtractor


class TestCsvExtractor:
    def test_row_batches(self, make_csv_source, employee_csv):
        source, extractor = make_csv_source(employee_csv)
        chunks = list(extractor.extract(source))
        assert [len(c.rows) for c in chunks] == [1, 2, 1]
        assert [c.index for c in chunks] == [0, 1, 2]
        assert [c.is_last for c in chunks] == [False, False, True]
        assert chunks[0].rows[0] == {
            "emp_id": "1", "full_name": "Ada Lovelace", "age": "36", "hired_on": "2024-01-15",
        }
        assert chunks[1].fields["age"] == ["41", "n/a"]

    def test_header_only(self, make_csv_source):
        source, extractor = make_csv_source(b"a,b\n")
        chunks = list(extractor.extract(source))
        assert len(chunks) == 1
        assert chunks[0].rows == []
        assert list(chunks[0].fields) == ["a", "b"]
        assert chunks[0].is_last

    def test_quoted_newline_across_batches(self, make_csv_source):
        source, extractor = make_csv_source(b'a,b\n1,"x\ny"\n2,z\n')
        chunks = list(extractor.extract(source))
        rows = [row for c in chunks for row in c.rows]
        assert rows == [{"a": "1", "b": "x\ny"}, {"a": "2", "b": "z"}]
        assert chunks[-1].is_last

    def test_inch_mark_does_not_stall_batching(self, make_csv_source):
        body = "item,size\n" + "".join(
            f'pipe{i},12" pipe\n' if i == 1 else f"pipe{i},{i}cm\n" for i in range(8)
        )
        source, extractor = make_csv_source(body.encode())
        chunks = list(extractor.extract(source))
        assert len(chunks) >= 4
        assert [c.is_last for c in chunks].count(True) == 1
        assert not any(c.error for c in chunks)
        rows = [row for c in chunks for row in c.rows]
        assert len(rows) == 8
        assert rows[1] == {"item": "pipe1", "size": '12" pipe'}

    def test_escaped_quotes_in_multiline_field(self, make_csv_source):
        source, extractor = make_csv_source(b'a,b\n1,"say ""hi""\nthere"\n2,z\n')
        rows = [row for c in extractor.extract(source) for row in c.rows]
        assert rows == [{"a": "1", "b": 'say "hi"\nthere'}, {"a": "2", "b": "z"}]

    def test_blank_and_duplicate_headers(self, make_csv_source):
        source, extractor = make_csv_source(b"name,,name\nA,B,C\n")
        rows = [row for c in extractor.extract(source) for row in c.rows]
        assert rows == [{"name": "A", "column_2": "B", "name_2": "C"}]

    def test_short_and_long_rows(self, make_csv_source):
        source, extractor = make_csv_source(b"a,b\n1\n1,2,3\n")
        rows = [row for c in extractor.extract(source) for row in c.rows]
        assert rows == [{"a": "1", "b": None}, {"a": "1", "b": "2", "column_3": "3"}]

    def test_source_error_carried(self, make_csv_source):
        source, extractor = make_csv_source(b"a\n" + b"x" * 100)
        source.max_memory_usage_bytes = 80
        chunks = list(extractor.extract(source))
        assert chunks[-1].is_fatal

    def test_lines_mode(self):
        assert CsvExtractor().source_mode == "lines"


class TestTsvExtractor:
    def test_tab_delimited(self, fast_settings):
        extractor = TsvExtractor()
        source = ChunkSource.open(
            b"id\tname\n1\tAda\n", "text/tab-separated-values",
            settings=fast_settings, mode=extractor.source_mode,
        )
        rows = [row for c in extractor.extract(source) for row in c.rows]
        assert rows == [{"id": "1", "name": "Ada"}]
        assert extractor.supported_extensions == [".tsv", ".tab"]
