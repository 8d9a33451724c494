# src/extraction/pdf_extractor.py — v2
"""PDF extractor using PyMuPDF (fitz).

One unit per page: page text plus rows from detected tables.
Requires the 'pymupdf' package.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from docmapper.extraction.base_extractor import WholeDocumentExtractor
from docmapper.extraction.table_extractor import table_to_records

logger = logging.getLogger(__name__)


class PdfExtractor(WholeDocumentExtractor):
    """Extractor for PDF files using PyMuPDF."""

    @property
    def supported_media_types(self) -> list[str]:
        return ["application/pdf"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".pdf"]

    def parse(self, data: bytes) -> Iterator[tuple[str, list[dict[str, Any]]]]:
        try:
            import fitz  # PyMuPDF
        except ImportError as e:
            raise ImportError(
                "pymupdf package required for PDF extraction: pip install pymupdf"
            ) from e

        doc = fitz.open(stream=data, filetype="pdf")
        try:
            for page_num in range(len(doc)):
                page = doc[page_num]
                text = page.get_text("text")
                rows: list[dict[str, Any]] = []
                try:
                    page_tables = page.find_tables()
                    for table in page_tables.tables if page_tables else []:
                        rows.extend(table_to_records(table.extract() or []))
                except AttributeError:
                    logger.debug("Table extraction not available for page %d", page_num + 1)
                yield text, rows
        finally:
            doc.close()
