# src/extraction/docx_extractor.py — v2
"""DOCX extractor using python-docx.

Paragraph text (headings as Markdown markers) plus rows from every table.
Requires the 'python-docx' package.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import Any

from docmapper.extraction.base_extractor import WholeDocumentExtractor
from docmapper.extraction.table_extractor import table_to_records

logger = logging.getLogger(__name__)


class DocxExtractor(WholeDocumentExtractor):
    """Extractor for Word documents (.docx)."""

    @property
    def supported_media_types(self) -> list[str]:
        return ["application/vnd.openxmlformats-officedocument.wordprocessingml.document"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".docx"]

    def parse(self, data: bytes) -> Iterator[tuple[str, list[dict[str, Any]]]]:
        try:
            import docx
        except ImportError as e:
            raise ImportError(
                "python-docx package required for DOCX extraction: "
                "pip install python-docx"
            ) from e

        doc = docx.Document(io.BytesIO(data))

        text_parts: list[str] = []
        for para in doc.paragraphs:
            if not para.text.strip():
                continue
            style_name = (para.style.name or "").lower() if para.style is not None else ""
            if "heading" in style_name:
                try:
                    level = int(style_name.replace("heading", "").strip())
                except ValueError:
                    level = 1
                text_parts.append(f"{'#' * level} {para.text}")
            else:
                text_parts.append(para.text)

        rows: list[dict[str, Any]] = []
        for table in doc.tables:
            cells = [[cell.text.strip() for cell in row.cells] for row in table.rows]
            rows.extend(table_to_records(cells))

        logger.debug("DOCX parsed: %d paragraphs, %d table rows", len(text_parts), len(rows))
        yield "\n\n".join(text_parts), rows
