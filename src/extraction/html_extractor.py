# src/extraction/html_extractor.py — v1
"""HTML extractor using BeautifulSoup.

Body text becomes text spans; each <table> becomes rows keyed by its
header row. Requires the 'beautifulsoup4' package.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from docmapper.extraction.base_extractor import WholeDocumentExtractor
from docmapper.extraction.table_extractor import table_to_records

logger = logging.getLogger(__name__)


class HtmlExtractor(WholeDocumentExtractor):
    """Extractor for HTML documents (.html, .htm)."""

    @property
    def supported_media_types(self) -> list[str]:
        return ["text/html", "application/xhtml+xml"]

    @property
    def supported_extensions(self) -> list[str]:
        return [".html", ".htm", ".xhtml"]

    def parse(self, data: bytes) -> Iterator[tuple[str, list[dict[str, Any]]]]:
        try:
            from bs4 import BeautifulSoup
        except ImportError as e:
            raise ImportError(
                "beautifulsoup4 required for HTML extraction: pip install beautifulsoup4"
            ) from e

        soup = BeautifulSoup(data.decode("utf-8", errors="replace"), "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()

        rows: list[dict[str, Any]] = []
        for table in soup.find_all("table"):
            raw_rows = [
                [cell.get_text(" ", strip=True) for cell in tr.find_all(["th", "td"])]
                for tr in table.find_all("tr")
            ]
            rows.extend(table_to_records([r for r in raw_rows if r]))
            table.decompose()

        text = soup.get_text(separator="\n", strip=True)
        logger.debug("HTML parsed: %d chars of text, %d table rows", len(text), len(rows))
        yield text, rows
