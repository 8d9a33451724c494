# src/extraction/extractor_factory.py — v3
"""Factory: instantiate an extractor from a media type or file extension."""

from __future__ import annotations

import mimetypes

from docmapper.core.errors import UnsupportedFormatError
from docmapper.extraction.base_extractor import BaseExtractor
from docmapper.extraction.csv_extractor import CsvExtractor, TsvExtractor
from docmapper.extraction.docx_extractor import DocxExtractor
from docmapper.extraction.html_extractor import HtmlExtractor
from docmapper.extraction.json_extractor import JsonExtractor, JsonLinesExtractor
from docmapper.extraction.md_extractor import MdExtractor
from docmapper.extraction.pdf_extractor import PdfExtractor
from docmapper.extraction.txt_extractor import TxtExtractor

# Registries map media type / extension → extractor class.
_MEDIA_TYPE_REGISTRY: dict[str, type[BaseExtractor]] = {}
_EXTENSION_REGISTRY: dict[str, type[BaseExtractor]] = {}


def _register_defaults() -> None:
    """Register built-in extractors."""
    for cls in [TxtExtractor, MdExtractor, CsvExtractor, TsvExtractor, JsonExtractor,
                JsonLinesExtractor, HtmlExtractor, PdfExtractor, DocxExtractor]:
        register_extractor(cls)


def register_extractor(cls: type[BaseExtractor]) -> None:
    """Register an extractor for all media types and extensions it declares."""
    instance = cls()
    for media_type in instance.supported_media_types:
        _MEDIA_TYPE_REGISTRY[media_type.lower()] = cls
    for ext in instance.supported_extensions:
        _EXTENSION_REGISTRY[ext.lower()] = cls


def create_extractor(media_type: str) -> BaseExtractor:
    """Create an extractor for a declared media type.

    Args:
        media_type: Media type such as "text/csv" (parameters are ignored).

    Raises:
        UnsupportedFormatError: If no extractor is registered.
    """
    key = media_type.split(";")[0].strip().lower()
    cls = _MEDIA_TYPE_REGISTRY.get(key)
    if cls is None:
        raise UnsupportedFormatError(
            f"No extractor for media type {key!r}. "
            f"Supported: {', '.join(supported_media_types())}"
        )
    return cls()


def media_type_for_extension(extension: str) -> str:
    """Resolve the registered media type for a file extension.

    Raises:
        UnsupportedFormatError: If the extension is unknown.
    """
    ext = extension.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    cls = _EXTENSION_REGISTRY.get(ext)
    if cls is not None:
        return cls().supported_media_types[0]
    guessed, _ = mimetypes.guess_type(f"file{ext}")
    if guessed and guessed in _MEDIA_TYPE_REGISTRY:
        return guessed
    raise UnsupportedFormatError(
        f"No extractor for format {ext!r}. Supported: {', '.join(supported_extensions())}"
    )


def supported_media_types() -> list[str]:
    """Return list of supported media types."""
    return sorted(_MEDIA_TYPE_REGISTRY)


def supported_extensions() -> list[str]:
    """Return list of supported file extensions."""
    return sorted(_EXTENSION_REGISTRY)


_register_defaults()
