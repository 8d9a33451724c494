# src/api/facade.py — v2
"""Public API facade: single entry point for document mapping.

Usage:
    from docmapper.api.facade import map_document
    async for chunk in map_document(document, schema):
        ...

    result = await map_document_to_result(document, schema)
"""

from __future__ import annotations

import contextlib
import io
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from pathlib import Path
from typing import Any, BinaryIO

from docmapper.api.models import DocumentInput, MappingOptions
from docmapper.config.providers import load_provider_profiles
from docmapper.config.settings import Settings
from docmapper.core.models import (
    MappingChunk,
    MappingResult,
    SessionUsage,
    SourceDocument,
    TargetSchema,
)
from docmapper.extraction.chunk_source import ChunkSource
from docmapper.extraction.extractor_factory import create_extractor, media_type_for_extension
from docmapper.llm.client_factory import create_from_profile, default_profiles
from docmapper.llm.gateway import ProviderGateway
from docmapper.pipeline.cancellation import CancellationToken
from docmapper.pipeline.orchestrator import MappingOrchestrator
from docmapper.pipeline.progress import ProgressChannel
from docmapper.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)

SchemaInput = TargetSchema | Mapping[str, Any] | Sequence[Any]


async def map_document(
    document: DocumentInput,
    schema: SchemaInput,
    settings: Settings | None = None,
    options: MappingOptions | None = None,
    gateway: ProviderGateway | None = None,
    cancel_token: CancellationToken | None = None,
    progress: ProgressChannel | None = None,
) -> AsyncIterator[MappingChunk]:
    """Map a document onto a target schema, streaming MappingChunks.

    Args:
        document: Input document (content + filename + optional media type).
        schema: Target schema, its dict form, or a list of field names.
        settings: Global settings. Loaded from .env if None.
        options: Per-request overrides applied on top of settings.
        gateway: Provider gateway. Built from settings when smart mapping
            is enabled and none is given.
        cancel_token: Token the caller may cancel at any time.
        progress: Channel receiving progress events.

    Raises:
        UnsupportedFormatError: If no extractor handles the media type.
    """
    settings = _apply_overrides(settings or Settings(), options)
    media_type = resolve_media_type(document)
    extractor = create_extractor(media_type)

    if gateway is None and settings.smart_mapping_enabled:
        gateway = build_gateway(settings)

    with _open_stream(document.content) as (stream, byte_length):
        source = ChunkSource.open(
            stream,
            media_type,
            settings=settings,
            name=document.filename,
            byte_length=byte_length,
            mode=extractor.source_mode,
        )
        orchestrator = MappingOrchestrator(
            source,
            extractor,
            schema,
            settings=settings,
            gateway=gateway,
            cancel_token=cancel_token,
            progress=progress,
        )
        async for chunk in orchestrator.run():
            yield chunk


async def map_document_to_result(
    document: DocumentInput,
    schema: SchemaInput,
    settings: Settings | None = None,
    options: MappingOptions | None = None,
    gateway: ProviderGateway | None = None,
    cancel_token: CancellationToken | None = None,
    progress: ProgressChannel | None = None,
) -> MappingResult:
    """Run map_document() to completion and collect its chunks."""
    records: list[dict[str, Any]] = []
    texts: list[str] = []
    count = 0
    terminal: MappingChunk | None = None

    async for chunk in map_document(
        document, schema, settings, options, gateway, cancel_token, progress,
    ):
        count += 1
        records.extend(chunk.records)
        if chunk.text:
            texts.append(chunk.text)
        if chunk.is_last_chunk:
            terminal = chunk

    if terminal is None:  # pragma: no cover - the orchestrator always terminates
        raise RuntimeError("Mapping stream ended without a terminal chunk")

    return MappingResult(
        document=SourceDocument(
            name=document.filename,
            media_type=resolve_media_type(document),
        ),
        is_success=terminal.is_success,
        error_message=terminal.error_message,
        cancelled=terminal.cancelled,
        matches=terminal.matches,
        inferred_types=terminal.inferred_types,
        confidence=terminal.confidence,
        warnings=terminal.all_warnings,
        records=records,
        text="".join(texts),
        chunks_emitted=count,
        usage=terminal.usage or SessionUsage(),
    )


def resolve_media_type(document: DocumentInput) -> str:
    """Declared media type, else the one implied by the filename extension."""
    return document.media_type or media_type_for_extension(Path(document.filename).suffix)


def build_gateway(settings: Settings, call_logger: CallLogger | None = None) -> ProviderGateway:
    """Gateway with the profiles from the profiles file, else from credentials.

    Providers whose SDK is not installed are skipped with a warning.
    """
    gateway = ProviderGateway(settings, call_logger=call_logger)
    profiles = (
        load_provider_profiles(settings.provider_profiles_file)
        if settings.provider_profiles_file
        else default_profiles(settings)
    )
    for profile in profiles:
        try:
            client = create_from_profile(profile, settings)
        except ImportError as exc:
            logger.warning("Provider %s unavailable: %s", profile.name, exc)
            continue
        gateway.register(profile, client)
    return gateway


def _apply_overrides(settings: Settings, options: MappingOptions | None) -> Settings:
    """Apply per-request overrides if provided."""
    if options is None:
        return settings
    overrides = options.model_dump(exclude_none=True)
    if not overrides:
        return settings
    current = settings.model_dump()
    current.update(overrides)
    return Settings(**current)


@contextlib.contextmanager
def _open_stream(content: Any):
    """Yield (binary stream, byte length or None) for any accepted content."""
    if isinstance(content, Path):
        with content.open("rb") as f:
            yield f, content.stat().st_size
        return
    if isinstance(content, str):
        content = content.encode("utf-8")
    if isinstance(content, (bytes, bytearray)):
        yield io.BytesIO(bytes(content)), len(content)
        return
    if hasattr(content, "read"):
        stream: BinaryIO = content
        yield stream, None
        return
    raise ValueError(f"Unsupported content type: {type(content)}")
