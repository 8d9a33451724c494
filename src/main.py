# src/main.py — v2
"""CLI entry point: map, infer, match commands.

Usage:
    docmapper map <file> --schema schema.json [--smart] [--threshold N] [--jsonl]
    docmapper infer <file>
    docmapper match --source a,b --target X,Y [--threshold N]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from docmapper.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="docmapper",
        description=f"docmapper v{__version__} — Streaming document-to-schema mapper",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- map ---
    p_map = subparsers.add_parser(
        "map", help="Map a document onto a target schema",
    )
    p_map.add_argument("file", type=Path, help="Path to document")
    p_map.add_argument(
        "-s", "--schema", type=Path, required=True,
        help="JSON file with the target schema (object with 'fields' or list of names)",
    )
    p_map.add_argument(
        "--smart", action="store_true",
        help="Enable AI escalation for low-confidence fields",
    )
    p_map.add_argument(
        "--threshold", type=int, default=None,
        help="Fuzzy match threshold, 0-100 (default: from settings)",
    )
    p_map.add_argument(
        "--media-type", default=None,
        help="Declared media type (default: derived from extension)",
    )
    p_map.add_argument(
        "--jsonl", action="store_true",
        help="Print every MappingChunk as a JSON line instead of a summary",
    )
    p_map.set_defaults(func=_cmd_map)

    # --- infer ---
    p_infer = subparsers.add_parser(
        "infer", help="Print the inferred type of every source field",
    )
    p_infer.add_argument("file", type=Path, help="Path to document")
    p_infer.add_argument(
        "--media-type", default=None,
        help="Declared media type (default: derived from extension)",
    )
    p_infer.set_defaults(func=_cmd_infer)

    # --- match ---
    p_match = subparsers.add_parser(
        "match", help="Match field names without a document",
    )
    p_match.add_argument("--source", required=True, help="Comma-separated source fields")
    p_match.add_argument("--target", required=True, help="Comma-separated target fields")
    p_match.add_argument("--threshold", type=int, default=80, help="0-100 (default: 80)")
    p_match.set_defaults(func=_cmd_match)

    return parser


async def _cmd_map(args: argparse.Namespace) -> int:
    """Execute single-document mapping."""
    from docmapper.api.facade import map_document
    from docmapper.api.models import DocumentInput, MappingOptions

    file_path: Path = args.file
    if not file_path.exists():
        logger.error("File not found: %s", file_path)
        return 1
    schema = _load_schema(args.schema)

    options = MappingOptions(
        fuzzy_match_threshold=args.threshold,
        smart_mapping_enabled=True if args.smart else None,
    )
    document = DocumentInput.from_path(file_path, media_type=args.media_type)

    logger.info("Mapping %s", file_path.name)
    terminal = None
    records = 0
    async for chunk in map_document(document, schema, options=options):
        records += len(chunk.records)
        if args.jsonl:
            print(chunk.model_dump_json())
        if chunk.is_last_chunk:
            terminal = chunk

    if terminal is None:
        return 1
    if not args.jsonl:
        _print_summary(terminal, records)
    return 0 if terminal.is_success else 2


async def _cmd_infer(args: argparse.Namespace) -> int:
    """Infer and print source field types."""
    from docmapper.api.facade import resolve_media_type
    from docmapper.api.models import DocumentInput
    from docmapper.config.settings import Settings
    from docmapper.extraction.chunk_source import ChunkSource
    from docmapper.extraction.extractor_factory import create_extractor
    from docmapper.mapping.type_inferencer import TypeInferencer

    file_path: Path = args.file
    if not file_path.exists():
        logger.error("File not found: %s", file_path)
        return 1

    settings = Settings()
    document = DocumentInput.from_path(file_path, media_type=args.media_type)
    media_type = resolve_media_type(document)
    extractor = create_extractor(media_type)
    samples: dict[str, list[Any]] = {}

    with file_path.open("rb") as stream:
        source = ChunkSource.open(
            stream, media_type, settings=settings, name=file_path.name,
            byte_length=file_path.stat().st_size, mode=extractor.source_mode,
        )
        for chunk in extractor.extract(source):
            if chunk.is_fatal:
                logger.error("Extraction failed: %s", chunk.error)
                return 1
            for name, values in chunk.fields.items():
                bucket = samples.setdefault(name, [])
                bucket.extend(values[: settings.sample_size - len(bucket)])
            if samples and all(len(v) >= settings.sample_size for v in samples.values()):
                break

    inferred, _ = TypeInferencer(settings.sample_size).infer_all(samples)
    print(f"\nInferred types for {file_path.name}:")
    for name, inference in inferred.items():
        print(
            f"  {name:<30} {inference.inferred_type:<9} "
            f"confidence={inference.confidence:.2f} "
            f"({inference.matching_count}/{inference.non_empty_count} non-empty)"
        )
    return 0


async def _cmd_match(args: argparse.Namespace) -> int:
    """Match comma-separated field names and print the assignment."""
    from docmapper.core.models import TargetSchema
    from docmapper.mapping.similarity_matcher import SimilarityMatcher

    sources = _split(args.source)
    targets = _split(args.target)
    if not sources or not targets:
        logger.error("Both --source and --target need at least one field")
        return 1

    outcome = SimilarityMatcher(args.threshold).match(sources, TargetSchema.from_names(targets))
    print("\nMatches:")
    for m in outcome.matches:
        print(f"  {m.source_field:<24} → {m.target_field:<24} {m.score:.3f} ({m.match_kind}/{m.algorithm})")
    for w in outcome.warnings:
        print(f"  ! {w.message}")
    return 0


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _load_schema(path: Path) -> Any:
    """Read a schema JSON file (dict with 'fields', or a list)."""
    with path.open(encoding="utf-8") as f:
        return json.load(f)


def _print_summary(chunk: Any, records: int) -> None:
    """Print a human-readable summary of the terminal MappingChunk."""
    status = "complete" if chunk.is_success else ("cancelled" if chunk.cancelled else "failed")
    print(f"\nMapping {status}:")
    print(f"  Records:     {records}")
    print(f"  Confidence:  {chunk.confidence.aggregate:.2f} ({chunk.confidence.level})")
    for m in chunk.matches:
        print(f"  {m.source_field:<24} → {m.target_field:<24} {m.score:.2f} {m.match_kind}")
    if chunk.all_warnings:
        print(f"  Warnings:    {len(chunk.all_warnings)}")
        for w in chunk.all_warnings[:20]:
            print(f"    [{w.kind}] {w.message}")
    if chunk.usage and chunk.usage.calls:
        print(f"  AI calls:    {chunk.usage.calls} (${chunk.usage.cost_usd:.4f})")
    if chunk.error_message:
        print(f"  Error:       {chunk.error_message}")


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from docmapper.config.settings import Settings
    from docmapper.logging.logger import setup_logging

    settings = Settings()
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format="text",
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
