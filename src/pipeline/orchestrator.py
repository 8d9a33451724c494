# src/pipeline/orchestrator.py — v3
"""Mapping orchestrator: drives one session from byte stream to MappingChunks.

Stages per batch:
  extracting     pull the next ContentChunk from the extractor
  matching       sample values, infer types, match new source fields
  ai_escalating  optional provider call for low-confidence fields
  emitting       re-key and coerce rows, yield a MappingChunk

The stream ends with exactly one chunk flagged is_last_chunk, either
completed or failed. Errors never escape run(): a SessionFatalError (or
any unexpected exception) becomes the failed terminal chunk, while
batch-local problems are recorded as warnings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from docmapper.config.settings import Settings
from docmapper.core.errors import (
    CostCeilingExceeded,
    SchemaValidationError,
    SessionCancelled,
    SessionFatalError,
    SessionTimeout,
    StreamReadError,
)
from docmapper.core.models import (
    ContentChunk,
    MappingChunk,
    MappingWarning,
    PipelineStage,
    ProgressEvent,
    PropertyMatch,
    TargetField,
    TargetSchema,
)
from docmapper.extraction.base_extractor import BaseExtractor
from docmapper.extraction.chunk_source import ChunkSource
from docmapper.llm.gateway import ProviderGateway
from docmapper.llm.prompts import EscalationCandidate, MappingRequest
from docmapper.logging.context import set_session_context, set_stage_context
from docmapper.mapping.record_mapper import map_rows
from docmapper.mapping.similarity_matcher import SimilarityMatcher
from docmapper.mapping.type_inferencer import TypeInferencer
from docmapper.pipeline.cancellation import CancellationToken
from docmapper.pipeline.progress import ProgressChannel
from docmapper.pipeline.state import MappingSession

logger = logging.getLogger(__name__)

_PROTECTED_KINDS = frozenset({"exact", "normalized"})


def parse_target_schema(schema: TargetSchema | Mapping[str, Any] | Sequence[Any]) -> TargetSchema:
    """Accept a TargetSchema, its dict form, or a list of names / field dicts.

    Raises:
        SchemaValidationError: If the schema is empty or malformed.
    """
    if isinstance(schema, TargetSchema):
        return schema
    try:
        if isinstance(schema, Mapping):
            return TargetSchema.model_validate(schema)
        fields = [
            TargetField(name=f) if isinstance(f, str) else TargetField.model_validate(f)
            for f in schema
        ]
        return TargetSchema(fields=tuple(fields))
    except (ValidationError, TypeError) as exc:
        raise SchemaValidationError(f"Malformed target schema: {exc}") from exc


class MappingOrchestrator:
    """Run one mapping session and stream its MappingChunks.

    Args:
        source: Opened chunk source of the document.
        extractor: Extractor matching the document's media type.
        schema: Target schema (or a form parse_target_schema accepts).
        settings: Thresholds, limits and timeouts.
        gateway: Provider gateway for AI escalation; optional.
        cancel_token: Cooperative cancellation shared with the caller.
        progress: Channel receiving a ProgressEvent per batch.
        smart_mapping: Overrides settings.smart_mapping_enabled.
    """

    def __init__(
        self,
        source: ChunkSource,
        extractor: BaseExtractor,
        schema: TargetSchema | Mapping[str, Any] | Sequence[Any],
        settings: Settings | None = None,
        gateway: ProviderGateway | None = None,
        cancel_token: CancellationToken | None = None,
        progress: ProgressChannel | None = None,
        smart_mapping: bool | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._source = source
        self._extractor = extractor
        self._raw_schema = schema
        self._gateway = gateway
        self.cancel_token = cancel_token if cancel_token is not None else CancellationToken()
        self.progress = (
            progress if progress is not None
            else ProgressChannel(self._settings.progress_queue_size)
        )
        self._smart = (
            self._settings.smart_mapping_enabled if smart_mapping is None else smart_mapping
        )
        self._matcher = SimilarityMatcher(self._settings.fuzzy_match_threshold)
        self._inferencer = TypeInferencer(self._settings.sample_size)
        self._session: MappingSession | None = None
        self._started = False

    @property
    def session(self) -> MappingSession | None:
        return self._session

    @property
    def stage(self) -> PipelineStage:
        return self._session.stage if self._session else "idle"

    async def run(self) -> AsyncIterator[MappingChunk]:
        """Yield MappingChunks until exactly one terminal chunk was emitted.

        Raises:
            RuntimeError: If run() is called twice.
        """
        if self._started:
            raise RuntimeError("MappingOrchestrator.run() may only be called once")
        self._started = True

        session = MappingSession(document=self._source.document)
        self._session = session
        set_session_context(session.session_id, session.document.name)
        iterator: Iterator[ContentChunk] | None = None
        pull_pending = False

        try:
            session.target_schema = parse_target_schema(self._raw_schema)
            logger.info(
                "Mapping session started: %s → %s (%d target fields)",
                session.document.name, session.target_schema.name,
                len(session.target_schema.fields),
            )
            iterator = iter(self._extractor.extract(self._source))

            while True:
                self._transition("extracting")
                self._check()
                pull_pending = True
                content = await self._pull(iterator)
                pull_pending = False

                if content is None:
                    break
                if content.is_fatal:
                    error = StreamReadError(
                        f"Source failed at chunk {content.index}: {content.error}"
                    )
                    yield self._fail(error, text=content.text)
                    return

                chunk = await self._process(content)
                if content.is_last:
                    yield self._finalize(chunk)
                    return
                session.chunks_emitted += 1
                yield chunk

            yield self._finalize(self._empty_chunk())

        except SessionFatalError as exc:
            yield self._fail(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure in mapping session")
            yield self._fail(exc)
        finally:
            if iterator is not None and not pull_pending:
                close = getattr(iterator, "close", None)
                if close is not None:
                    close()

    # --- Stage helpers ---

    def _transition(self, stage: PipelineStage, batch_index: int | None = None) -> None:
        session = self._session
        assert session is not None
        if session.stage != stage:
            logger.debug("Stage %s → %s", session.stage, stage)
        session.stage = stage
        set_stage_context(stage, batch_index)

    def _check(self) -> None:
        """Raise on cancellation or session timeout."""
        self.cancel_token.raise_if_cancelled()
        if self._session is not None and self._session.elapsed_seconds > self._settings.session_timeout_seconds:
            raise SessionTimeout(self._settings.session_timeout_seconds)

    def _remaining(self) -> float:
        assert self._session is not None
        return max(0.0, self._settings.session_timeout_seconds - self._session.elapsed_seconds)

    async def _pull(self, iterator: Iterator[ContentChunk]) -> ContentChunk | None:
        """Pull one chunk off the (blocking) extractor in a worker thread."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(next, iterator, None), timeout=self._remaining(),
            )
        except asyncio.TimeoutError as exc:
            raise SessionTimeout(self._settings.session_timeout_seconds) from exc

    # --- Batch processing ---

    async def _process(self, content: ContentChunk) -> MappingChunk:
        session = self._session
        assert session is not None
        batch = content.index
        delta: list[MappingWarning] = []

        if content.error:
            logger.warning("Recoverable extraction error in batch %d: %s", batch, content.error)
            delta.append(MappingWarning(
                message=content.error, kind="extraction", batch_index=batch,
            ))

        self._transition("matching", batch)
        new_sources = session.add_sources(list(content.fields))
        grown = session.add_samples(content.fields, self._settings.sample_size)
        if grown:
            inferred, warnings = self._inferencer.infer_all(
                {name: session.samples[name] for name in grown}, batch_index=batch,
            )
            session.inferred_types.update(inferred)
            delta.extend(warnings)

        if new_sources:
            outcome = self._matcher.match_incremental(
                new_sources, session.free_targets(), batch_index=batch,
            )
            for match in outcome.matches:
                session.commit(match)
            session.best_rejected.update(outcome.best_rejected)
            for target, score in outcome.best_scores.items():
                session.best_target_scores[target] = max(
                    score, session.best_target_scores.get(target, 0.0),
                )
            logger.debug(
                "Batch %d: %d new fields, %d committed", batch, len(new_sources), len(outcome.matches),
            )

        if self._smart and self._gateway is not None and self._gateway.has_providers:
            delta.extend(await self._escalate(batch))

        self._transition("emitting", batch)
        records, warnings = map_rows(content.rows, session.matches, session.target_schema, batch)
        delta.extend(warnings)
        session.add_warnings(delta)
        session.batches_processed += 1
        self._publish_progress()

        return MappingChunk(
            index=session.chunks_emitted,
            source_index=batch,
            records=records,
            text=content.text,
            matches=session.committed_matches(),
            inferred_types=dict(session.inferred_types),
            confidence=session.confidence(),
            warnings=delta,
        )

    def _escalation_candidates(self) -> list[EscalationCandidate]:
        session = self._session
        assert session is not None
        threshold = self._settings.escalation_threshold
        candidates: list[EscalationCandidate] = []
        free = session.free_targets()
        for source in session.source_fields:
            if source in session.escalated:
                continue
            match = session.matches.get(source)
            if match is not None:
                if match.match_kind == "fuzzy" and match.score < threshold:
                    candidates.append(EscalationCandidate(
                        source_field=source,
                        samples=session.samples.get(source, []),
                        current_target=match.target_field,
                        current_score=match.score,
                    ))
            elif free:
                candidates.append(EscalationCandidate(
                    source_field=source, samples=session.samples.get(source, []),
                ))
        return candidates

    async def _escalate(self, batch: int) -> list[MappingWarning]:
        session = self._session
        assert session is not None and self._gateway is not None
        candidates = self._escalation_candidates()
        if not candidates:
            return []

        self._transition("ai_escalating", batch)
        self._check()
        session.escalated.update(c.source_field for c in candidates)
        targets = session.free_targets() + [
            c.current_target for c in candidates if c.current_target is not None
        ]
        request = MappingRequest(
            candidates=candidates,
            available_targets=[t for t in session.target_schema.field_names if t in set(targets)],
            batch_index=batch,
        )
        logger.info("Escalating %d fields of batch %d", len(candidates), batch)

        try:
            suggestion = await asyncio.wait_for(
                self._gateway.map(
                    request, session.target_schema,
                    session_usage=session.usage,
                    cancel_token=self.cancel_token,
                    session_id=session.session_id,
                ),
                timeout=self._remaining(),
            )
        except asyncio.TimeoutError as exc:
            raise SessionTimeout(self._settings.session_timeout_seconds) from exc

        warnings: list[MappingWarning] = []
        if not suggestion.is_success:
            kind = "cost_ceiling" if isinstance(suggestion.error, CostCeilingExceeded) else "provider"
            logger.warning("AI escalation degraded for batch %d: %s", batch, suggestion.error_message)
            warnings.append(MappingWarning(
                message=f"AI escalation skipped: {suggestion.error_message}",
                kind=kind, batch_index=batch,
            ))
            return warnings

        for note in suggestion.warnings:
            warnings.append(MappingWarning(message=note, kind="ai_rejected", batch_index=batch))
        # A re-assignment can free a target another suggestion wants. Retry
        # deferred suggestions until a pass commits nothing.
        pending = sorted(suggestion.matches, key=lambda m: (-m.score, m.source_field, m.target_field))
        while pending:
            deferred = []
            for match in pending:
                if self._reject_reason(match) is not None:
                    deferred.append(match)
                    continue
                session.commit(match)
                logger.debug("AI committed %s → %s (%.2f)", match.source_field, match.target_field, match.score)
            if len(deferred) == len(pending):
                break
            pending = deferred

        for match in pending:
            warnings.append(MappingWarning(
                field=match.source_field,
                message=(
                    f"AI suggestion {match.source_field} → {match.target_field} "
                    f"rejected: {self._reject_reason(match)}"
                ),
                kind="ai_rejected",
                confidence=match.score,
                batch_index=batch,
            ))
        return warnings

    def _reject_reason(self, match: PropertyMatch) -> str | None:
        """Why an AI match may not be committed, or None if it may."""
        session = self._session
        assert session is not None
        if match.score < self._settings.ai_min_confidence:
            return f"confidence {match.score:.2f} below {self._settings.ai_min_confidence:.2f}"
        current = session.matches.get(match.source_field)
        if current is not None:
            if current.match_kind in _PROTECTED_KINDS:
                return f"field already has an {current.match_kind} match"
            if current.score >= self._settings.escalation_threshold:
                return "current match is above the escalation threshold"
            if match.score <= current.score:
                return f"score does not beat current {current.score:.2f}"
        owner = session.owner_of(match.target_field)
        if owner is not None and owner != match.source_field:
            return f"target already mapped from {owner}"
        return None

    # --- Terminal chunks ---

    def _empty_chunk(self) -> MappingChunk:
        session = self._session
        assert session is not None
        return MappingChunk(
            index=session.chunks_emitted,
            matches=session.committed_matches(),
            inferred_types=dict(session.inferred_types),
            confidence=session.confidence(),
        )

    def _final_warnings(self) -> list[MappingWarning]:
        """One warning per target left unmapped and per source left unmatched."""
        session = self._session
        assert session is not None
        warnings = [
            self._matcher.unmapped_warning(target, session.best_target_scores.get(target, 0.0), None)
            for target in session.free_targets()
        ]
        for source in session.unmatched_sources():
            best = session.best_rejected.get(source)
            detail = f" (best: {best.target_field} at {best.score:.2f})" if best else ""
            warnings.append(MappingWarning(
                field=source,
                message=f"Source field '{source}' was not mapped{detail}",
                kind="unmatched_source",
                confidence=best.score if best else None,
            ))
        return warnings

    def _finalize(self, chunk: MappingChunk) -> MappingChunk:
        session = self._session
        assert session is not None
        final = self._final_warnings()
        session.add_warnings(final)
        self._transition("completed")
        self._publish_progress(done=True)
        session.chunks_emitted += 1
        logger.info(
            "Mapping session completed: %d chunks, %d matches, confidence %.2f (%s), %d warnings",
            session.chunks_emitted, len(session.matches),
            chunk.confidence.aggregate, chunk.confidence.level, len(session.warnings),
        )
        return chunk.model_copy(update={
            "warnings": chunk.warnings + final,
            "confidence": session.confidence(),
            "is_last_chunk": True,
            "stage": "completed",
            "all_warnings": list(session.warnings),
            "usage": session.usage.model_copy(),
        })

    def _fail(self, exc: BaseException, text: str | None = None) -> MappingChunk:
        session = self._session
        assert session is not None
        cancelled = isinstance(exc, SessionCancelled)
        message = str(exc) or type(exc).__name__
        if cancelled:
            logger.info("Mapping session cancelled: %s", message)
        else:
            logger.error("Mapping session failed: %s", message)
        self._transition("failed")
        self._publish_progress()
        session.chunks_emitted += 1
        return MappingChunk(
            index=session.chunks_emitted - 1,
            text=text,
            matches=session.committed_matches(),
            inferred_types=dict(session.inferred_types),
            confidence=session.confidence(),
            is_last_chunk=True,
            is_success=False,
            error_message=message,
            cancelled=cancelled,
            stage="failed",
            all_warnings=list(session.warnings),
            usage=session.usage.model_copy(),
        )

    # --- Progress ---

    def _publish_progress(self, done: bool = False) -> None:
        session = self._session
        assert session is not None
        fraction = 1.0 if done else self._source.progress_fraction
        elapsed = session.elapsed_seconds
        remaining = None
        if fraction is not None and 0.0 < fraction < 1.0:
            remaining = elapsed * (1.0 - fraction) / fraction
        elif fraction == 1.0:
            remaining = 0.0
        total = self._source.document.byte_length
        self.progress.publish(ProgressEvent(
            stage=session.stage,
            percent=round(100.0 * (fraction or 0.0), 2),
            items_processed=session.batches_processed,
            total_items_estimate=(
                -(-total // self._source.batch_size_bytes) if total else None
            ),
            elapsed_seconds=elapsed,
            estimated_remaining_seconds=remaining,
        ))
