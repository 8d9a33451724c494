# src/mapping/similarity_matcher.py — v1
"""Greedy 1:1 assignment of source fields to target schema fields.

Deterministic and side-effect-free: identical input gives identical output.
Candidate pairs are taken highest score first; ties go to the lower source
index, then the lexically smaller source name, then target name. A target
left without an accepted pair is reported unmapped with one warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from docmapper.core.models import MappingWarning, PropertyMatch, TargetSchema
from docmapper.core.similarity import SCORE_PRECISION, score_matrix

logger = logging.getLogger(__name__)


@dataclass
class MatchOutcome:
    """Result of one matching pass."""

    matches: list[PropertyMatch] = field(default_factory=list)
    unmapped_targets: list[str] = field(default_factory=list)
    unmatched_sources: list[str] = field(default_factory=list)
    # Best sub-threshold candidate per unmatched source field.
    best_rejected: dict[str, PropertyMatch] = field(default_factory=dict)
    # Highest score any source reached per target.
    best_scores: dict[str, float] = field(default_factory=dict)
    warnings: list[MappingWarning] = field(default_factory=list)


class SimilarityMatcher:
    """Propose a source → target mapping from field names.

    Args:
        threshold: Acceptance threshold on the 0-100 scale (default 80).
    """

    def __init__(self, threshold: int = 80) -> None:
        if not 0 <= threshold <= 100:
            raise ValueError("threshold must be within 0-100")
        self._threshold = round(threshold / 100.0, SCORE_PRECISION)

    @property
    def threshold(self) -> float:
        return self._threshold

    def match(self, sources: list[str], schema: TargetSchema) -> MatchOutcome:
        """Match source fields against every field of the schema."""
        return self.match_incremental(sources, schema.field_names)

    def match_incremental(
        self,
        sources: list[str],
        targets: list[str],
        batch_index: int | None = None,
    ) -> MatchOutcome:
        """Match sources against the given (still free) targets only."""
        outcome = MatchOutcome()
        sources = list(dict.fromkeys(sources))
        if not sources or not targets:
            outcome.unmapped_targets = list(targets)
            outcome.unmatched_sources = list(sources)
            outcome.best_scores = {t: 0.0 for t in targets}
            outcome.warnings = [self.unmapped_warning(t, 0.0, batch_index) for t in targets]
            return outcome

        matrix, details = score_matrix(sources, targets)
        candidates = np.argwhere(matrix >= self._threshold)
        order = sorted(
            ((int(i), int(j)) for i, j in candidates),
            key=lambda ij: (-matrix[ij], ij[0], sources[ij[0]], targets[ij[1]]),
        )

        used_sources: set[int] = set()
        used_targets: set[int] = set()
        for i, j in order:
            if i in used_sources or j in used_targets:
                continue
            used_sources.add(i)
            used_targets.add(j)
            cell = details[i][j]
            outcome.matches.append(
                PropertyMatch(
                    source_field=sources[i],
                    target_field=targets[j],
                    score=cell.score,
                    match_kind=cell.match_kind,
                    algorithm=cell.algorithm,
                )
            )

        outcome.matches.sort(key=lambda m: sources.index(m.source_field))
        for j, target in enumerate(targets):
            best = float(matrix[:, j].max())
            outcome.best_scores[target] = best
            if j not in used_targets:
                outcome.unmapped_targets.append(target)
                outcome.warnings.append(self.unmapped_warning(target, best, batch_index))
        for i, source in enumerate(sources):
            if i in used_sources:
                continue
            outcome.unmatched_sources.append(source)
            free = [j for j in range(len(targets)) if j not in used_targets]
            if free:
                j = max(free, key=lambda k: (matrix[i, k], -k))
                cell = details[i][j]
                outcome.best_rejected[source] = PropertyMatch(
                    source_field=source,
                    target_field=targets[j],
                    score=cell.score,
                    match_kind=cell.match_kind,
                    algorithm=cell.algorithm,
                )

        logger.debug(
            "Matched %d/%d sources to %d targets (threshold %.2f)",
            len(outcome.matches), len(sources), len(targets), self._threshold,
        )
        return outcome

    def unmapped_warning(self, target: str, best: float, batch_index: int | None) -> MappingWarning:
        return MappingWarning(
            field=target,
            message=(
                f"No source field reached threshold {self._threshold:.2f} "
                f"for target '{target}' (best {best:.2f})"
            ),
            kind="unmapped_target",
            confidence=round(best, SCORE_PRECISION),
            batch_index=batch_index,
        )
