# src/core/similarity.py — v3
"""Field-name normalization and tiered string similarity.

Tiers are evaluated in order with early acceptance:
  1. equality (raw → "exact", normalized → "normalized"), score 1.0
  2. containment after normalization, score 0.85-0.95 by length ratio
  3. normalized Levenshtein similarity, 1 - distance / max(len_a, len_b)
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import numpy as np
from rapidfuzz.distance import Levenshtein

from docmapper.core.models import MatchKind

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)

CONTAINMENT_BASE = 0.85
CONTAINMENT_SPAN = 0.10
MIN_CONTAINMENT_LENGTH = 2
# Scores are rounded so threshold comparisons are exact at the boundary.
SCORE_PRECISION = 6


@dataclass(frozen=True)
class SimilarityScore:
    """Score of one (source, target) pair and the tier that produced it."""

    score: float
    match_kind: MatchKind
    algorithm: str


def normalize_name(name: str) -> str:
    """Lowercase and drop non-alphanumerics, whitespace and underscores."""
    return _NON_ALNUM.sub("", name.lower())


def containment_score(a: str, b: str) -> float | None:
    """Score for one normalized name contained in the other, else None."""
    short, long_ = (a, b) if len(a) <= len(b) else (b, a)
    if len(short) < MIN_CONTAINMENT_LENGTH or short not in long_:
        return None
    return CONTAINMENT_BASE + CONTAINMENT_SPAN * (len(short) / len(long_))


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length, in [0, 1]."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def score_pair(source: str, target: str) -> SimilarityScore:
    """Score one pair of raw field names through the tiers."""
    if source.strip() == target.strip() and source.strip():
        return SimilarityScore(1.0, "exact", "exact")
    a, b = normalize_name(source), normalize_name(target)
    if not a or not b:
        return SimilarityScore(0.0, "fuzzy", "levenshtein")
    if a == b:
        return SimilarityScore(1.0, "normalized", "normalized")
    contained = containment_score(a, b)
    if contained is not None:
        return SimilarityScore(round(contained, SCORE_PRECISION), "fuzzy", "containment")
    return SimilarityScore(
        round(levenshtein_similarity(a, b), SCORE_PRECISION), "fuzzy", "levenshtein",
    )


def score_matrix(sources: list[str], targets: list[str]) -> tuple[np.ndarray, list[list[SimilarityScore]]]:
    """Pairwise score matrix of shape (len(sources), len(targets)).

    Returns:
        The numeric matrix and the per-cell SimilarityScore details.
    """
    details = [[score_pair(s, t) for t in targets] for s in sources]
    matrix = np.zeros((len(sources), len(targets)), dtype=np.float64)
    for i, row in enumerate(details):
        for j, cell in enumerate(row):
            matrix[i, j] = cell.score
    return matrix, details
