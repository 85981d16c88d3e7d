"""
Similarity Scoring
==================

Cosine similarity and the floor / top-k selection shared by every ranker.
"""

import math
from typing import List, Sequence, Tuple

from .models import CandidateFragment


ScoredCandidate = Tuple[CandidateFragment, float]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Dot product divided by the product of magnitudes.

    Returns 0.0 when either vector is all-zero or the dimensions differ.
    The result is clamped to [-1, 1] to absorb floating point drift.
    """
    if len(a) != len(b):
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, score))


def sort_key(item: ScoredCandidate):
    """Descending score, then document id and chunk index for stable ties."""
    candidate, score = item
    return (-score, candidate.document_id, candidate.chunk_index)


def select_top(
    scored: List[ScoredCandidate],
    top_k: int,
    floor: float,
) -> List[ScoredCandidate]:
    """
    Order by score, keep the first top_k, then drop anything below floor.

    The floor is applied after the limit: a query whose top_k are all weak
    yields nothing rather than reaching further down the ranking.
    """
    if top_k <= 0:
        return []
    ranked = sorted(scored, key=sort_key)[:top_k]
    return [(c, s) for c, s in ranked if s >= floor]
