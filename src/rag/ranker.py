"""
Retrieval Rankers
=================

Two ways of ranking an agent's candidate fragments against a query vector:

- LinearScanRanker: loads every candidate and scores it in Python
- VectorIndexRanker: lets the store order and limit server-side (pgvector)

Both finish through `select_top`, so the similarity floor and top-k
semantics are identical whichever path served the query.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from .similarity import ScoredCandidate, cosine_similarity, select_top

logger = logging.getLogger(__name__)


class Ranker(ABC):
    """Ranks the fragments visible to an agent."""

    name = "base"

    def __init__(self, store):
        self.store = store

    @abstractmethod
    def score(
        self,
        query_vector: List[float],
        tenant_id: str,
        agent_id: str,
        top_k: int,
    ) -> List[ScoredCandidate]:
        """Scored candidates; at least the best `top_k` must be present."""

    def rank(
        self,
        query_vector: List[float],
        tenant_id: str,
        agent_id: str,
        top_k: int,
        floor: float,
    ) -> List[ScoredCandidate]:
        scored = self.score(query_vector, tenant_id, agent_id, top_k)
        return select_top(scored, top_k, floor)


class LinearScanRanker(Ranker):
    """Cosine similarity over the full candidate set."""

    name = "linear"

    def score(self, query_vector, tenant_id, agent_id, top_k):
        candidates = self.store.list_candidate_fragments(tenant_id, agent_id)
        logger.debug(f"Linear scan over {len(candidates)} candidates")
        return [(c, cosine_similarity(query_vector, c.vector)) for c in candidates]


class VectorIndexRanker(Ranker):
    """Server-side ordering with LIMIT top_k."""

    name = "vector_index"

    def score(self, query_vector, tenant_id, agent_id, top_k):
        if top_k <= 0:
            return []
        return self.store.nearest_fragments(tenant_id, agent_id, query_vector, top_k)
