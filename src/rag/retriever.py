"""
RAG Retriever
=============

Query-time retrieval for an agent:
1. Embed the query
2. Rank the agent's candidate fragments (vector index when the store has
   one, linear scan otherwise or when the index path fails)
3. Keep the top_k, drop anything under the similarity floor
4. Build the context string and the parallel evidence list

Retrieval never fails a chat turn: embedding and ranking errors degrade to
an empty result.
"""

import logging
import time
from typing import List, Optional

from ..core.errors import EmbeddingError, RetrievalError
from .embedder import RAGEmbedder
from .models import Agent, Evidence, RetrievalResult
from .ranker import LinearScanRanker, Ranker, VectorIndexRanker
from .similarity import ScoredCandidate

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


def format_context(evidence: List[Evidence]) -> str:
    """Concatenate fragments, each prefixed with its source document and version."""
    return CONTEXT_SEPARATOR.join(
        f"[Source: {e.document_name} v{e.document_version}]\n{e.chunk_text}"
        for e in evidence
    )


def to_evidence(scored: List[ScoredCandidate]) -> List[Evidence]:
    return [
        Evidence(
            document_id=c.document_id,
            document_name=c.document_name,
            document_version=c.document_version,
            chunk_index=c.chunk_index,
            chunk_text=c.text,
            similarity_score=score,
        )
        for c, score in scored
    ]


class RAGRetriever:
    """
    Retrieves evidence for an agent from its linked and global collections.

    Args:
        store: RAGStore the fragments live in
        embedder: Query embedder
        top_k: Default number of results
        similarity_floor: Scores below this are not evidence at all
    """

    def __init__(
        self,
        store,
        embedder: RAGEmbedder,
        top_k: int = 5,
        similarity_floor: float = 0.3,
    ):
        self.store = store
        self.embedder = embedder
        self.top_k = top_k
        self.similarity_floor = similarity_floor

        self.linear_ranker: Ranker = LinearScanRanker(store)
        self.index_ranker: Ranker = VectorIndexRanker(store)

    def retrieve(
        self,
        query: str,
        agent: Agent,
        top_k: Optional[int] = None,
    ) -> RetrievalResult:
        """
        Retrieve context and evidence for a query.

        Returns an empty RetrievalResult when the query cannot be embedded or
        ranking fails.
        """
        k = self.top_k if top_k is None else top_k
        start = time.time()

        try:
            query_vector = self.embedder.embed_query(query)
        except EmbeddingError as e:
            logger.warning(f"Query embedding failed, continuing without context: {e.message}")
            return RetrievalResult()

        try:
            scored = self._rank(query_vector, agent, k)
        except RetrievalError as e:
            logger.error(f"Retrieval failed for agent {agent.id}: {e.message}")
            return RetrievalResult()

        evidence = to_evidence(scored)
        duration = round(time.time() - start, 3)
        logger.info(
            f"Retrieved {len(evidence)} fragments for agent {agent.id}",
            extra={"tenant_id": agent.tenant_id, "agent_id": agent.id, "duration": duration},
        )
        return RetrievalResult(context=format_context(evidence), evidence=evidence)

    def _rank(self, query_vector: List[float], agent: Agent, top_k: int) -> List[ScoredCandidate]:
        try:
            use_index = self.store.supports_vector_index()
        except Exception as e:
            logger.warning(f"Vector index check failed: {e}")
            use_index = False

        if use_index:
            try:
                return self.index_ranker.rank(
                    query_vector, agent.tenant_id, agent.id, top_k, self.similarity_floor
                )
            except Exception as e:
                logger.warning(f"Vector index search failed, falling back to linear scan: {e}")

        try:
            return self.linear_ranker.rank(
                query_vector, agent.tenant_id, agent.id, top_k, self.similarity_floor
            )
        except Exception as e:
            raise RetrievalError(f"Linear scan failed: {e}") from e
