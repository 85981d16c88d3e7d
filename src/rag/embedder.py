"""
RAG Embedder
============

Generates embeddings using OpenAI text-embedding-3-small by default.
Used at ingestion time (one call per fragment) and at query time.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Any

from ..core.errors import EmbeddingError

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingResult:
    """Result of embedding generation."""
    embedding: List[float]
    token_count: int
    model: str


class RAGEmbedder:
    """
    Wraps the embedding provider.

    Input is truncated to `max_chars` before the call. Provider failures
    surface as EmbeddingError; the caller decides whether they are fatal.

    Cost: ~$0.00002 per 1K tokens
    """

    DEFAULT_MODEL = "text-embedding-3-small"
    DEFAULT_MAX_CHARS = 8000

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_chars: int = DEFAULT_MAX_CHARS,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("GPT_API_KEY")
        if client is None and not self.api_key:
            raise ValueError("OpenAI API key required for embeddings")

        self.model = model or self.DEFAULT_MODEL
        self.max_chars = max_chars
        self._client = client
        self._total_tokens = 0
        self._total_requests = 0

    @property
    def client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def embed(self, text: str) -> EmbeddingResult:
        """
        Generate an embedding for a single text.

        Raises:
            EmbeddingError: On empty input or provider timeout / rejection
        """
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=text[:self.max_chars],
            )
        except Exception as e:
            logger.warning(f"Embedding request failed: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        embedding = list(response.data[0].embedding)
        usage = getattr(response, "usage", None)
        token_count = getattr(usage, "total_tokens", 0) or 0

        self._total_tokens += token_count
        self._total_requests += 1

        logger.debug(f"Embedded {token_count} tokens")

        return EmbeddingResult(
            embedding=embedding,
            token_count=token_count,
            model=self.model,
        )

    def embed_query(self, query: str) -> List[float]:
        """Embed a search query and return just the vector."""
        return self.embed(query).embedding

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    @property
    def total_requests(self) -> int:
        return self._total_requests

    @property
    def estimated_cost(self) -> float:
        """Estimated cost in USD."""
        return (self._total_tokens / 1000) * 0.00002
