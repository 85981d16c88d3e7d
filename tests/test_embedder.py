"""
Tests for RAGEmbedder.

Note: The OpenAI client is mocked; no API calls are made.

Usage:
    pytest tests/test_embedder.py -v
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from src.core.errors import EmbeddingError
from src.rag.embedder import RAGEmbedder


def embedding_response(vector, tokens=7):
    return SimpleNamespace(
        data=[SimpleNamespace(embedding=vector)],
        usage=SimpleNamespace(total_tokens=tokens),
    )


class TestEmbedderInit:
    """Construction."""

    @patch.dict("os.environ", {}, clear=True)
    def test_requires_key_or_client(self):
        with pytest.raises(ValueError):
            RAGEmbedder()

    @patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=True)
    def test_reads_key_from_environment(self):
        embedder = RAGEmbedder()
        assert embedder.api_key == "sk-test"
        assert embedder.model == "text-embedding-3-small"


class TestEmbed:
    """Embedding calls (mocked)."""

    def setup_method(self):
        self.client = MagicMock()
        self.client.embeddings.create.return_value = embedding_response([0.1, 0.2, 0.3])
        self.embedder = RAGEmbedder(client=self.client, max_chars=10)

    def test_returns_vector_and_usage(self):
        result = self.embedder.embed("hello")

        assert result.embedding == [0.1, 0.2, 0.3]
        assert result.token_count == 7
        assert result.model == "text-embedding-3-small"
        assert self.embedder.total_tokens == 7
        assert self.embedder.total_requests == 1
        assert self.embedder.estimated_cost > 0

    def test_input_truncated_to_max_chars(self):
        self.embedder.embed("abcdefghijKLMNOP")
        kwargs = self.client.embeddings.create.call_args.kwargs
        assert kwargs["input"] == "abcdefghij"

    def test_embed_query_returns_vector(self):
        assert self.embedder.embed_query("hello") == [0.1, 0.2, 0.3]

    def test_empty_text_rejected(self):
        with pytest.raises(EmbeddingError):
            self.embedder.embed("   ")
        self.client.embeddings.create.assert_not_called()

    def test_provider_failure_wrapped(self):
        self.client.embeddings.create.side_effect = TimeoutError("timed out")
        with pytest.raises(EmbeddingError) as exc:
            self.embedder.embed("hello")
        assert isinstance(exc.value.__cause__, TimeoutError)
        assert self.embedder.total_requests == 0
