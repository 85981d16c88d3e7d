"""
RAG Module
==========

Document ingestion and retrieval for governed agents.

Ingestion: extract -> chunk -> embed each chunk -> replace fragments atomically.
Retrieval: embed query -> rank (pgvector or linear scan) -> top-k -> floor.

Architecture:
- PyPDF2 / python-docx for text extraction
- OpenAI text-embedding-3-small for embeddings
- Fragments stored through a RAGStore (PostgreSQL JSONB, optional pgvector)
"""

from .embedder import RAGEmbedder, EmbeddingResult
from .chunker import RAGChunker, ChunkConfig, chunk_text
from .extractor import DocumentExtractor
from .retriever import RAGRetriever, format_context
from .ranker import Ranker, LinearScanRanker, VectorIndexRanker
from .ingestion import RAGIngestion, IngestionResult
from .worker import IngestionWorker
from .similarity import cosine_similarity, select_top
from .models import (
    Agent,
    AgentMode,
    Collection,
    Document,
    DocumentStatus,
    Evidence,
    Fragment,
    RetrievalResult,
)

__all__ = [
    "RAGEmbedder",
    "EmbeddingResult",
    "RAGChunker",
    "ChunkConfig",
    "chunk_text",
    "DocumentExtractor",
    "RAGRetriever",
    "format_context",
    "Ranker",
    "LinearScanRanker",
    "VectorIndexRanker",
    "RAGIngestion",
    "IngestionResult",
    "IngestionWorker",
    "cosine_similarity",
    "select_top",
    "Agent",
    "AgentMode",
    "Collection",
    "Document",
    "DocumentStatus",
    "Evidence",
    "Fragment",
    "RetrievalResult",
]
