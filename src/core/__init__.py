"""
Core Module
===========

Shared configuration, logging setup and the pipeline error taxonomy.
"""

from .config import Settings, get_settings, load_settings
from .errors import (
    RAGPipelineError,
    ExtractionError,
    EmbeddingError,
    RetrievalError,
    CompletionProviderError,
    DecisionLogError,
    ValidationError,
    AgentNotFoundError,
    DocumentNotFoundError,
)

__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "RAGPipelineError",
    "ExtractionError",
    "EmbeddingError",
    "RetrievalError",
    "CompletionProviderError",
    "DecisionLogError",
    "ValidationError",
    "AgentNotFoundError",
    "DocumentNotFoundError",
]
