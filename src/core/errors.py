"""
Pipeline Errors
===============

Exception taxonomy for the governed RAG pipeline.

Only CompletionProviderError and the validation / not-found errors are meant
to reach the API boundary. Governance blocks are not exceptions: they are
GovernanceResult values carried on a successful response.
"""

from typing import Optional


class RAGPipelineError(Exception):
    """Base exception for pipeline errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ExtractionError(RAGPipelineError):
    """Text could not be extracted from a stored file. Terminal per version."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        self.file_path = file_path
        super().__init__(message)


class EmbeddingError(RAGPipelineError):
    """The embedding provider timed out or rejected the request."""
    pass


class RetrievalError(RAGPipelineError):
    """Candidate resolution or ranking failed. Degraded to empty context."""
    pass


class CompletionProviderError(RAGPipelineError):
    """The completion provider failed. Propagated to the chat caller."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class DecisionLogError(RAGPipelineError):
    """A decision log entry could not be written. Always swallowed."""
    pass


class ValidationError(RAGPipelineError):
    """Caller input is invalid."""
    pass


class AgentNotFoundError(ValidationError):
    """Agent does not exist, belongs to another tenant, or is inactive."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__("Agent not found or inactive")


class DocumentNotFoundError(ValidationError):
    """Document does not exist."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")
