"""
API Models
==========

Pydantic models for API request/response serialization.
"""

from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any
from uuid import UUID


class EvidenceModel(BaseModel):
    """A fragment cited as evidence."""
    document_id: str
    document_name: str
    document_version: int
    chunk_index: int
    chunk_text: str
    similarity_score: float


class ChatRequest(BaseModel):
    """One chat turn."""
    message: str = Field(..., description="User message")
    agent_id: UUID
    user_id: UUID
    tenant_id: UUID
    conversation_id: Optional[UUID] = Field(None, description="Continue an existing conversation")


class DocumentChatRequest(BaseModel):
    """One-shot chat over an uploaded document's text."""
    message: str
    document_content: str = Field(..., description="Extracted text of the uploaded document")
    agent_id: UUID
    user_id: UUID
    tenant_id: UUID


class ChatResponseModel(BaseModel):
    """Chat turn result. A blocked turn is a normal response."""
    response: str
    conversation_id: str
    tokens_used: int = 0
    latency_ms: int = 0
    evidence: List[EvidenceModel] = Field(default_factory=list)
    blocked: bool = False
    block_reason: Optional[str] = None


class RetrieveRequest(BaseModel):
    """Retrieval without a chat turn."""
    query: str
    agent_id: UUID
    tenant_id: UUID
    top_k: Optional[int] = Field(None, ge=1, le=50, description="Number of fragments")


class RetrieveResponse(BaseModel):
    context: str
    evidence: List[EvidenceModel]


class DocumentTaskResponse(BaseModel):
    """Acknowledgement of a queued ingestion."""
    document_id: str
    status: str
    version: int
    queued: bool


class HealthResponse(BaseModel):
    status: str
    version: str
    vector_index: bool
    worker: Dict[str, Any]

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "vector_index": True,
                "worker": {"queued": 0, "running": 1, "completed": 12, "failed": 0},
            }
        }
