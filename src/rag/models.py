"""
RAG Data Models
===============

Dataclasses shared by ingestion, retrieval, governance and the stores.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any


class DocumentStatus(str, Enum):
    """Document ingestion lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentMode(str, Enum):
    """How strictly an agent must ground its answers in evidence."""
    INTERNAL = "INTERNAL"  # Answer only from evidence
    HYBRID = "HYBRID"      # Prefer evidence, may supplement
    FREE = "FREE"          # No evidence requirement


@dataclass
class Collection:
    """A group of documents. Global collections are visible to every agent of the tenant."""
    id: str
    tenant_id: str
    name: str
    is_global: bool = False


@dataclass
class Document:
    """An uploaded artifact and its ingestion state."""
    id: str
    tenant_id: str
    collection_id: str
    name: str
    file_path: str
    mime_type: str
    file_size: int = 0
    status: DocumentStatus = DocumentStatus.PENDING
    version: int = 1
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = DocumentStatus(self.status)


@dataclass
class Fragment:
    """A chunk of a document's text with its embedding."""
    document_id: str
    chunk_index: int
    text: str
    vector: List[float]
    document_version: int = 1
    id: Optional[str] = None


@dataclass
class CandidateFragment:
    """A fragment joined with the parent document fields retrieval needs."""
    document_id: str
    document_name: str
    document_version: int
    chunk_index: int
    text: str
    vector: List[float]


@dataclass
class Agent:
    """Chat agent and its governance settings."""
    id: str
    tenant_id: str
    name: str = ""
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    mode: AgentMode = AgentMode.HYBRID
    allowed_topics: List[str] = field(default_factory=list)
    forbidden_topics: List[str] = field(default_factory=list)
    kill_switch: bool = False
    cost_limit_daily: float = 10.0
    cost_used_today: float = 0.0
    enable_rag: bool = True
    is_active: bool = True

    def __post_init__(self):
        if isinstance(self.mode, str):
            self.mode = AgentMode(self.mode.upper())


@dataclass
class Evidence:
    """A retrieved fragment surfaced as provenance for an answer."""
    document_id: str
    document_name: str
    document_version: int
    chunk_index: int
    chunk_text: str
    similarity_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "document_name": self.document_name,
            "document_version": self.document_version,
            "chunk_index": self.chunk_index,
            "chunk_text": self.chunk_text,
            "similarity_score": self.similarity_score,
        }


@dataclass
class RetrievalResult:
    """Context string for the model plus the parallel evidence list."""
    context: str = ""
    evidence: List[Evidence] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.evidence


@dataclass
class ChatMessage:
    """A persisted chat message."""
    tenant_id: str
    user_id: str
    agent_id: str
    conversation_id: str
    role: str
    content: str
    tokens_used: int = 0
    latency_ms: int = 0
    evidence: List[Evidence] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class LLMProviderRecord:
    """A tenant's configured completion provider."""
    id: str
    tenant_id: str
    name: str
    api_key_encrypted: str
    base_url: Optional[str] = None
    is_default: bool = True
    is_active: bool = True
