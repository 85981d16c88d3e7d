"""
Store Interface
===============

Contract of the persistent store consumed by the pipeline.

Every method is scoped by tenant where the data is tenant-owned. The store
is handed to each component explicitly; nothing reaches for a global handle.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Dict

from ..governance.models import Decision, DecisionLogEntry
from ..rag.models import (
    Agent,
    CandidateFragment,
    ChatMessage,
    Document,
    DocumentStatus,
    Fragment,
    LLMProviderRecord,
)
from ..rag.similarity import ScoredCandidate


class RAGStore(ABC):
    """Persistent store for documents, fragments, agents, chat and decision logs."""

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_document(self, document: Document) -> Document:
        """Insert a document record (normally done by the upload handler)."""

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    def mark_processing(self, document_id: str) -> Optional[Document]:
        """Move a document to `processing` and return it, or None if unknown."""

    @abstractmethod
    def replace_fragments_and_complete(
        self,
        document_id: str,
        version: int,
        fragments: List[Fragment],
    ) -> bool:
        """
        Atomically replace every fragment of the document and mark it completed.

        Returns False, writing nothing, when the stored version is no longer
        `version` (a newer re-process superseded this attempt).
        """

    @abstractmethod
    def mark_failed(self, document_id: str, version: int, error_message: str) -> bool:
        """
        Atomically delete the document's fragments and mark it failed.

        Returns False, writing nothing, when the stored version is no longer `version`.
        """

    @abstractmethod
    def reset_for_reprocess(self, document_id: str) -> Optional[Document]:
        """Set status pending, increment version, clear the error. Returns the document."""

    @abstractmethod
    def list_documents_by_status(self, status: DocumentStatus, limit: int = 100) -> List[Document]:
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        """Delete a document together with all of its fragments."""

    # -------------------------------------------------------------------------
    # Fragments
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_fragments(self, document_id: str) -> List[Fragment]:
        pass

    @abstractmethod
    def delete_fragments(self, document_id: str) -> int:
        """Bulk delete fragments of a document. Returns the number removed."""

    @abstractmethod
    def list_candidate_fragments(self, tenant_id: str, agent_id: str) -> List[CandidateFragment]:
        """
        Fragments of completed documents in collections linked to the agent
        or marked global, within the tenant.
        """

    @abstractmethod
    def supports_vector_index(self) -> bool:
        """Whether nearest_fragments can order server-side."""

    @abstractmethod
    def nearest_fragments(
        self,
        tenant_id: str,
        agent_id: str,
        query_vector: List[float],
        limit: int,
    ) -> List[ScoredCandidate]:
        """Same candidate set as list_candidate_fragments, ordered by cosine similarity and limited."""

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_agent(self, agent_id: str, tenant_id: str) -> Optional[Agent]:
        """Active agent of the tenant, or None."""

    @abstractmethod
    def increment_agent_cost(self, agent_id: str, amount: float) -> Optional[float]:
        """
        Atomically add `amount` to cost_used_today, clamped so the counter does
        not rise above max(cost_limit_daily, current value).

        Returns the new counter value, or None if the agent is unknown.
        """

    # -------------------------------------------------------------------------
    # Chat history
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_conversation_history(
        self,
        tenant_id: str,
        conversation_id: str,
        limit: int,
    ) -> List[Dict[str, str]]:
        """Most recent `limit` messages as {role, content}, oldest first."""

    @abstractmethod
    def save_chat_message(self, message: ChatMessage) -> None:
        pass

    # -------------------------------------------------------------------------
    # Decision log
    # -------------------------------------------------------------------------

    @abstractmethod
    def append_decision_log(self, entry: DecisionLogEntry) -> None:
        pass

    @abstractmethod
    def list_decision_logs(
        self,
        tenant_id: str,
        agent_id: Optional[str] = None,
        decision: Optional[Decision] = None,
        limit: Optional[int] = None,
    ) -> List[DecisionLogEntry]:
        """Entries newest first."""

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_default_provider(self, tenant_id: str) -> Optional[LLMProviderRecord]:
        """The tenant's active default completion provider, if configured."""
