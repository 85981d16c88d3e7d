"""
In-Memory Store
===============

Thread-safe RAGStore kept in process memory.

Used by the test suite and for local runs without PostgreSQL. All mutations
happen under one re-entrant lock, which gives the same atomicity the SQL
store gets from transactions.
"""

import logging
import threading
import uuid
from copy import deepcopy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from .base import RAGStore
from ..governance.models import Decision, DecisionLogEntry
from ..rag.models import (
    Agent,
    CandidateFragment,
    ChatMessage,
    Collection,
    Document,
    DocumentStatus,
    Fragment,
    LLMProviderRecord,
)
from ..rag.similarity import ScoredCandidate, cosine_similarity, sort_key

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore(RAGStore):
    """
    Dictionary-backed store.

    Args:
        vector_index: Report an accelerated index so the index ranker is used
    """

    def __init__(self, vector_index: bool = False):
        self._lock = threading.RLock()
        self._vector_index = vector_index

        self.collections: Dict[str, Collection] = {}
        self.agent_collections: Dict[str, Set[str]] = {}
        self.agents: Dict[str, Agent] = {}
        self.documents: Dict[str, Document] = {}
        self.fragments: Dict[str, List[Fragment]] = {}
        self.messages: List[ChatMessage] = []
        self.decision_logs: List[DecisionLogEntry] = []
        self.providers: Dict[str, LLMProviderRecord] = {}

    # -------------------------------------------------------------------------
    # Seeding helpers (owned by the CRUD layer in production)
    # -------------------------------------------------------------------------

    def add_collection(self, collection: Collection) -> Collection:
        with self._lock:
            self.collections[collection.id] = collection
        return collection

    def add_agent(self, agent: Agent) -> Agent:
        with self._lock:
            self.agents[agent.id] = agent
        return agent

    def link_agent_collection(self, agent_id: str, collection_id: str) -> None:
        with self._lock:
            self.agent_collections.setdefault(agent_id, set()).add(collection_id)

    def add_provider(self, provider: LLMProviderRecord) -> LLMProviderRecord:
        with self._lock:
            self.providers[provider.id] = provider
        return provider

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def create_document(self, document: Document) -> Document:
        with self._lock:
            if not document.id:
                document.id = str(uuid.uuid4())
            document.created_at = document.created_at or _now()
            document.updated_at = document.created_at
            self.documents[document.id] = document
            self.fragments.setdefault(document.id, [])
            return replace(document)

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._lock:
            doc = self.documents.get(document_id)
            return replace(doc) if doc else None

    def _update(self, document_id: str, **changes) -> Optional[Document]:
        doc = self.documents.get(document_id)
        if doc is None:
            return None
        for key, value in changes.items():
            setattr(doc, key, value)
        doc.updated_at = _now()
        return replace(doc)

    def mark_processing(self, document_id: str) -> Optional[Document]:
        with self._lock:
            return self._update(document_id, status=DocumentStatus.PROCESSING)

    def replace_fragments_and_complete(
        self,
        document_id: str,
        version: int,
        fragments: List[Fragment],
    ) -> bool:
        with self._lock:
            doc = self.documents.get(document_id)
            if doc is None or doc.version != version:
                return False
            stored = []
            for fragment in fragments:
                copy = replace(fragment, vector=list(fragment.vector), document_version=version)
                copy.id = copy.id or str(uuid.uuid4())
                stored.append(copy)
            self.fragments[document_id] = stored
            self._update(document_id, status=DocumentStatus.COMPLETED, error_message=None)
            return True

    def mark_failed(self, document_id: str, version: int, error_message: str) -> bool:
        with self._lock:
            doc = self.documents.get(document_id)
            if doc is None or doc.version != version:
                return False
            self.fragments[document_id] = []
            self._update(document_id, status=DocumentStatus.FAILED, error_message=error_message)
            return True

    def reset_for_reprocess(self, document_id: str) -> Optional[Document]:
        with self._lock:
            doc = self.documents.get(document_id)
            if doc is None:
                return None
            return self._update(
                document_id,
                status=DocumentStatus.PENDING,
                version=doc.version + 1,
                error_message=None,
            )

    def list_documents_by_status(self, status: DocumentStatus, limit: int = 100) -> List[Document]:
        with self._lock:
            docs = [d for d in self.documents.values() if d.status == status]
            docs.sort(key=lambda d: d.updated_at or _now())
            return [replace(d) for d in docs[:limit]]

    def delete_document(self, document_id: str) -> bool:
        with self._lock:
            self.fragments.pop(document_id, None)
            return self.documents.pop(document_id, None) is not None

    # -------------------------------------------------------------------------
    # Fragments
    # -------------------------------------------------------------------------

    def get_fragments(self, document_id: str) -> List[Fragment]:
        with self._lock:
            return [replace(f) for f in self.fragments.get(document_id, [])]

    def delete_fragments(self, document_id: str) -> int:
        with self._lock:
            removed = len(self.fragments.get(document_id, []))
            self.fragments[document_id] = []
            return removed

    def _scope_collection_ids(self, tenant_id: str, agent_id: str) -> Set[str]:
        linked = self.agent_collections.get(agent_id, set())
        return {
            c.id for c in self.collections.values()
            if c.tenant_id == tenant_id and (c.id in linked or c.is_global)
        }

    def list_candidate_fragments(self, tenant_id: str, agent_id: str) -> List[CandidateFragment]:
        with self._lock:
            scope = self._scope_collection_ids(tenant_id, agent_id)
            candidates = []
            for doc in self.documents.values():
                if doc.collection_id not in scope or doc.status != DocumentStatus.COMPLETED:
                    continue
                for fragment in self.fragments.get(doc.id, []):
                    if fragment.document_version != doc.version:
                        continue
                    candidates.append(CandidateFragment(
                        document_id=doc.id,
                        document_name=doc.name,
                        document_version=doc.version,
                        chunk_index=fragment.chunk_index,
                        text=fragment.text,
                        vector=list(fragment.vector),
                    ))
            return candidates

    def supports_vector_index(self) -> bool:
        return self._vector_index

    def nearest_fragments(
        self,
        tenant_id: str,
        agent_id: str,
        query_vector: List[float],
        limit: int,
    ) -> List[ScoredCandidate]:
        if not self._vector_index:
            raise RuntimeError("Vector index not enabled on this store")
        scored = [
            (c, cosine_similarity(query_vector, c.vector))
            for c in self.list_candidate_fragments(tenant_id, agent_id)
        ]
        return sorted(scored, key=sort_key)[:limit]

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def get_agent(self, agent_id: str, tenant_id: str) -> Optional[Agent]:
        with self._lock:
            agent = self.agents.get(agent_id)
            if agent is None or agent.tenant_id != tenant_id or not agent.is_active:
                return None
            return deepcopy(agent)

    def increment_agent_cost(self, agent_id: str, amount: float) -> Optional[float]:
        with self._lock:
            agent = self.agents.get(agent_id)
            if agent is None:
                return None
            ceiling = max(agent.cost_limit_daily, agent.cost_used_today)
            agent.cost_used_today = min(agent.cost_used_today + amount, ceiling)
            return agent.cost_used_today

    # -------------------------------------------------------------------------
    # Chat history
    # -------------------------------------------------------------------------

    def get_conversation_history(
        self,
        tenant_id: str,
        conversation_id: str,
        limit: int,
    ) -> List[Dict[str, str]]:
        with self._lock:
            history = [
                {"role": m.role, "content": m.content}
                for m in self.messages
                if m.conversation_id == conversation_id and m.tenant_id == tenant_id
            ]
            return history[-limit:] if limit > 0 else []

    def save_chat_message(self, message: ChatMessage) -> None:
        with self._lock:
            message.created_at = message.created_at or _now()
            self.messages.append(message)

    # -------------------------------------------------------------------------
    # Decision log
    # -------------------------------------------------------------------------

    def append_decision_log(self, entry: DecisionLogEntry) -> None:
        with self._lock:
            self.decision_logs.append(replace(
                entry,
                id=entry.id or str(uuid.uuid4()),
                created_at=entry.created_at or _now(),
                metadata=deepcopy(entry.metadata),
            ))

    def list_decision_logs(
        self,
        tenant_id: str,
        agent_id: Optional[str] = None,
        decision: Optional[Decision] = None,
        limit: Optional[int] = None,
    ) -> List[DecisionLogEntry]:
        with self._lock:
            entries = [
                e for e in reversed(self.decision_logs)
                if e.tenant_id == tenant_id
                and (agent_id is None or e.agent_id == agent_id)
                and (decision is None or e.decision == Decision(decision))
            ]
            return entries[:limit] if limit else entries

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def get_default_provider(self, tenant_id: str) -> Optional[LLMProviderRecord]:
        with self._lock:
            for provider in self.providers.values():
                if provider.tenant_id == tenant_id and provider.is_default and provider.is_active:
                    return provider
            return None
