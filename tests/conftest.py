"""
Shared fixtures and fakes.

Nothing here touches the network or a database: the embedder and the
completion client are deterministic fakes and the store is InMemoryStore.
"""

import math
from typing import Dict, List, Optional, Sequence

import pytest

from src.ai.chat_service import ChatService
from src.ai.llm_client import CompletionResult, LLMClient, LLMProvider
from src.ai.providers import ProviderResolver
from src.core.errors import CompletionProviderError, EmbeddingError
from src.governance import ContractEnforcer, CostKillController, DecisionLogger, ModeGate
from src.rag.embedder import EmbeddingResult
from src.rag.models import Agent, Collection, Document, Fragment
from src.rag.retriever import RAGRetriever
from src.storage.memory import InMemoryStore

TENANT = "tenant-1"
OTHER_TENANT = "tenant-2"
USER = "user-1"

QUERY_VECTOR = [1.0, 0.0, 0.0]


def vector_with_similarity(score: float) -> List[float]:
    """Unit vector whose cosine similarity with QUERY_VECTOR is `score`."""
    return [score, math.sqrt(max(0.0, 1.0 - score * score)), 0.0]


class FakeEmbedder:
    """
    Deterministic embedder.

    The first key of `vectors` contained in the text picks the vector;
    texts containing a `fail_on` marker raise EmbeddingError.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, Sequence[float]]] = None,
        default: Sequence[float] = (0.0, 0.0, 1.0),
        fail_on: Sequence[str] = (),
    ):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.fail_on = list(fail_on)
        self.calls: List[str] = []
        self.total_tokens = 0
        self.estimated_cost = 0.0

    def embed(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError("provider rejected input")

        vector = self.default
        for key, candidate in self.vectors.items():
            if key in text:
                vector = list(candidate)
                break

        tokens = len(text.split())
        self.total_tokens += tokens
        return EmbeddingResult(embedding=list(vector), token_count=tokens, model="fake-embedding")

    def embed_query(self, query: str) -> List[float]:
        return self.embed(query).embedding


class FakeLLMClient(LLMClient):
    """Completion client returning a canned answer and recording every call."""

    provider = LLMProvider.OPENAI

    def __init__(self, text: str = "Here is the answer.", tokens: int = 1000, fail: bool = False):
        self.text = text
        self.tokens = tokens
        self.fail = fail
        self.calls: List[dict] = []

    def complete(self, messages, model, temperature=0.7, max_tokens=2000) -> CompletionResult:
        self.calls.append({
            "messages": list(messages),
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.fail:
            raise CompletionProviderError("upstream timeout", provider="openai")
        return CompletionResult(
            text=self.text,
            tokens_used=self.tokens,
            model=model,
            provider=self.provider,
        )


# =============================================================================
# Store helpers
# =============================================================================

def add_agent(store: InMemoryStore, agent_id: str = "agent-1", tenant_id: str = TENANT, **kwargs) -> Agent:
    return store.add_agent(Agent(id=agent_id, tenant_id=tenant_id, name=agent_id, **kwargs))


def add_collection(
    store: InMemoryStore,
    collection_id: str = "col-1",
    tenant_id: str = TENANT,
    is_global: bool = False,
    agent_id: Optional[str] = None,
) -> Collection:
    collection = store.add_collection(
        Collection(id=collection_id, tenant_id=tenant_id, name=collection_id, is_global=is_global)
    )
    if agent_id:
        store.link_agent_collection(agent_id, collection_id)
    return collection


def add_document(
    store: InMemoryStore,
    document_id: str,
    collection_id: str = "col-1",
    tenant_id: str = TENANT,
    file_path: str = "/tmp/missing.txt",
    mime_type: str = "text/plain",
    name: Optional[str] = None,
) -> Document:
    return store.create_document(Document(
        id=document_id,
        tenant_id=tenant_id,
        collection_id=collection_id,
        name=name or f"{document_id}.txt",
        file_path=file_path,
        mime_type=mime_type,
    ))


def add_completed_document(
    store: InMemoryStore,
    document_id: str,
    fragments: List[tuple],
    collection_id: str = "col-1",
    tenant_id: str = TENANT,
    name: Optional[str] = None,
) -> Document:
    """Document already ingested with (text, vector) fragments."""
    document = add_document(store, document_id, collection_id, tenant_id, name=name)
    store.replace_fragments_and_complete(document_id, document.version, [
        Fragment(document_id=document_id, chunk_index=i, text=text, vector=list(vector))
        for i, (text, vector) in enumerate(fragments)
    ])
    return store.get_document(document_id)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def embedder():
    return FakeEmbedder(vectors={"refund": QUERY_VECTOR})


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture
def chat_service(store, embedder, llm):
    retriever = RAGRetriever(store, embedder, top_k=5, similarity_floor=0.3)
    return ChatService(
        store=store,
        retriever=retriever,
        providers=ProviderResolver(store, default_factory=lambda: llm),
        cost_controller=CostKillController(store, cost_per_1k_tokens=0.01),
        contract=ContractEnforcer(),
        mode_gate=ModeGate(confidence_floor=0.5),
        decision_logger=DecisionLogger(store),
    )
