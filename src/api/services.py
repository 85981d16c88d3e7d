"""
API Services
============

Wiring of the pipeline components for the API and the CLI.

Settings are read here and nowhere else: every component receives its
collaborators and values explicitly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..ai.chat_service import ChatService
from ..ai.llm_client import get_llm_client
from ..ai.providers import ProviderResolver
from ..core.config import Settings, get_settings
from ..governance import ContractEnforcer, CostKillController, DecisionLogger, ModeGate
from ..rag.chunker import ChunkConfig, RAGChunker
from ..rag.embedder import RAGEmbedder
from ..rag.extractor import DocumentExtractor
from ..rag.ingestion import RAGIngestion
from ..rag.retriever import RAGRetriever
from ..rag.worker import IngestionWorker
from ..storage.base import RAGStore
from ..storage.postgres import PostgresStore

logger = logging.getLogger(__name__)


@dataclass
class RAGServices:
    """The wired component set."""
    store: RAGStore
    embedder: RAGEmbedder
    ingestion: RAGIngestion
    retriever: RAGRetriever
    worker: IngestionWorker
    chat: ChatService
    settings: Optional[Settings] = None

    def close(self):
        """Stop the worker and release the store's connections."""
        if self.worker.is_running:
            self.worker.stop()
        close = getattr(self.store, "close", None)
        if close is not None:
            close()


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[RAGStore] = None,
    embedder: Optional[RAGEmbedder] = None,
    providers: Optional[ProviderResolver] = None,
) -> RAGServices:
    """
    Build the production component set.

    Args:
        settings: Application settings (environment when omitted)
        store: Store override; PostgresStore from settings otherwise
        embedder: Embedder override
        providers: Completion provider resolver override
    """
    settings = settings or get_settings()
    rag = settings.rag
    llm = settings.llm

    store = store or PostgresStore(settings.database)
    embedder = embedder or RAGEmbedder(
        model=rag.embedding_model,
        max_chars=rag.embedding_max_chars,
    )

    ingestion = RAGIngestion(
        store=store,
        embedder=embedder,
        chunker=RAGChunker(ChunkConfig(size=rag.chunk_size, overlap=rag.chunk_overlap)),
        extractor=DocumentExtractor(),
    )
    retriever = RAGRetriever(
        store=store,
        embedder=embedder,
        top_k=rag.top_k,
        similarity_floor=rag.similarity_floor,
    )
    worker = IngestionWorker(
        ingestion=ingestion,
        store=store,
        threads=settings.worker.threads,
        rescan_interval_seconds=settings.worker.rescan_interval_seconds,
        stale_processing_seconds=settings.worker.stale_processing_seconds,
    )

    providers = providers or ProviderResolver(
        store=store,
        encryption_key=llm.encryption_key,
        default_factory=lambda: get_llm_client(provider=llm.provider),
    )
    chat = ChatService(
        store=store,
        retriever=retriever,
        providers=providers,
        cost_controller=CostKillController(store, llm.cost_per_1k_tokens),
        contract=ContractEnforcer(),
        mode_gate=ModeGate(rag.internal_confidence_floor),
        decision_logger=DecisionLogger(store),
        default_model=llm.default_model,
        default_temperature=llm.default_temperature,
        max_tokens=llm.max_tokens,
        history_limit=llm.history_limit,
    )

    logger.info(f"Services built for {settings.app_name} ({settings.environment})")

    return RAGServices(
        store=store,
        embedder=embedder,
        ingestion=ingestion,
        retriever=retriever,
        worker=worker,
        chat=chat,
        settings=settings,
    )
