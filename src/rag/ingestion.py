"""
RAG Ingestion Pipeline
======================

Turns an uploaded document into embedded fragments.

Flow (one document, strictly sequential):
1. Mark processing (pending -> processing)
2. Extract text
3. Chunk
4. Embed each chunk; a chunk whose embedding fails is skipped
5. Replace the document's fragments and mark completed, atomically

Any error marks the document failed and removes its fragments. A newer
re-process bumps the version; a stale attempt is discarded without writing.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.errors import (
    DocumentNotFoundError,
    EmbeddingError,
    ExtractionError,
    RAGPipelineError,
)
from .chunker import RAGChunker
from .embedder import RAGEmbedder
from .extractor import DocumentExtractor
from .models import Document, DocumentStatus, Fragment

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Outcome of one processing attempt."""
    document_id: str
    version: int
    status: DocumentStatus
    fragments_stored: int = 0
    fragments_skipped: int = 0
    error: Optional[str] = None
    stale: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == DocumentStatus.COMPLETED and not self.stale


class RAGIngestion:
    """
    Ingestion pipeline for tenant documents.

    process_document is the idempotent entry point: it may be called again
    for the same document after a failure or a crash mid-run.
    """

    def __init__(
        self,
        store,
        embedder: RAGEmbedder,
        chunker: Optional[RAGChunker] = None,
        extractor: Optional[DocumentExtractor] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or RAGChunker()
        self.extractor = extractor or DocumentExtractor()

        self._documents_processed = 0
        self._documents_failed = 0
        self._fragments_created = 0
        self._fragments_skipped = 0

    def process_document(self, document_id: str) -> IngestionResult:
        """
        Run the pipeline for the document's current version.

        Returns:
            IngestionResult; failures are reported on the result, not raised

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.store.mark_processing(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        version = document.version
        start = time.time()
        log_extra = {"tenant_id": document.tenant_id, "document_id": document_id}
        logger.info(f"Processing document {document_id} v{version}: {document.name}", extra=log_extra)

        try:
            fragments, skipped = self._build_fragments(document)
        except Exception as e:
            message = e.message if isinstance(e, RAGPipelineError) else str(e)
            if isinstance(e, RAGPipelineError):
                logger.error(f"Document {document_id} v{version} failed: {message}", extra=log_extra)
            else:
                logger.exception(f"Unexpected error processing document {document_id} v{version}")
            return self._fail(document, message)

        if not self.store.replace_fragments_and_complete(document_id, version, fragments):
            logger.info(
                f"Document {document_id} v{version} superseded by a newer version, discarding",
                extra=log_extra,
            )
            return IngestionResult(
                document_id=document_id,
                version=version,
                status=self._current_status(document_id),
                fragments_skipped=skipped,
                stale=True,
            )

        self._documents_processed += 1
        self._fragments_created += len(fragments)
        self._fragments_skipped += skipped

        log_extra["duration"] = round(time.time() - start, 3)
        logger.info(
            f"Document {document_id} v{version} completed: "
            f"{len(fragments)} fragments, {skipped} skipped",
            extra=log_extra,
        )
        return IngestionResult(
            document_id=document_id,
            version=version,
            status=DocumentStatus.COMPLETED,
            fragments_stored=len(fragments),
            fragments_skipped=skipped,
        )

    def _build_fragments(self, document: Document):
        text = self.extractor.extract(document.file_path, document.mime_type)
        if not text or not text.strip():
            raise ExtractionError("No text content extracted from document", document.file_path)

        chunks = self.chunker.chunk(text)
        logger.debug(f"Document {document.id}: {len(text)} chars, {len(chunks)} chunks")

        fragments: List[Fragment] = []
        skipped = 0
        for index, chunk in enumerate(chunks):
            try:
                result = self.embedder.embed(chunk)
            except EmbeddingError as e:
                skipped += 1
                logger.warning(f"Skipping chunk {index} of document {document.id}: {e.message}")
                continue

            fragments.append(Fragment(
                document_id=document.id,
                chunk_index=index,
                text=chunk,
                vector=result.embedding,
                document_version=document.version,
            ))

        if chunks and not fragments:
            raise EmbeddingError(f"All {len(chunks)} chunks failed to embed")

        return fragments, skipped

    def _fail(self, document: Document, message: str) -> IngestionResult:
        written = self.store.mark_failed(document.id, document.version, message)
        if written:
            self._documents_failed += 1
            status = DocumentStatus.FAILED
        else:
            logger.info(f"Document {document.id} v{document.version} superseded, failure not recorded")
            status = self._current_status(document.id)

        return IngestionResult(
            document_id=document.id,
            version=document.version,
            status=status,
            error=message,
            stale=not written,
        )

    def _current_status(self, document_id: str) -> DocumentStatus:
        current = self.store.get_document(document_id)
        return current.status if current else DocumentStatus.FAILED

    def prepare_reprocess(self, document_id: str) -> Document:
        """
        Reset a document for another run: pending, version + 1, error cleared.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.store.reset_for_reprocess(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        logger.info(f"Document {document_id} reset for reprocessing as v{document.version}")
        return document

    def reprocess_document(self, document_id: str) -> IngestionResult:
        """Bump the version and process synchronously."""
        self.prepare_reprocess(document_id)
        return self.process_document(document_id)

    @property
    def stats(self) -> Dict[str, float]:
        """Get ingestion statistics."""
        return {
            "documents_processed": self._documents_processed,
            "documents_failed": self._documents_failed,
            "fragments_created": self._fragments_created,
            "fragments_skipped": self._fragments_skipped,
            "embedding_tokens": self.embedder.total_tokens,
            "embedding_cost_usd": self.embedder.estimated_cost,
        }
