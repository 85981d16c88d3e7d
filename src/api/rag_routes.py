"""
RAG API Routes
==============

Retrieval and document ingestion endpoints.

Ingestion is queued on the background worker; the request returns at once
with the document's status.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from ..core.errors import DocumentNotFoundError
from .models import DocumentTaskResponse, RetrieveRequest, RetrieveResponse
from .services import RAGServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["RAG"])


def get_services(request: Request) -> RAGServices:
    return request.app.state.services


# =============================================================================
# RETRIEVAL
# =============================================================================

@router.post("/rag/retrieve", response_model=RetrieveResponse)
def retrieve_context(request: RetrieveRequest, services: RAGServices = Depends(get_services)):
    """
    Retrieve context and evidence for an agent without running a chat turn.

    Useful for debugging what an agent would see.
    """
    result = services.chat.retrieve_context(
        query=request.query,
        agent_id=str(request.agent_id),
        tenant_id=str(request.tenant_id),
        top_k=request.top_k,
    )
    return RetrieveResponse(
        context=result.context,
        evidence=[e.to_dict() for e in result.evidence],
    )


# =============================================================================
# DOCUMENTS
# =============================================================================

@router.post("/documents/{document_id}/process", response_model=DocumentTaskResponse, status_code=202)
def process_document(document_id: UUID, services: RAGServices = Depends(get_services)):
    """Queue ingestion of the document's current version."""
    document_id = str(document_id)
    document = services.store.get_document(document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)

    queued = services.worker.submit(document_id)
    logger.info(f"Process requested for document {document_id} (queued={queued})")

    return DocumentTaskResponse(
        document_id=document_id,
        status=document.status.value,
        version=document.version,
        queued=queued,
    )


@router.post("/documents/{document_id}/reprocess", response_model=DocumentTaskResponse, status_code=202)
def reprocess_document(document_id: UUID, services: RAGServices = Depends(get_services)):
    """Bump the document's version, reset it to pending and queue it."""
    document_id = str(document_id)
    document = services.worker.reprocess(document_id)

    return DocumentTaskResponse(
        document_id=document_id,
        status=document.status.value,
        version=document.version,
        queued=True,
    )
