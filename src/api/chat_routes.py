"""
Chat API Routes
===============

Governed chat endpoints. A governance block comes back as 200 with
`blocked: true`; provider failures are 502.
"""

import logging
from fastapi import APIRouter, Depends

from ..core.logging_config import log_context
from .models import ChatRequest, ChatResponseModel, DocumentChatRequest
from .rag_routes import get_services
from .services import RAGServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post("", response_model=ChatResponseModel)
def chat(request: ChatRequest, services: RAGServices = Depends(get_services)):
    """Run one chat turn through the governance gates."""
    with log_context(tenant_id=request.tenant_id, agent_id=request.agent_id,
                     conversation_id=request.conversation_id):
        result = services.chat.chat(
            message=request.message,
            agent_id=str(request.agent_id),
            user_id=str(request.user_id),
            tenant_id=str(request.tenant_id),
            conversation_id=str(request.conversation_id) if request.conversation_id else None,
        )
    return result.to_dict()


@router.post("/document", response_model=ChatResponseModel)
def chat_with_document(request: DocumentChatRequest, services: RAGServices = Depends(get_services)):
    """Ask a question about an uploaded document without ingesting it."""
    with log_context(tenant_id=request.tenant_id, agent_id=request.agent_id):
        result = services.chat.chat_with_document(
            message=request.message,
            document_content=request.document_content,
            agent_id=str(request.agent_id),
            user_id=str(request.user_id),
            tenant_id=str(request.tenant_id),
        )
    return result.to_dict()
