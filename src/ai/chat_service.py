"""
Chat Service
============

Governed chat turn:

    authorize (kill switch, daily cost)
      -> topic contract
      -> retrieval (when RAG is enabled)
      -> mode gate
      -> completion
      -> spend recording, message persistence
      -> decision log

A governance block is a normal response with `blocked=True`; every block and
every answer is written to the decision log. Only validation errors and
completion provider failures are raised.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.errors import AgentNotFoundError, ValidationError
from ..governance import (
    BlockCode,
    ChatAllowedMetadata,
    ChatBlockedMetadata,
    ContractEnforcer,
    CostKillController,
    Decision,
    DecisionLogger,
    DocumentChatMetadata,
    GovernanceResult,
    ModeGate,
)
from ..rag.models import Agent, AgentMode, ChatMessage, Evidence, RetrievalResult
from ..rag.retriever import RAGRetriever
from .providers import ProviderResolver

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
NO_RESPONSE = "No response generated."

CONTEXT_SECTION = (
    "\n\n## Knowledge Base Context\n"
    "Use the following information to answer the user's question. "
    "Always cite your sources by mentioning the document name.\n\n"
)
DOCUMENT_SECTION = "\n\n## Uploaded Document Content\n"

MODE_INSTRUCTIONS = {
    AgentMode.INTERNAL: (
        "\n\nIMPORTANT: You must ONLY answer based on the provided context. "
        "If the context does not contain relevant information, say so clearly."
    ),
    AgentMode.HYBRID: (
        "\n\nPrefer using information from the provided context when available, "
        "but you may supplement with your general knowledge when appropriate."
    ),
}

BLOCK_RESPONSES = {
    BlockCode.KILL_SWITCH: "This agent is currently disabled. Please contact an administrator.",
    BlockCode.COST_LIMIT: "This agent has reached its daily usage limit. Please try again tomorrow.",
    BlockCode.FORBIDDEN_TOPIC: "I cannot respond to this request as it falls outside my allowed scope.",
    BlockCode.TOPIC_NOT_ALLOWED: "I cannot respond to this request as it falls outside my allowed scope.",
    BlockCode.NO_EVIDENCE: (
        "I cannot answer this question as I don't have sufficient information in my knowledge base."
    ),
    BlockCode.INSUFFICIENT_CONFIDENCE: (
        "I cannot answer this question as I don't have sufficient information in my knowledge base."
    ),
}


@dataclass
class ChatResponse:
    """Result of a chat turn, blocked or answered."""
    response: str
    conversation_id: str
    tokens_used: int = 0
    latency_ms: int = 0
    evidence: List[Evidence] = field(default_factory=list)
    blocked: bool = False
    block_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "conversation_id": self.conversation_id,
            "tokens_used": self.tokens_used,
            "latency_ms": self.latency_ms,
            "evidence": [e.to_dict() for e in self.evidence],
            "blocked": self.blocked,
            "block_reason": self.block_reason,
        }


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class ChatService:
    """
    Orchestrates governed chat turns for a tenant's agents.

    Every collaborator is passed in; `build_services` in the API layer wires
    the production set.
    """

    def __init__(
        self,
        store,
        retriever: RAGRetriever,
        providers: ProviderResolver,
        cost_controller: Optional[CostKillController] = None,
        contract: Optional[ContractEnforcer] = None,
        mode_gate: Optional[ModeGate] = None,
        decision_logger: Optional[DecisionLogger] = None,
        default_model: str = "gpt-4o",
        default_temperature: float = 0.7,
        max_tokens: int = 2000,
        history_limit: int = 20,
        document_context_chars: int = 10000,
    ):
        self.store = store
        self.retriever = retriever
        self.providers = providers
        self.cost_controller = cost_controller or CostKillController(store)
        self.contract = contract or ContractEnforcer()
        self.mode_gate = mode_gate or ModeGate()
        self.decision_logger = decision_logger or DecisionLogger(store)

        self.default_model = default_model
        self.default_temperature = default_temperature
        self.max_tokens = max_tokens
        self.history_limit = history_limit
        self.document_context_chars = document_context_chars

    # =========================================================================
    # Entry points
    # =========================================================================

    def chat(
        self,
        message: str,
        agent_id: str,
        user_id: str,
        tenant_id: str,
        conversation_id: Optional[str] = None,
    ) -> ChatResponse:
        """
        Run one governed chat turn.

        Raises:
            ValidationError: Blank message
            AgentNotFoundError: Unknown or inactive agent
            CompletionProviderError: Completion call failed
        """
        start = time.time()
        self._require_text(message, "Message")
        agent = self._load_agent(agent_id, tenant_id)
        conv_id = conversation_id or str(uuid.uuid4())

        gate = self.cost_controller.authorize(agent)
        if gate.blocked:
            return self._blocked("chat", gate, agent, user_id, message, conv_id, start)

        gate = self.contract.check(message, agent)
        if gate.blocked:
            return self._blocked("chat", gate, agent, user_id, message, conv_id, start)

        retrieval = RetrievalResult()
        if agent.enable_rag:
            retrieval = self.retriever.retrieve(message, agent)

        gate = self.mode_gate.check(agent.mode, retrieval.evidence)
        if gate.blocked:
            return self._blocked(
                "chat", gate, agent, user_id, message, conv_id, start,
                evidence_count=len(retrieval.evidence),
            )

        messages = [{"role": "system", "content": self.build_system_prompt(agent, retrieval.context)}]
        if conversation_id:
            messages.extend(self.store.get_conversation_history(
                tenant_id, conversation_id, self.history_limit
            ))
        messages.append({"role": "user", "content": message})

        model, completion = self._complete(agent, messages)
        response_text = completion.text or NO_RESPONSE
        tokens = completion.tokens_used

        spend = self.cost_controller.record_spend(agent, tokens)
        latency_ms = _elapsed_ms(start)

        self.store.save_chat_message(ChatMessage(
            tenant_id=tenant_id,
            user_id=user_id,
            agent_id=agent.id,
            conversation_id=conv_id,
            role="user",
            content=message,
        ))
        self.store.save_chat_message(ChatMessage(
            tenant_id=tenant_id,
            user_id=user_id,
            agent_id=agent.id,
            conversation_id=conv_id,
            role="assistant",
            content=response_text,
            tokens_used=tokens,
            latency_ms=latency_ms,
            evidence=retrieval.evidence,
        ))

        self.decision_logger.record(
            tenant_id, user_id, agent.id,
            action="chat",
            decision=Decision.ALLOWED,
            reason=f"Response generated with {len(retrieval.evidence)} evidence sources",
            input_preview=message,
            output_preview=response_text,
            metadata=ChatAllowedMetadata(
                tokens_used=tokens,
                evidence_count=len(retrieval.evidence),
                mode=agent.mode.value,
                model=model,
                latency_ms=latency_ms,
                conversation_id=conv_id,
                cost_usd=spend.amount,
            ),
        )

        logger.info(
            f"Chat turn answered: {tokens} tokens, {len(retrieval.evidence)} evidence, {latency_ms}ms",
            extra={"tenant_id": tenant_id, "agent_id": agent.id, "conversation_id": conv_id},
        )

        return ChatResponse(
            response=response_text,
            conversation_id=conv_id,
            tokens_used=tokens,
            latency_ms=latency_ms,
            evidence=retrieval.evidence,
        )

    def retrieve_context(
        self,
        query: str,
        agent_id: str,
        tenant_id: str,
        top_k: Optional[int] = None,
    ) -> RetrievalResult:
        """Retrieval for an agent without a chat turn (debugging, previews)."""
        self._require_text(query, "Query")
        agent = self._load_agent(agent_id, tenant_id)
        return self.retriever.retrieve(query, agent, top_k)

    def chat_with_document(
        self,
        message: str,
        document_content: str,
        agent_id: str,
        user_id: str,
        tenant_id: str,
    ) -> ChatResponse:
        """
        One-shot chat over an uploaded document's text.

        The document is placed in the system prompt instead of being
        retrieved; nothing is persisted except spend and the decision log.
        """
        start = time.time()
        self._require_text(message, "Message")
        agent = self._load_agent(agent_id, tenant_id)
        conv_id = str(uuid.uuid4())
        action = "chat_with_document"

        gate = self.cost_controller.authorize(agent)
        if gate.blocked:
            return self._blocked(action, gate, agent, user_id, message, conv_id, start)

        gate = self.contract.check(message, agent)
        if gate.blocked:
            return self._blocked(action, gate, agent, user_id, message, conv_id, start)

        content = document_content or ""
        excerpt = content[:self.document_context_chars]
        system_prompt = (agent.system_prompt or DEFAULT_SYSTEM_PROMPT) + DOCUMENT_SECTION + excerpt

        model, completion = self._complete(agent, [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": message},
        ])
        response_text = completion.text or NO_RESPONSE
        tokens = completion.tokens_used

        spend = self.cost_controller.record_spend(agent, tokens)
        latency_ms = _elapsed_ms(start)

        self.decision_logger.record(
            tenant_id, user_id, agent.id,
            action=action,
            decision=Decision.ALLOWED,
            reason="Response generated from uploaded document",
            input_preview=message,
            output_preview=response_text,
            metadata=DocumentChatMetadata(
                tokens_used=tokens,
                document_chars=len(excerpt),
                latency_ms=latency_ms,
                cost_usd=spend.amount,
            ),
        )

        preview = content[:500] + ("..." if len(content) > 500 else "")
        return ChatResponse(
            response=response_text,
            conversation_id=conv_id,
            tokens_used=tokens,
            latency_ms=latency_ms,
            evidence=[Evidence(
                document_id="uploaded",
                document_name="Uploaded Document",
                document_version=1,
                chunk_index=0,
                chunk_text=preview,
                similarity_score=1.0,
            )],
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def build_system_prompt(self, agent: Agent, context: str) -> str:
        prompt = agent.system_prompt or DEFAULT_SYSTEM_PROMPT
        if context:
            prompt += CONTEXT_SECTION + context
        prompt += MODE_INSTRUCTIONS.get(agent.mode, "")
        return prompt

    def _require_text(self, value: Optional[str], label: str):
        if not value or not value.strip():
            raise ValidationError(f"{label} is required")

    def _load_agent(self, agent_id: str, tenant_id: str) -> Agent:
        agent = self.store.get_agent(agent_id, tenant_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def _complete(self, agent: Agent, messages: List[Dict[str, str]]):
        model = agent.model or self.default_model
        temperature = agent.temperature if agent.temperature is not None else self.default_temperature
        client = self.providers.for_tenant(agent.tenant_id)
        completion = client.complete(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
        return model, completion

    def _blocked(
        self,
        action: str,
        gate: GovernanceResult,
        agent: Agent,
        user_id: str,
        message: str,
        conversation_id: str,
        start: float,
        evidence_count: int = 0,
    ) -> ChatResponse:
        fields = {}
        if gate.code == BlockCode.COST_LIMIT:
            fields = {
                "cost_used_today": agent.cost_used_today,
                "cost_limit_daily": agent.cost_limit_daily,
            }
        metadata = ChatBlockedMetadata(
            check=gate.code,
            mode=agent.mode.value,
            evidence_count=evidence_count,
            conversation_id=conversation_id,
            **fields,
        )

        self.decision_logger.record(
            agent.tenant_id, user_id, agent.id,
            action=action,
            decision=Decision.BLOCKED,
            reason=gate.reason,
            input_preview=message,
            metadata=metadata,
        )

        logger.info(
            f"Chat turn blocked ({gate.code.value}): {gate.reason}",
            extra={
                "tenant_id": agent.tenant_id,
                "agent_id": agent.id,
                "conversation_id": conversation_id,
                "decision": Decision.BLOCKED.value,
            },
        )

        return ChatResponse(
            response=BLOCK_RESPONSES[gate.code],
            conversation_id=conversation_id,
            latency_ms=_elapsed_ms(start),
            blocked=True,
            block_reason=gate.reason,
        )
