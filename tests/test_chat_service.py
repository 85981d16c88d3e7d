"""
Tests for the governed chat turn.

Wired against InMemoryStore with fake embedder and completion client
(see conftest.py).

Usage:
    pytest tests/test_chat_service.py -v
"""

import pytest

from src.ai.chat_service import BLOCK_RESPONSES, DEFAULT_SYSTEM_PROMPT
from src.core.errors import AgentNotFoundError, CompletionProviderError, ValidationError
from src.governance import BlockCode, Decision
from src.rag.models import AgentMode, ChatMessage
from tests.conftest import (
    OTHER_TENANT,
    TENANT,
    USER,
    add_agent,
    add_collection,
    add_completed_document,
    vector_with_similarity,
)


def seed_knowledge(store, agent_id="agent-1", score=0.9):
    add_collection(store, agent_id=agent_id)
    add_completed_document(
        store, "doc-1", [("Refunds are accepted within 30 days.", vector_with_similarity(score))],
        name="policy.pdf",
    )


class TestBlockedTurns:
    """Gates stop the turn before any provider call."""

    def test_kill_switch(self, chat_service, store, llm, embedder):
        add_agent(store, kill_switch=True)

        result = chat_service.chat("refund please", "agent-1", USER, TENANT)

        assert result.blocked
        assert result.block_reason == "Agent kill switch is enabled"
        assert result.response == BLOCK_RESPONSES[BlockCode.KILL_SWITCH]
        assert result.tokens_used == 0
        assert llm.calls == []
        assert embedder.calls == []
        assert store.messages == []

        entry = store.list_decision_logs(TENANT)[0]
        assert entry.decision == Decision.BLOCKED
        assert entry.metadata["check"] == "kill_switch"

    def test_cost_limit_reached(self, chat_service, store, llm):
        add_agent(store, cost_limit_daily=5.0, cost_used_today=5.0)

        result = chat_service.chat("hello", "agent-1", USER, TENANT)

        assert result.blocked
        assert result.block_reason == "Daily cost limit exceeded"
        assert llm.calls == []
        metadata = store.list_decision_logs(TENANT)[0].metadata
        assert metadata["cost_used_today"] == 5.0
        assert metadata["cost_limit_daily"] == 5.0

    def test_forbidden_topic_beats_allowed(self, chat_service, store, llm):
        add_agent(store, allowed_topics=["refund"], forbidden_topics=["lawsuit"])

        result = chat_service.chat("refund for my lawsuit", "agent-1", USER, TENANT)

        assert result.blocked
        assert result.block_reason == "Message contains forbidden topic: lawsuit"
        assert llm.calls == []

    def test_internal_mode_weak_evidence(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.INTERNAL)
        seed_knowledge(store, score=0.2)

        result = chat_service.chat("refund rules?", "agent-1", USER, TENANT)

        assert result.blocked
        assert result.block_reason.startswith("Insufficient evidence")
        assert llm.calls == []

    def test_internal_mode_below_confidence(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.INTERNAL)
        seed_knowledge(store, score=0.4)

        result = chat_service.chat("refund rules?", "agent-1", USER, TENANT)

        assert result.blocked
        assert result.block_reason.startswith("Insufficient confidence")
        entry = store.list_decision_logs(TENANT)[0]
        assert entry.metadata["check"] == "insufficient_confidence"
        assert entry.metadata["evidence_count"] == 1


class TestAnsweredTurns:
    """Retrieval, completion, persistence and audit."""

    def test_internal_mode_with_strong_evidence(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.INTERNAL, system_prompt="You answer refund questions.")
        seed_knowledge(store, score=0.6)

        result = chat_service.chat("refund rules?", "agent-1", USER, TENANT)

        assert not result.blocked
        assert result.response == "Here is the answer."
        assert result.tokens_used == 1000
        assert [e.document_name for e in result.evidence] == ["policy.pdf"]
        assert result.evidence[0].similarity_score == pytest.approx(0.6)

        system = llm.calls[0]["messages"][0]
        assert system["role"] == "system"
        assert system["content"].startswith("You answer refund questions.")
        assert "[Source: policy.pdf v1]" in system["content"]
        assert "You must ONLY answer based on the provided context" in system["content"]

    def test_free_mode_without_rag(self, chat_service, store, llm, embedder):
        add_agent(store, mode=AgentMode.FREE, enable_rag=False)

        result = chat_service.chat("hello", "agent-1", USER, TENANT)

        assert not result.blocked
        assert result.evidence == []
        assert embedder.calls == []
        assert llm.calls[0]["messages"] == [
            {"role": "system", "content": DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": "hello"},
        ]

    def test_model_and_temperature(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.FREE, model="gpt-4o-mini", temperature=0.0)

        chat_service.chat("hello", "agent-1", USER, TENANT)

        assert llm.calls[0]["model"] == "gpt-4o-mini"
        assert llm.calls[0]["temperature"] == 0.0

    def test_default_model_and_temperature(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.FREE)

        chat_service.chat("hello", "agent-1", USER, TENANT)

        assert llm.calls[0]["model"] == "gpt-4o"
        assert llm.calls[0]["temperature"] == 0.7
        assert llm.calls[0]["max_tokens"] == 2000

    def test_spend_recorded(self, chat_service, store):
        add_agent(store, mode=AgentMode.FREE, cost_used_today=1.0)

        chat_service.chat("hello", "agent-1", USER, TENANT)

        assert store.get_agent("agent-1", TENANT).cost_used_today == pytest.approx(1.01)

    def test_messages_persisted_and_logged(self, chat_service, store):
        add_agent(store, mode=AgentMode.HYBRID)
        seed_knowledge(store)

        result = chat_service.chat("refund rules?", "agent-1", USER, TENANT)

        assert [(m.role, m.content) for m in store.messages] == [
            ("user", "refund rules?"),
            ("assistant", "Here is the answer."),
        ]
        assert all(m.conversation_id == result.conversation_id for m in store.messages)
        assert len(store.messages[1].evidence) == 1

        entry = store.list_decision_logs(TENANT)[0]
        assert entry.decision == Decision.ALLOWED
        assert entry.reason == "Response generated with 1 evidence sources"
        assert entry.metadata["cost_usd"] == pytest.approx(0.01)
        assert entry.metadata["mode"] == "HYBRID"

    def test_history_is_latest_messages_in_order(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.FREE)
        chat_service.history_limit = 3
        for i in range(5):
            store.save_chat_message(ChatMessage(
                tenant_id=TENANT, user_id=USER, agent_id="agent-1",
                conversation_id="conv-1", role="user" if i % 2 == 0 else "assistant",
                content=f"m{i}",
            ))

        result = chat_service.chat("next", "agent-1", USER, TENANT, conversation_id="conv-1")

        messages = llm.calls[0]["messages"]
        assert [m["content"] for m in messages[1:]] == ["m2", "m3", "m4", "next"]
        assert result.conversation_id == "conv-1"

    def test_history_scoped_to_tenant(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.FREE)
        store.save_chat_message(ChatMessage(
            tenant_id=OTHER_TENANT, user_id=USER, agent_id="agent-x",
            conversation_id="conv-1", role="user", content="secret",
        ))

        chat_service.chat("hello", "agent-1", USER, TENANT, conversation_id="conv-1")

        assert "secret" not in [m["content"] for m in llm.calls[0]["messages"]]

    def test_new_conversation_id_generated(self, chat_service, store):
        add_agent(store, mode=AgentMode.FREE)
        first = chat_service.chat("hello", "agent-1", USER, TENANT)
        second = chat_service.chat("hello", "agent-1", USER, TENANT)
        assert first.conversation_id != second.conversation_id

    def test_empty_completion_replaced(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.FREE)
        llm.text = ""
        assert chat_service.chat("hello", "agent-1", USER, TENANT).response == "No response generated."


class TestErrors:
    """Raised errors."""

    def test_blank_message(self, chat_service, store):
        add_agent(store)
        with pytest.raises(ValidationError) as exc:
            chat_service.chat("   ", "agent-1", USER, TENANT)
        assert exc.value.message == "Message is required"

    def test_unknown_agent(self, chat_service):
        with pytest.raises(AgentNotFoundError):
            chat_service.chat("hello", "missing", USER, TENANT)

    def test_agent_of_other_tenant(self, chat_service, store):
        add_agent(store, tenant_id=OTHER_TENANT)
        with pytest.raises(AgentNotFoundError):
            chat_service.chat("hello", "agent-1", USER, TENANT)

    def test_inactive_agent(self, chat_service, store):
        add_agent(store, is_active=False)
        with pytest.raises(AgentNotFoundError):
            chat_service.chat("hello", "agent-1", USER, TENANT)

    def test_provider_failure_propagates(self, chat_service, store, llm):
        add_agent(store, mode=AgentMode.FREE)
        llm.fail = True

        with pytest.raises(CompletionProviderError):
            chat_service.chat("hello", "agent-1", USER, TENANT)

        assert store.messages == []
        assert store.get_agent("agent-1", TENANT).cost_used_today == 0.0


class TestRetrieveContext:
    """Retrieval without a turn."""

    def test_returns_evidence(self, chat_service, store):
        add_agent(store)
        seed_knowledge(store)
        result = chat_service.retrieve_context("refund", "agent-1", TENANT)
        assert len(result.evidence) == 1

    def test_blank_query(self, chat_service, store):
        add_agent(store)
        with pytest.raises(ValidationError):
            chat_service.retrieve_context("", "agent-1", TENANT)


class TestChatWithDocument:
    """One-shot document chat."""

    def test_document_in_prompt(self, chat_service, store, llm):
        add_agent(store)
        content = "Clause 1. " * 100

        result = chat_service.chat_with_document("Summarize", content, "agent-1", USER, TENANT)

        assert not result.blocked
        assert "## Uploaded Document Content" in llm.calls[0]["messages"][0]["content"]
        assert result.evidence[0].document_id == "uploaded"
        assert result.evidence[0].similarity_score == 1.0
        assert result.evidence[0].chunk_text == content[:500] + "..."
        assert store.messages == []
        assert store.list_decision_logs(TENANT)[0].action == "chat_with_document"

    def test_document_truncated(self, chat_service, store, llm):
        add_agent(store)
        chat_service.document_context_chars = 50

        chat_service.chat_with_document("Summarize", "x" * 200, "agent-1", USER, TENANT)

        assert llm.calls[0]["messages"][0]["content"].endswith("x" * 50)
        assert store.list_decision_logs(TENANT)[0].metadata["document_chars"] == 50

    def test_governed_like_chat(self, chat_service, store, llm):
        add_agent(store, kill_switch=True)

        result = chat_service.chat_with_document("Summarize", "text", "agent-1", USER, TENANT)

        assert result.blocked
        assert llm.calls == []

    def test_forbidden_topic(self, chat_service, store, llm):
        add_agent(store, forbidden_topics=["salary"])
        result = chat_service.chat_with_document("salary table?", "text", "agent-1", USER, TENANT)
        assert result.blocked
        assert llm.calls == []
