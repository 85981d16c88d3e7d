"""
Governance Models
=================

Outcomes of the governance checks and the schema of decision log records.

Decision metadata is validated with pydantic: each (action, decision) pair
has one model with a closed set of keys, so audit records stay
machine-checkable.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Type, Tuple

from pydantic import BaseModel


class Decision(str, Enum):
    """Outcome recorded in the decision log."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    MODIFIED = "modified"


class BlockCode(str, Enum):
    """Which gate blocked a turn."""
    KILL_SWITCH = "kill_switch"
    COST_LIMIT = "cost_limit"
    FORBIDDEN_TOPIC = "forbidden_topic"
    TOPIC_NOT_ALLOWED = "topic_not_allowed"
    NO_EVIDENCE = "no_evidence"
    INSUFFICIENT_CONFIDENCE = "insufficient_confidence"


@dataclass(frozen=True)
class GovernanceResult:
    """Result of a single governance gate. A block is an outcome, not an error."""
    allowed: bool
    reason: Optional[str] = None
    code: Optional[BlockCode] = None

    @classmethod
    def allow(cls) -> "GovernanceResult":
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str, code: BlockCode) -> "GovernanceResult":
        return cls(allowed=False, reason=reason, code=code)

    @property
    def blocked(self) -> bool:
        return not self.allowed


# =============================================================================
# DECISION METADATA
# =============================================================================

class DecisionMetadata(BaseModel):
    """Base for decision metadata. Unknown keys are rejected."""

    class Config:
        extra = "forbid"
        use_enum_values = True


class ChatAllowedMetadata(DecisionMetadata):
    """A chat turn that produced a response."""
    tokens_used: int
    evidence_count: int
    mode: str
    model: str
    latency_ms: int
    conversation_id: str
    cost_usd: float


class ChatBlockedMetadata(DecisionMetadata):
    """A chat turn stopped by a gate."""
    check: BlockCode
    mode: str
    evidence_count: int = 0
    conversation_id: Optional[str] = None
    cost_used_today: Optional[float] = None
    cost_limit_daily: Optional[float] = None


class DocumentChatMetadata(DecisionMetadata):
    """A one-shot chat over an uploaded document."""
    tokens_used: int
    document_chars: int
    latency_ms: int
    cost_usd: float


METADATA_SCHEMAS: Dict[Tuple[str, str], Type[DecisionMetadata]] = {
    ("chat", Decision.ALLOWED.value): ChatAllowedMetadata,
    ("chat", Decision.BLOCKED.value): ChatBlockedMetadata,
    ("chat_with_document", Decision.ALLOWED.value): DocumentChatMetadata,
    ("chat_with_document", Decision.BLOCKED.value): ChatBlockedMetadata,
}


def parse_metadata(action: str, decision: str, data: Dict[str, Any]) -> Optional[DecisionMetadata]:
    """
    Validate stored metadata against the schema for its action.

    Returns None when the pair has no registered schema.

    Raises:
        pydantic.ValidationError: If the data does not match the schema
    """
    schema = METADATA_SCHEMAS.get((action, Decision(decision).value))
    if schema is None:
        return None
    return schema(**data)


@dataclass(frozen=True)
class DecisionLogEntry:
    """One append-only decision log record."""
    tenant_id: str
    user_id: str
    agent_id: str
    action: str
    decision: Decision
    reason: str
    input_preview: str
    output_preview: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    created_at: Optional[datetime] = None
