"""
Governance Module
=================

Gates applied to every chat turn, in order:
- CostKillController: kill switch and daily spend ceiling
- ContractEnforcer: forbidden / allowed topics
- ModeGate: evidence sufficiency per operating mode

and the DecisionLogger that records every outcome.
"""

from .models import (
    BlockCode,
    ChatAllowedMetadata,
    ChatBlockedMetadata,
    Decision,
    DecisionLogEntry,
    DecisionMetadata,
    DocumentChatMetadata,
    GovernanceResult,
    parse_metadata,
)
from .contract import ContractEnforcer
from .mode_gate import ModeGate
from .cost_control import CostKillController, SpendRecord
from .decision_log import DecisionLogger, truncate_text

__all__ = [
    "BlockCode",
    "ChatAllowedMetadata",
    "ChatBlockedMetadata",
    "Decision",
    "DecisionLogEntry",
    "DecisionMetadata",
    "DocumentChatMetadata",
    "GovernanceResult",
    "parse_metadata",
    "ContractEnforcer",
    "ModeGate",
    "CostKillController",
    "SpendRecord",
    "DecisionLogger",
    "truncate_text",
]
