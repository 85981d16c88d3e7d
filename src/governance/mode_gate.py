"""
Mode Gate
=========

Evidence requirements per operating mode. FREE and HYBRID always pass;
INTERNAL refuses to answer without evidence strong enough to ground it.
"""

from typing import List

from ..rag.models import AgentMode, Evidence
from .models import BlockCode, GovernanceResult


class ModeGate:
    """
    Args:
        confidence_floor: Minimum best similarity for INTERNAL mode
    """

    def __init__(self, confidence_floor: float = 0.5):
        self.confidence_floor = confidence_floor

    def check(self, mode: AgentMode, evidence: List[Evidence]) -> GovernanceResult:
        if AgentMode(mode) != AgentMode.INTERNAL:
            return GovernanceResult.allow()

        if not evidence:
            return GovernanceResult.block(
                "Insufficient evidence: no relevant documents found for this query",
                BlockCode.NO_EVIDENCE,
            )

        best = max(e.similarity_score for e in evidence)
        if best < self.confidence_floor:
            return GovernanceResult.block(
                f"Insufficient confidence: best match {best:.2f} is below {self.confidence_floor:.2f}",
                BlockCode.INSUFFICIENT_CONFIDENCE,
            )

        return GovernanceResult.allow()
