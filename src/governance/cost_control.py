"""
Cost / Kill Controller
======================

Gate evaluated before any external call, and the spend recorder run after a
successful completion.

The spend update is a single increment-and-clamp in the store, so concurrent
turns on one agent cannot overwrite each other's spend. Overshoot is bounded:
the counter never rises above max(limit, value before the update).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..rag.models import Agent
from .models import BlockCode, GovernanceResult

logger = logging.getLogger(__name__)


@dataclass
class SpendRecord:
    """Spend recorded for one turn."""
    agent_id: str
    tokens: int
    amount: float
    cost_used_today: Optional[float]


class CostKillController:
    """
    Args:
        store: RAGStore holding the agent counters
        cost_per_1k_tokens: USD per 1000 tokens used for the estimate
    """

    def __init__(self, store, cost_per_1k_tokens: float = 0.01):
        if cost_per_1k_tokens < 0:
            raise ValueError("cost_per_1k_tokens must be >= 0")
        self.store = store
        self.cost_per_1k_tokens = cost_per_1k_tokens

    def authorize(self, agent: Agent) -> GovernanceResult:
        if agent.kill_switch:
            return GovernanceResult.block("Agent kill switch is enabled", BlockCode.KILL_SWITCH)

        if agent.cost_used_today >= agent.cost_limit_daily:
            return GovernanceResult.block("Daily cost limit exceeded", BlockCode.COST_LIMIT)

        return GovernanceResult.allow()

    def estimate_cost(self, tokens: int) -> float:
        """Monotonic in tokens; negative counts are treated as zero."""
        return max(tokens, 0) / 1000 * self.cost_per_1k_tokens

    def record_spend(self, agent: Agent, tokens: int) -> SpendRecord:
        amount = self.estimate_cost(tokens)
        new_total = self.store.increment_agent_cost(agent.id, amount)

        if new_total is None:
            logger.warning(f"Spend not recorded, agent {agent.id} no longer exists")
        else:
            logger.debug(f"Agent {agent.id} spend +${amount:.6f} -> ${new_total:.6f}")

        return SpendRecord(
            agent_id=agent.id,
            tokens=tokens,
            amount=amount,
            cost_used_today=new_total,
        )
