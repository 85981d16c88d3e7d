"""
Contract Enforcer
=================

Topic policy of an agent: forbidden topics always win over allowed topics.
"""

import logging
from typing import List

from ..rag.models import Agent
from .models import BlockCode, GovernanceResult

logger = logging.getLogger(__name__)


def _topics(values: List[str]) -> List[str]:
    # Blank entries are ignored; the rest match as stored, padding included
    return [t for t in values or [] if t and t.strip()]


class ContractEnforcer:
    """Case-insensitive substring matching of the message against the agent's topics."""

    def check(self, message: str, agent: Agent) -> GovernanceResult:
        text = message.lower()

        for topic in _topics(agent.forbidden_topics):
            if topic.lower() in text:
                logger.info(f"Agent {agent.id}: forbidden topic '{topic}'")
                return GovernanceResult.block(
                    f"Message contains forbidden topic: {topic}",
                    BlockCode.FORBIDDEN_TOPIC,
                )

        allowed = _topics(agent.allowed_topics)
        if allowed and not any(topic.lower() in text for topic in allowed):
            logger.info(f"Agent {agent.id}: message outside allowed topics")
            return GovernanceResult.block(
                "Message does not match any allowed topics",
                BlockCode.TOPIC_NOT_ALLOWED,
            )

        return GovernanceResult.allow()
