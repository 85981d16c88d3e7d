"""
Decision Logger
===============

Append-only audit trail of governance outcomes.

Writing is best-effort. A failure is logged here and never raised: the audit
trail must not take the chat path down with it.
"""

import logging
from typing import Any, Dict, Optional, Union

from ..core.errors import DecisionLogError
from .models import Decision, DecisionLogEntry, DecisionMetadata, parse_metadata

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


def truncate_text(text: Optional[str], max_length: int = PREVIEW_LENGTH) -> Optional[str]:
    """Cut to max_length characters, the last three replaced by '...'."""
    if text is None or len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


class DecisionLogger:
    """Writes DecisionLogEntry records through the store."""

    def __init__(self, store):
        self.store = store
        self.failures = 0

    def record(
        self,
        tenant_id: str,
        user_id: str,
        agent_id: str,
        action: str,
        decision: Decision,
        reason: str,
        input_preview: str,
        output_preview: Optional[str] = None,
        metadata: Optional[Union[DecisionMetadata, Dict[str, Any]]] = None,
    ) -> None:
        try:
            entry = DecisionLogEntry(
                tenant_id=tenant_id,
                user_id=user_id,
                agent_id=agent_id,
                action=action,
                decision=Decision(decision),
                reason=reason,
                input_preview=truncate_text(input_preview),
                output_preview=truncate_text(output_preview),
                metadata=self._metadata(action, decision, metadata),
            )
            self.store.append_decision_log(entry)
        except Exception as e:
            self.failures += 1
            error = e if isinstance(e, DecisionLogError) else DecisionLogError(str(e))
            logger.error(
                f"Failed to write decision log ({action}/{decision}): {error.message}",
                extra={"tenant_id": tenant_id, "agent_id": agent_id},
            )
            return

        logger.info(
            f"Decision {entry.decision.value} for {action}: {reason}",
            extra={"tenant_id": tenant_id, "agent_id": agent_id, "decision": entry.decision.value},
        )

    def _metadata(self, action, decision, metadata) -> Dict[str, Any]:
        if metadata is None:
            return {}
        if isinstance(metadata, DecisionMetadata):
            return metadata.model_dump()
        model = parse_metadata(action, decision, metadata)
        if model is None:
            raise DecisionLogError(f"No metadata schema for {action}/{Decision(decision).value}")
        return model.model_dump()
