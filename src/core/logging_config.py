"""
Structured Logging Configuration
================================

Logging for the API, worker and CLI. Records carry the pipeline context
they were emitted under (tenant, agent, document, conversation), either
passed explicitly through `extra=` or bound for a block of work with
`log_context`:

    from src.core.logging_config import log_context, setup_logging

    setup_logging(json_output=True, log_file="logs/rag.log")

    with log_context(tenant_id=tenant_id, agent_id=agent_id):
        logger.info("Chat turn started")   # carries tenant_id and agent_id
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional


CONTEXT_FIELDS = ("tenant_id", "agent_id", "document_id", "conversation_id")
EXTRA_FIELDS = CONTEXT_FIELDS + ("decision", "duration")

_context: contextvars.ContextVar = contextvars.ContextVar("rag_log_context", default={})


@contextmanager
def log_context(**fields) -> Iterator[Dict[str, str]]:
    """
    Bind pipeline context to every record logged inside the block.

    Nested blocks add to the outer context; None values are dropped.
    Context is per thread and per asyncio task.
    """
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")

    bound = dict(_context.get())
    bound.update({k: str(v) for k, v in fields.items() if v is not None})
    token = _context.set(bound)
    try:
        yield bound
    finally:
        _context.reset(token)


def current_context() -> Dict[str, str]:
    return dict(_context.get())


class ContextFilter(logging.Filter):
    """Copies the bound context onto records. Explicit `extra=` values win."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

        {"ts": "2026-...", "level": "INFO", "logger": "src.rag.worker", "msg": "...",
         "tenant_id": "...", "document_id": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines with the bound context appended as key=value pairs."""

    def __init__(self):
        super().__init__(
            "%(asctime)s [%(levelname)-8s] %(name)-30s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        ]
        return f"{line} [{' '.join(pairs)}]" if pairs else line


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
):
    """
    Configure application logging.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON structured format
        log_file: Optional file path for log output (with rotation)
        max_bytes: Max file size before rotation
        backup_count: Number of rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    formatter = JSONFormatter() if json_output else ContextTextFormatter()
    context_filter = ContextFilter()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    # SDK and scheduler chatter
    for noisy in ("urllib3", "httpx", "openai", "anthropic", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root.info(
        "Logging configured: level=%s json=%s file=%s",
        level, json_output, log_file or "none",
    )
