"""
Tests for settings and logging setup.

Usage:
    pytest tests/test_config.py -v
"""

import json
import logging
from unittest.mock import patch

import pytest

from src.core.config import DatabaseConfig, LLMConfig, RAGConfig, Settings, WorkerConfig
from src.core.logging_config import (
    ContextFilter,
    ContextTextFormatter,
    JSONFormatter,
    current_context,
    log_context,
    setup_logging,
)


class TestSettings:
    """Environment parsing and validation."""

    @patch.dict("os.environ", {}, clear=True)
    def test_defaults(self):
        settings = Settings()

        assert settings.rag.chunk_size == 500
        assert settings.rag.chunk_overlap == 100
        assert settings.rag.similarity_floor == 0.3
        assert settings.rag.internal_confidence_floor == 0.5
        assert settings.llm.default_model == "gpt-4o"
        assert settings.llm.history_limit == 20
        assert settings.worker.threads == 2
        assert settings.worker.stale_processing_seconds == 900
        assert not settings.is_production()

    @patch.dict("os.environ", {"CHUNK_SIZE": "800", "RAG_TOP_K": "8", "ENVIRONMENT": "prod"}, clear=True)
    def test_environment_overrides(self):
        settings = Settings()
        assert settings.rag.chunk_size == 800
        assert settings.rag.top_k == 8
        assert settings.is_production()

    @patch.dict("os.environ", {"CHUNK_SIZE": "lots"}, clear=True)
    def test_invalid_integer(self):
        with pytest.raises(ValueError):
            RAGConfig()

    def test_overlap_must_be_below_size(self):
        with pytest.raises(ValueError):
            RAGConfig(chunk_size=100, chunk_overlap=100)

    def test_negative_cost_rate(self):
        with pytest.raises(ValueError):
            LLMConfig(cost_per_1k_tokens=-0.5)

    def test_worker_threads(self):
        with pytest.raises(ValueError):
            WorkerConfig(threads=0)
        with pytest.raises(ValueError):
            WorkerConfig(stale_processing_seconds=-1)

    def test_database_url_wins(self):
        assert DatabaseConfig(url="postgresql://u@h/db").connection_dict == {"dsn": "postgresql://u@h/db"}

    def test_pool_bounds(self):
        with pytest.raises(ValueError):
            DatabaseConfig(pool_min_size=5, pool_max_size=2)


class TestLogging:
    """Formatter and handler setup."""

    def teardown_method(self):
        logging.getLogger().handlers.clear()

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("src.rag", logging.INFO, __file__, 1, "Retrieved %d", (3,), None)
        record.tenant_id = "tenant-1"
        record.duration = 0.25

        entry = json.loads(JSONFormatter().format(record))

        assert entry["msg"] == "Retrieved 3"
        assert entry["level"] == "INFO"
        assert entry["tenant_id"] == "tenant-1"
        assert entry["duration"] == 0.25
        assert "agent_id" not in entry

    def test_setup_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "rag.log"

        setup_logging(level="debug", json_output=True, log_file=str(log_file))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert all(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
        assert log_file.exists()

    def test_setup_attaches_context_filter(self):
        setup_logging()

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, ContextTextFormatter)
        assert any(isinstance(f, ContextFilter) for f in handler.filters)


def make_record(msg="Processing"):
    return logging.LogRecord("src.rag.worker", logging.INFO, __file__, 1, msg, (), None)


class TestLogContext:
    """Context bound around a block of work."""

    def test_nested_blocks_merge_and_reset(self):
        with log_context(tenant_id="tenant-1"):
            with log_context(document_id="doc-1", agent_id=None):
                assert current_context() == {"tenant_id": "tenant-1", "document_id": "doc-1"}
            assert current_context() == {"tenant_id": "tenant-1"}
        assert current_context() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            with log_context(user_secret="x"):
                pass

    def test_filter_copies_context(self):
        record = make_record()
        with log_context(tenant_id="tenant-1", document_id="doc-1"):
            assert ContextFilter().filter(record)

        entry = json.loads(JSONFormatter().format(record))
        assert entry["tenant_id"] == "tenant-1"
        assert entry["document_id"] == "doc-1"

    def test_explicit_extra_wins(self):
        record = make_record()
        record.document_id = "doc-explicit"
        with log_context(document_id="doc-bound"):
            ContextFilter().filter(record)

        assert record.document_id == "doc-explicit"

    def test_text_formatter_appends_context(self):
        record = make_record()
        with log_context(tenant_id="tenant-1"):
            ContextFilter().filter(record)

        line = ContextTextFormatter().format(record)
        assert line.endswith("| Processing [tenant_id=tenant-1]")

    def test_text_formatter_without_context(self):
        assert ContextTextFormatter().format(make_record()).endswith("| Processing")
