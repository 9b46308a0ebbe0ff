"""
Unit Tests for Logging Configuration
"""

import json
import logging
import logging.handlers

from rag_pipeline.infrastructure import JSONFormatter, setup_logging


class TestJSONFormatter:
    """Test cases for JSONFormatter class."""

    def _record(self, **extra):
        record = logging.LogRecord(
            "rag_pipeline.core.query", logging.INFO, __file__, 10, "Query %s done", ("q1",), None
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_core_fields(self):
        entry = json.loads(JSONFormatter().format(self._record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "rag_pipeline.core.query"
        assert entry["message"] == "Query q1 done"

    def test_extra_fields_included(self):
        entry = json.loads(
            JSONFormatter().format(self._record(query_id="query_1_ab", attempt=2, stage="retry"))
        )

        assert entry["query_id"] == "query_1_ab"
        assert entry["attempt"] == 2
        assert entry["stage"] == "retry"
        assert "args" not in entry


class TestSetupLogging:
    """Logging setup entry point."""

    def test_development_sets_level(self):
        setup_logging(level="warning", format_type="json")

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING

    def test_production_uses_structlog_formatter(self):
        import structlog

        setup_logging(level="INFO", environment="production")

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_file_rotation_settings_applied(self, tmp_path):
        setup_logging(
            level="INFO",
            log_file=str(tmp_path / "rag.log"),
            max_file_size=4096,
            backup_count=2,
        )

        [file_handler] = [
            handler
            for handler in logging.getLogger().handlers
            if isinstance(handler, logging.handlers.RotatingFileHandler)
        ]
        assert file_handler.maxBytes == 4096
        assert file_handler.backupCount == 2
