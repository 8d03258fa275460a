"""Tests for structured logging configuration."""

import json
import logging

import pytest

from usagegate.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_logger,
    get_logging_config,
    request_id_var,
    setup_logging,
    user_id_var,
)


def _make_record(msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        """Test basic JSON formatting."""
        data = json.loads(JSONFormatter().format(_make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        """Context fields are lifted to the top level."""
        record = _make_record("Usage reset")
        record.request_id = "req-1"
        record.user_id = "alice"
        record.storage = "memory"

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["user_id"] == "alice"
        assert data["storage"] == "memory"
        assert "extra" not in data

    def test_empty_context_fields_omitted(self):
        record = _make_record()
        record.request_id = None
        record.user_id = "-"

        data = json.loads(JSONFormatter().format(record))

        assert "request_id" not in data
        assert "user_id" not in data

    def test_json_format_with_extra_fields(self):
        """Test JSON formatting with extra custom fields."""
        record = _make_record()
        record.key = "quotas/alice.json"
        record.attempts = 3

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"]["key"] == "quotas/alice.json"
        assert data["extra"]["attempts"] == 3

    def test_json_format_with_exception(self):
        """Test JSON formatting with exception info."""
        import sys

        try:
            raise ValueError("Test error")
        except ValueError:
            record = _make_record("Error occurred", exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        exception_text = "".join(data["exception"])
        assert "ValueError" in exception_text
        assert "Test error" in exception_text


class TestContextFilter:
    """Test context filter for adding default fields."""

    def test_adds_default_fields(self):
        record = _make_record()

        assert ContextFilter().filter(record) is True
        for field in ["request_id", "user_id", "storage", "path", "method", "status_code"]:
            assert hasattr(record, field)

    def test_reads_request_context(self):
        request_token = request_id_var.set("req-42")
        user_token = user_id_var.set("alice")
        try:
            record = _make_record()
            ContextFilter().filter(record)
        finally:
            request_id_var.reset(request_token)
            user_id_var.reset(user_token)

        assert record.request_id == "req-42"
        assert record.user_id == "alice"

    def test_preserves_existing_values(self):
        record = _make_record()
        record.user_id = "explicit"
        record.storage = "durable"

        ContextFilter().filter(record)

        assert record.user_id == "explicit"
        assert record.storage == "durable"


class TestGetLoggingConfig:
    """Test logging configuration generation."""

    def test_default_text_format(self):
        config = get_logging_config("INFO", "text")

        assert "standard" in config["formatters"]
        assert "json" not in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "standard"

    def test_structured_format(self):
        config = get_logging_config("debug", "structured")

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert config["handlers"]["console"]["level"] == "DEBUG"

    def test_json_format(self):
        config = get_logging_config("WARNING", "JSON")

        assert "json" in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["usagegate"]["level"] == "WARNING"

    def test_falls_back_to_settings(self, monkeypatch):
        from usagegate.app.core.config import settings

        monkeypatch.setattr(settings, "log_format", "json")
        monkeypatch.setattr(settings, "log_level", "ERROR")

        config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["handlers"]["console"]["level"] == "ERROR"

    def test_context_filter_added(self):
        config = get_logging_config("INFO", "text")

        assert "context" in config["filters"]
        assert "context" in config["handlers"]["console"]["filters"]


class TestGetLogger:
    def test_get_logger_default_name(self):
        assert get_logger().name == "usagegate"

    def test_get_logger_custom_name(self):
        assert get_logger("custom.module").name == "custom.module"


class TestIntegration:
    """Integration tests for logging system."""

    def test_json_logging_output(self, capsys):
        setup_logging("INFO", "json")
        logger = get_logger("usagegate.integration")

        logger.info("Usage limit reached", extra={"user_id": "alice", "storage": "memory"})

        data = json.loads(capsys.readouterr().out.strip())
        assert data["level"] == "INFO"
        assert data["logger"] == "usagegate.integration"
        assert data["message"] == "Usage limit reached"
        assert data["user_id"] == "alice"
        assert data["storage"] == "memory"

    def test_third_party_loggers_quieted(self):
        setup_logging("DEBUG", "text")
        assert logging.getLogger("botocore").level == logging.WARNING
        assert logging.getLogger("boto3").level == logging.WARNING
