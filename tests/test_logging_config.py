"""Tests for structured logging configuration."""

import json
import logging
import sys

import pytest

from rotator.logging_config import (
    REDACTED,
    JSONFormatter,
    LogContext,
    LogRecord,
    StructuredLogger,
    TextFormatter,
    configure_logging,
    get_logger,
    is_sensitive_field,
    redact_fields,
)


def make_record(name="rotator.rotation", level=logging.INFO, msg="Rotating", exc_info=None, **fields):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    if fields:
        record.structured_fields = fields
    return record


class TestLogRecord:
    """Test LogRecord serialization."""

    def test_record_with_fields(self):
        """Test custom fields are merged into the dict."""
        record = LogRecord(
            timestamp="2025-01-01T00:00:00Z",
            level="DEBUG",
            logger="rotator.backends.vault",
            message="Vault request",
            fields={"method": "GET"},
        )
        d = record.to_dict()
        assert d["method"] == "GET"
        assert d["msg"] == "Vault request"
        assert "secret_path" not in d

    def test_record_with_rotation_context(self):
        """Test secret path and backend are serialized."""
        record = LogRecord(
            timestamp="2025-01-01T00:00:00Z",
            level="INFO",
            logger="rotator.rotation",
            message="Rotation complete",
            secret_path="myapp/db",
            backend="HashiCorp Vault",
        )
        parsed = json.loads(record.to_json())
        assert parsed["secret_path"] == "myapp/db"
        assert parsed["backend"] == "HashiCorp Vault"

    def test_to_text(self):
        """Test text format."""
        record = LogRecord(
            timestamp="2025-01-01 00:00:00",
            level="WARNING",
            logger="rotation",
            message="Skipping secret",
            fields={"path": "p/x"},
            secret_path="p/x",
        )
        text = record.to_text()
        assert "[WARNING]" in text
        assert "[p/x]" in text
        assert "path=p/x" in text


class TestRedaction:
    """Test masking of credential-bearing fields."""

    @pytest.mark.parametrize(
        "name",
        ["password", "admin_password", "db_passwd", "api_token", "client_secret",
         "auth_header", "Authorization", "new_value"],
    )
    def test_sensitive_names(self, name):
        assert is_sensitive_field(name)

    @pytest.mark.parametrize(
        "name",
        ["key", "keys", "secret_path", "path", "identity", "token_count", "raw", "error"],
    )
    def test_ordinary_names(self, name):
        assert not is_sensitive_field(name)

    def test_redact_fields(self):
        fields = {"key": "password", "password": "hunter2", "api_token": "", "path": "app/db"}
        assert redact_fields(fields) == {
            "key": "password",
            "password": REDACTED,
            "api_token": "",
            "path": "app/db",
        }

    def test_json_output_masks_values(self):
        """Test a password field never reaches JSON output."""
        output = JSONFormatter().format(make_record(password="Sup3rS3cret", key="password"))
        parsed = json.loads(output)
        assert "Sup3rS3cret" not in output
        assert parsed["password"] == REDACTED
        assert parsed["key"] == "password"

    def test_text_output_masks_values(self):
        """Test a token field never reaches text output."""
        output = TextFormatter().format(make_record(vault_token="s.abcdef", identity="app"))
        assert "s.abcdef" not in output
        assert f"vault_token={REDACTED}" in output
        assert "identity=app" in output

    def test_logged_password_masked_end_to_end(self, caplog):
        """Test a field passed to the logger is masked by the formatter."""
        logger = get_logger("rotator.redaction")
        with caplog.at_level(logging.INFO, logger="rotator.redaction"):
            logger.info("Generated credential", new_value="Zq8!pR2x")
        assert "Zq8!pR2x" not in JSONFormatter().format(caplog.records[-1])


class TestJSONFormatter:
    """Test JSON log formatter."""

    def test_format_basic(self):
        """Test basic JSON formatting."""
        parsed = json.loads(JSONFormatter().format(make_record()))
        assert parsed["level"] == "INFO"
        assert parsed["msg"] == "Rotating"
        assert parsed["logger"] == "rotator.rotation"

    def test_format_with_structured_fields(self):
        """Test JSON formatting with structured fields."""
        parsed = json.loads(JSONFormatter().format(make_record(key="password", length=32)))
        assert parsed["key"] == "password"
        assert parsed["length"] == 32

    def test_format_picks_up_context(self):
        """Test context fields land in the record."""
        with LogContext(secret_path="app/db", backend="File Store"):
            parsed = json.loads(JSONFormatter().format(make_record()))
        assert parsed["secret_path"] == "app/db"
        assert parsed["backend"] == "File Store"

    def test_format_with_exception(self):
        """Test JSON formatting with exception."""
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(JSONFormatter().format(make_record(level=logging.ERROR, exc_info=exc_info)))
        assert parsed["exception"]["type"] == "ValueError"
        assert "Test error" in parsed["exception"]["message"]


class TestTextFormatter:
    """Test text log formatter."""

    def test_format_basic(self):
        """Test basic text formatting uses the short logger name."""
        output = TextFormatter().format(make_record(name="rotator.backends.vault"))
        assert "[INFO]" in output
        assert "[vault]" in output
        assert "Rotating" in output

    def test_format_with_fields(self):
        assert "due=3" in TextFormatter().format(make_record(level=logging.DEBUG, due=3))


class TestStructuredLogger:
    """Test StructuredLogger wrapper."""

    def test_fields_reach_handlers(self, caplog):
        """Test keyword fields are attached to the stdlib record."""
        logger = StructuredLogger("rotator.test")
        with caplog.at_level(logging.INFO, logger="rotator.test"):
            logger.info("Wrote secret", path="app/db")
        assert caplog.records[-1].structured_fields == {"path": "app/db"}

    def test_disabled_level_is_skipped(self, caplog):
        """Test nothing is emitted below the logger level."""
        logger = StructuredLogger("rotator.quiet")
        with caplog.at_level(logging.WARNING, logger="rotator.quiet"):
            logger.debug("hidden")
        assert not [r for r in caplog.records if r.name == "rotator.quiet"]

    def test_error_with_exc_info(self, caplog):
        logger = StructuredLogger("rotator.test")
        with caplog.at_level(logging.ERROR, logger="rotator.test"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                logger.error("Rotation failed", exc_info=True, path="p/x")
        assert caplog.records[-1].exc_info is not None


class TestLogContext:
    """Test LogContext context manager."""

    def test_context_is_removed_on_exit(self):
        with LogContext(secret_path="a/b"):
            inside = json.loads(JSONFormatter().format(make_record()))
        outside = json.loads(JSONFormatter().format(make_record()))
        assert inside["secret_path"] == "a/b"
        assert "secret_path" not in outside

    def test_nested_contexts_merge(self):
        with LogContext(backend="AWS Secrets Manager"):
            with LogContext(secret_path="x"):
                inner = json.loads(JSONFormatter().format(make_record()))
            outer = json.loads(JSONFormatter().format(make_record()))
        assert inner["backend"] == "AWS Secrets Manager"
        assert inner["secret_path"] == "x"
        assert outer["backend"] == "AWS Secrets Manager"
        assert "secret_path" not in outer


class TestGetLogger:
    """Test get_logger factory function."""

    def test_caches_loggers(self):
        assert get_logger("rotator.cached") is get_logger("rotator.cached")
        assert isinstance(get_logger("rotator.cached"), StructuredLogger)


class TestConfigureLogging:
    """Test logging setup."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_output(self):
        configure_logging(level="DEBUG", json_output=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.handlers[0].stream is sys.stderr

    def test_text_output_and_noisy_loggers(self):
        configure_logging(level="INFO", json_output=False)
        assert isinstance(logging.getLogger().handlers[0].formatter, TextFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_format_from_environment(self, monkeypatch):
        monkeypatch.setenv("ROTATOR_LOG_FORMAT", "json")
        monkeypatch.setenv("ROTATOR_LOG_LEVEL", "warning")
        configure_logging()
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_log_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ROTATOR_LOG_FILE", raising=False)
        log_file = tmp_path / "rotator.log"
        configure_logging(level="INFO", json_output=True, log_file=str(log_file))
        handlers = logging.getLogger().handlers
        assert len(handlers) == 2
        assert handlers[1].baseFilename == str(log_file)
        handlers[1].close()
