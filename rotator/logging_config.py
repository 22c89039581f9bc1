"""
Logging for the secret rotator.

Log methods take keyword fields that are rendered next to the message,
either as one JSON object per line or as ``key=value`` text. Lines emitted
inside a ``LogContext`` carry the secret path and backend being rotated.

Fields whose name marks them as credential material (``password``,
``admin_password``, ``api_token``, ``new_value`` ...) are replaced with
``[REDACTED]`` before rendering. Key names are not secret: ``key="password"``
is logged as is.

    configure_logging(level="INFO", json_output=False)
    logger = get_logger(__name__)
    with LogContext(secret_path="myapp/db", backend="HashiCorp Vault"):
        logger.info("Secret written", key="password")
"""

import json
import logging
import logging.handlers
import os
import re
import sys
import threading
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

REDACTED = "[REDACTED]"

# Matches "password", "db_password", "api_token", "new_value"; not "secret_path" or "key"
_SENSITIVE_FIELD = re.compile(
    r"(^|_)(password|passwd|secret|token|authorization|auth_header|credential|new_value)$",
    re.IGNORECASE,
)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

_log_context: ContextVar[Dict[str, Any]] = ContextVar("rotator_log_context", default={})


def is_sensitive_field(name: str) -> bool:
    return bool(_SENSITIVE_FIELD.search(name))


def redact_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``fields`` with credential-bearing values masked."""
    return {
        name: REDACTED if is_sensitive_field(name) and value not in (None, "") else value
        for name, value in fields.items()
    }


@dataclass
class LogRecord:
    """One rendered log line before serialization."""
    timestamp: str
    level: str
    logger: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)
    secret_path: Optional[str] = None
    backend: Optional[str] = None
    exception: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ts": self.timestamp,
            "level": self.level,
            "logger": self.logger,
            "msg": self.message,
        }
        if self.secret_path:
            result["secret_path"] = self.secret_path
        if self.backend:
            result["backend"] = self.backend
        result.update(self.fields)
        if self.exception:
            result["exception"] = self.exception
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        parts = [self.timestamp, f"[{self.level}]", f"[{self.logger}]"]
        if self.secret_path:
            parts.append(f"[{self.secret_path}]")
        parts.append(self.message)
        parts.extend(f"{k}={v}" for k, v in self.fields.items())
        text = " ".join(parts)
        if self.exception:
            text += "\n" + self.exception["traceback"]
        return text


class _RotatorFormatter(logging.Formatter):
    """Builds a redacted ``LogRecord`` from a stdlib record."""

    timestamp_format = "%Y-%m-%dT%H:%M:%S.%fZ"

    def logger_name(self, record: logging.LogRecord) -> str:
        return record.name

    def build(self, record: logging.LogRecord) -> LogRecord:
        ctx = _log_context.get()
        log_record = LogRecord(
            timestamp=datetime.now(timezone.utc).strftime(self.timestamp_format),
            level=record.levelname,
            logger=self.logger_name(record),
            message=record.getMessage(),
            fields=redact_fields(getattr(record, "structured_fields", {})),
            secret_path=ctx.get("secret_path"),
            backend=ctx.get("backend"),
        )
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_record.exception = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": self.formatException(record.exc_info),
            }
        return log_record


class JSONFormatter(_RotatorFormatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        return self.build(record).to_json()


class TextFormatter(_RotatorFormatter):
    """Human-readable lines with the short module name."""

    timestamp_format = "%Y-%m-%d %H:%M:%S"

    def logger_name(self, record: logging.LogRecord) -> str:
        return record.name.rsplit(".", 1)[-1]

    def format(self, record: logging.LogRecord) -> str:
        return self.build(record).to_text()


class StructuredLogger:
    """Logger whose methods take structured keyword fields."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, exc_info=exc_info, extra={"structured_fields": fields})

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)


class LogContext:
    """
    Tag every line logged inside the block with rotation context.

    Nested contexts merge; leaving a block restores the outer fields.
    """

    def __init__(self, secret_path: Optional[str] = None, backend: Optional[str] = None):
        self._fields = {k: v for k, v in (("secret_path", secret_path), ("backend", backend)) if v}
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _log_context.reset(self._token)


_loggers: Dict[str, StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str) -> StructuredLogger:
    """Return the cached StructuredLogger for ``name``."""
    with _loggers_lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name)
        return _loggers[name]


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
    log_file: str | None = None,
) -> None:
    """
    Install rotator handlers on the root logger.

    Arguments left as None fall back to ``ROTATOR_LOG_LEVEL``,
    ``ROTATOR_LOG_FORMAT`` ("json" or "text") and ``ROTATOR_LOG_FILE``.
    Console output goes to stderr; stdout is reserved for command output.
    A log file is size-rotated per ``ROTATOR_LOG_MAX_BYTES`` and
    ``ROTATOR_LOG_BACKUP_COUNT``.
    """
    level_name = (level or os.environ.get("ROTATOR_LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if json_output is None:
        json_output = os.environ.get("ROTATOR_LOG_FORMAT", "text").lower() == "json"
    file_path = log_file or os.environ.get("ROTATOR_LOG_FILE", "")

    formatter = JSONFormatter() if json_output else TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if file_path:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                file_path,
                maxBytes=int(os.environ.get("ROTATOR_LOG_MAX_BYTES", DEFAULT_MAX_BYTES)),
                backupCount=int(os.environ.get("ROTATOR_LOG_BACKUP_COUNT", DEFAULT_BACKUP_COUNT)),
            )
        )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root.addHandler(handler)
    root.setLevel(log_level)
    logging.getLogger("rotator").setLevel(log_level)

    # botocore and aiohttp are chatty at DEBUG and may echo request bodies
    for noisy in ("botocore", "boto3", "urllib3", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))
