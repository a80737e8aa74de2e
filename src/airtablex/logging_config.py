"""
Structured logging configuration for airtablex.

Log records never carry credentials or record contents:
- Secret fields (api_key, token, authorization, ...) are dropped
- URLs are reduced to their path; record payloads are redacted
- Access tokens, bearer tokens and emails are scrubbed from free text

Usage:
    from airtablex.logging_config import setup_logging, get_logger

    setup_logging()  # Call once at startup
    logger = get_logger(__name__)
    logger.info("message", extra={"key": "value"})
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from airtablex.config import REDACTED_ENV_VARS

_URL_PATTERN = re.compile(r"(https?://[^\s\"'<>]+)")

_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Personal access tokens: pat<14 chars>.<64 hex>
    (re.compile(r"\bpat[A-Za-z0-9]{14}\.[A-Za-z0-9]{16,}\b"), "[TOKEN]"),
    # Legacy API keys: key<14 chars>
    (re.compile(r"\bkey[A-Za-z0-9]{14}\b"), "[API_KEY]"),
    # Bearer tokens / Authorization headers
    (re.compile(r"\b(bearer)\s+[\w\-\.]+", re.I), "[TOKEN]"),
    (re.compile(r"(authorization)[=:]\s*['\"]?[\w\-\.\s]+['\"]?", re.I), "[AUTH]"),
    # Email addresses (collaborator fields, whoami)
    (re.compile(r"\b[\w\.-]+@[\w\.-]+\.\w+\b"), "[EMAIL]"),
]

# Fields that should NEVER appear in logs
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "api_key",
        "apikey",
        "secret",
        "token",
        "password",
        "authorization",
        "bearer",
        "credential",
        "email",
    }
)

# Fields carrying record contents or unbounded values
REDACTED_FIELDS: dict[str, str] = {
    "body": "[BODY]",
    "payload": "[PAYLOAD]",
    "records": "[RECORDS]",
    "fields": "[FIELDS]",
    "formula": "[FORMULA]",
    "filter_by_formula": "[FORMULA]",
    "params": "[PARAMS]",
    "headers": "[HEADERS]",
}

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _normalize_url(url: str) -> str:
    """Extract the path of a URL (drops host and query string)."""
    return urlsplit(url).path or "/"


def _sanitize_url_in_text(match: re.Match[str]) -> str:
    path = _normalize_url(match.group(1))
    return path if path != "/" else "[URL]"


def _env_secrets() -> list[str]:
    """Current values of secret env vars (short values are ignored)."""
    values = (os.environ.get(name, "") for name in REDACTED_ENV_VARS)
    return [value for value in values if len(value) >= 8]


def _sanitize_text(text: str) -> str:
    """Scrub URLs, tokens and emails from free-form text (msg, exc)."""
    if not text:
        return text

    result = _URL_PATTERN.sub(_sanitize_url_in_text, text)
    for secret in _env_secrets():
        result = result.replace(secret, "[REDACTED]")
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _filter_log_record(record: dict[str, Any], *, _depth: int = 0) -> dict[str, Any]:
    """
    Drop secrets and redact payloads from a log record's extra fields.

    Recurses into nested dicts up to depth 3.
    """
    if _depth > 3:
        return {"_truncated": "max depth exceeded"}

    filtered: dict[str, Any] = {}

    for key, value in record.items():
        key_lower = key.lower()

        if any(blocked in key_lower for blocked in BLOCKED_FIELDS):
            continue

        if key_lower == "url" and isinstance(value, str):
            filtered["endpoint"] = _normalize_url(value)
            continue

        if key_lower in REDACTED_FIELDS:
            filtered[key] = REDACTED_FIELDS[key_lower]
            continue

        if isinstance(value, (int, float, bool, type(None))):
            filtered[key] = value
        elif isinstance(value, str):
            filtered[key] = _sanitize_text(value)
        elif isinstance(value, (list, tuple)):
            filtered[key] = list(value) if len(value) <= 10 else f"[list:{len(value)} items]"
        elif isinstance(value, dict):
            filtered[key] = _filter_log_record(value, _depth=_depth + 1)
        else:
            filtered[key] = _sanitize_text(str(value))

    return filtered


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"ts":"2024-01-01T00:00:00.000+00:00","level":"INFO","logger":"module","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }

        if record.levelno >= logging.WARNING:
            log_dict["file"] = record.filename
            log_dict["line"] = record.lineno

        if record.exc_info:
            log_dict["exc"] = _sanitize_text(self.formatException(record.exc_info))

        extra = _extra_fields(record)
        if extra:
            log_dict.update(_filter_log_record(extra))

        return json.dumps(log_dict, default=str, ensure_ascii=False)


class SimpleFormatter(logging.Formatter):
    """Human-readable output for development and tests."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname:8s} {record.name}: {_sanitize_text(record.getMessage())}"

        extra = _extra_fields(record)
        if extra:
            filtered = _filter_log_record(extra)
            if filtered:
                base = f"{base} | " + " ".join(f"{k}={v}" for k, v in filtered.items())

        return base


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: Any = None,
) -> None:
    """
    Configure logging for an application using airtablex.

    Args:
        level: Log level (default INFO).
        json_format: Use JSON formatter (default True for production).
        stream: Output stream (default stderr).
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # aiohttp logs full URLs at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically get_logger(__name__))."""
    return logging.getLogger(name)
