"""Tests for logging configuration module.

Verifies that logging configuration:
1. Drops credentials (BLOCKED_FIELDS)
2. Reduces URLs to paths and redacts record contents
3. Produces valid JSON output
"""

from __future__ import annotations

import io
import json
import logging
import os
from unittest import mock

import pytest

from airtablex.config import API_KEY_ENV_VAR
from airtablex.logging_config import (
    BLOCKED_FIELDS,
    REDACTED_FIELDS,
    JsonFormatter,
    SimpleFormatter,
    _filter_log_record,
    _normalize_url,
    _sanitize_text,
    get_logger,
    setup_logging,
)

PAT = "pat" + "A" * 14 + ".0123456789abcdef0123456789abcdef"


def make_record(
    msg: str = "test", level: int = logging.INFO, name: str = "test"
) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestBlockedFields:
    """Test that credential fields are blocked."""

    def test_blocked_fields_cover_credentials(self) -> None:
        assert "api_key" in BLOCKED_FIELDS
        assert "token" in BLOCKED_FIELDS
        assert "authorization" in BLOCKED_FIELDS

    def test_filter_removes_api_key(self) -> None:
        filtered = _filter_log_record({"api_key": PAT, "identity": "usrABC"})
        assert "api_key" not in filtered
        assert filtered["identity"] == "usrABC"

    def test_filter_removes_partial_matches(self) -> None:
        """Fields containing blocked words should be removed."""
        record = {
            "access_token": "value",
            "credential_hash": "value",
            "Authorization": "Bearer x",
            "user_email": "a@example.com",
            "status": 429,
        }
        filtered = _filter_log_record(record)
        assert filtered == {"status": 429}


class TestSanitizeText:
    """Test free-text scrubbing."""

    def test_url_query_string_removed(self) -> None:
        text = "GET https://api.airtable.com/v0/appA/Tasks?filterByFormula=secret failed"
        assert _sanitize_text(text) == "GET /v0/appA/Tasks failed"

    def test_personal_access_token_redacted(self) -> None:
        result = _sanitize_text(f"token {PAT} rejected")
        assert PAT not in result
        assert "[TOKEN]" in result

    def test_legacy_api_key_redacted(self) -> None:
        result = _sanitize_text("using keyABCDEFGHIJKLMN now")
        assert result == "using [API_KEY] now"

    def test_bearer_token_redacted(self) -> None:
        result = _sanitize_text("header Bearer abc.def-123")
        assert "abc.def-123" not in result

    def test_email_redacted(self) -> None:
        assert _sanitize_text("owner jane@example.com") == "owner [EMAIL]"

    def test_env_secret_value_redacted(self) -> None:
        """Values of AIRTABLE_API_KEY are scrubbed whatever their format."""
        with mock.patch.dict(os.environ, {API_KEY_ENV_VAR: "custom-secret-value"}):
            result = _sanitize_text("sent custom-secret-value upstream")
        assert result == "sent [REDACTED] upstream"

    def test_empty_string_unchanged(self) -> None:
        assert _sanitize_text("") == ""

    def test_safe_text_unchanged(self) -> None:
        assert _sanitize_text("Rate limit hit, cooling off") == "Rate limit hit, cooling off"


class TestHighCardinalityFields:
    """URLs and record contents never reach the logs."""

    def test_url_normalized_to_endpoint(self) -> None:
        filtered = _filter_log_record({"url": "https://api.airtable.com/v0/appA/Tasks?offset=x"})
        assert "url" not in filtered
        assert filtered["endpoint"] == "/v0/appA/Tasks"

    def test_normalize_url(self) -> None:
        assert _normalize_url("https://api.airtable.com/v0/meta/whoami?x=1") == "/v0/meta/whoami"
        assert _normalize_url("https://api.airtable.com") == "/"

    @pytest.mark.parametrize("key", sorted(REDACTED_FIELDS))
    def test_payload_fields_redacted(self, key: str) -> None:
        filtered = _filter_log_record({key: {"Name": "private"}})
        assert filtered[key] == REDACTED_FIELDS[key]


class TestFilterLogRecord:
    def test_safe_fields_preserved(self) -> None:
        record = {"identity": "usrABC", "status": 422, "wait_ms": 200, "eligible": True}
        assert _filter_log_record(record) == record

    def test_list_capped_at_10(self) -> None:
        filtered = _filter_log_record({"ids": list(range(25))})
        assert filtered["ids"] == "[list:25 items]"

    def test_nested_dict_filtered(self) -> None:
        filtered = _filter_log_record({"config": {"timeout_ms": 5, "api_key": PAT}})
        assert filtered["config"] == {"timeout_ms": 5}

    def test_depth_limit(self) -> None:
        filtered = _filter_log_record({"a": {"b": {"c": {"d": {"e": 1}}}}})
        assert filtered["a"]["b"]["c"]["d"] == {"_truncated": "max depth exceeded"}


class TestJsonFormatter:
    """Test the JSON log formatter."""

    def test_contains_required_fields(self) -> None:
        parsed = json.loads(JsonFormatter().format(make_record("hello", name="mylogger")))
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "mylogger"
        assert parsed["msg"] == "hello"
        assert "ts" in parsed

    def test_warning_includes_location(self) -> None:
        parsed = json.loads(JsonFormatter().format(make_record(level=logging.WARNING)))
        assert parsed["file"] == "test.py"
        assert parsed["line"] == 10

    def test_extra_fields_filtered(self) -> None:
        record = make_record()
        record.api_key = PAT
        record.identity = "usrABC"
        record.url = "https://api.airtable.com/v0/appA/Tasks?pageSize=10"
        parsed = json.loads(JsonFormatter().format(record))
        assert "api_key" not in parsed
        assert parsed["identity"] == "usrABC"
        assert parsed["endpoint"] == "/v0/appA/Tasks"

    def test_message_sanitized(self) -> None:
        parsed = json.loads(JsonFormatter().format(make_record(f"bad token {PAT}")))
        assert PAT not in parsed["msg"]


class TestSimpleFormatter:
    def test_basic_format(self) -> None:
        output = SimpleFormatter().format(make_record("hello"))
        assert "INFO" in output
        assert "hello" in output

    def test_extra_fields_appended(self) -> None:
        record = make_record("message")
        record.wait_ms = 200
        assert "wait_ms=200" in SimpleFormatter().format(record)


class TestSetupLogging:
    def test_setup_logging_json(self) -> None:
        stream = io.StringIO()
        setup_logging(json_format=True, stream=stream)

        get_logger("test_json").info("test message", extra={"identity": "usrABC"})

        parsed = json.loads(stream.getvalue().strip())
        assert parsed["msg"] == "test message"
        assert parsed["identity"] == "usrABC"

    def test_setup_logging_level(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.WARNING, json_format=False, stream=stream)

        logger = get_logger("test_level")
        logger.info("info message")
        logger.warning("warning message")

        output = stream.getvalue()
        assert "info message" not in output
        assert "warning message" in output
