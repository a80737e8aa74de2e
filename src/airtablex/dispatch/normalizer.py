"""Envelope -> caller-facing value."""

from __future__ import annotations

from typing import Any

import orjson

from airtablex.contracts import Failure, Success


def _decode_body(text: str) -> Any:
    """JSON-decode a failure body if possible, else keep the text."""
    if not text:
        return None
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return text


def normalize(envelope: Success | Failure) -> Any:
    """
    Unwrap a Success to its body; map a Failure to an error mapping.

    The failure mapping carries the original request, the response head,
    the (decoded if possible) body, the rate-limit assessment made before
    sending and the timing of the call.
    """
    if isinstance(envelope, Success):
        return envelope.body

    return {
        "error": {
            "kind": envelope.failure_kind.value,
            "request": envelope.request.model_dump(mode="json"),
            "response": envelope.response_head.model_dump(mode="json"),
            "body": _decode_body(envelope.response_body),
            "rate_limit": envelope.rate_limit.model_dump(mode="json"),
            "start_time_ms": envelope.start_time_ms,
            "end_time_ms": envelope.end_time_ms,
            "duration_ms": envelope.duration_ms,
        }
    }


def is_failure(value: Any) -> bool:
    """Check if a normalized value is a failure mapping."""
    if not isinstance(value, dict) or set(value) != {"error"}:
        return False
    error = value["error"]
    return isinstance(error, dict) and "request" in error and "rate_limit" in error
