"""
Request and response contracts for the dispatcher.

Every dispatched request produces exactly one ResponseEnvelope:
- Success: decoded JSON body of a 200 response
- Failure: everything needed to log, retry or debug the call without re-issuing it
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal
from urllib.parse import urlencode, urlsplit

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class HttpMethod(str, Enum):
    """HTTP methods used by the API."""

    GET = "GET"
    POST = "POST"
    PATCH = "PATCH"
    PUT = "PUT"
    DELETE = "DELETE"


class FailureKind(str, Enum):
    """Classification of a failed request."""

    RATE_LIMITED = "RATE_LIMITED"  # 429 - cool-off applied
    REQUEST_FAILED = "REQUEST_FAILED"  # Any other non-200 status
    MALFORMED_BODY = "MALFORMED_BODY"  # 200 but body is not JSON


class RequestSpec(BaseModel):
    """
    A fully-formed HTTP request.

    Attributes:
        method: HTTP method.
        url: Target URL without query string.
        params: Ordered query parameters (repeated keys allowed).
        headers: Request headers.
        body: Structured JSON payload, or None.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: HttpMethod = Field(default=HttpMethod.GET, description="HTTP method")
    url: str = Field(..., min_length=1, description="Target URL")
    params: tuple[tuple[str, str], ...] = Field(default=(), description="Query parameters")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: Any = Field(default=None, description="JSON payload")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Query strings belong in params."""
        if "?" in v:
            raise ValueError("url must not contain a query string; use params")
        return v

    @property
    def endpoint(self) -> str:
        """URL path only (safe for logs and metrics)."""
        return urlsplit(self.url).path or "/"

    @property
    def full_url(self) -> str:
        """URL with encoded query string."""
        if not self.params:
            return self.url
        return f"{self.url}?{urlencode(self.params)}"

    def with_param(self, key: str, value: str) -> RequestSpec:
        """
        Return a copy with one query parameter set.

        An existing parameter with the same key is replaced in place; every
        other parameter keeps its value and position.
        """
        params: list[tuple[str, str]] = []
        replaced = False
        for k, v in self.params:
            if k == key:
                if not replaced:
                    params.append((key, value))
                    replaced = True
                continue
            params.append((k, v))
        if not replaced:
            params.append((key, value))
        return self.model_copy(update={"params": tuple(params)})

    def encode_body(self) -> bytes | None:
        """Serialize body to JSON bytes using orjson."""
        if self.body is None:
            return None
        return orjson.dumps(self.body)


class ResponseHead(BaseModel):
    """Status line and headers of an HTTP response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: int = Field(..., ge=100, le=599, description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")


class RateLimitAssessment(BaseModel):
    """
    Throttling decision made before a request was sent.

    Attributes:
        identity: Throttling partition key.
        eligible: True if the request was sent without waiting.
        reason: Why the request was (or was not) eligible.
        next_allowed_ms: Cooldown observed before sending (None if unset).
        waited_ms: Time suspended before sending.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    identity: str = Field(..., min_length=1)
    eligible: bool
    reason: str
    next_allowed_ms: int | None = None
    waited_ms: int = Field(default=0, ge=0)


class Success(BaseModel):
    """Successful dispatch: decoded JSON body."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["success"] = "success"
    body: Any = None

    @property
    def ok(self) -> bool:
        return True


class Failure(BaseModel):
    """Failed dispatch with full request/response context."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["failure"] = "failure"
    failure_kind: FailureKind
    request: RequestSpec
    response_head: ResponseHead
    response_body: str = ""
    rate_limit: RateLimitAssessment
    start_time_ms: int = Field(..., ge=0)
    end_time_ms: int = Field(..., ge=0)
    duration_ms: int = Field(..., ge=0)

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_rate_limited(self) -> bool:
        """Check if the provider rejected this request with a 429."""
        return self.failure_kind == FailureKind.RATE_LIMITED


ResponseEnvelope = Annotated[Success | Failure, Field(discriminator="kind")]

_ENVELOPE_ADAPTER: TypeAdapter[Success | Failure] = TypeAdapter(ResponseEnvelope)


def envelope_to_json(envelope: Success | Failure) -> bytes:
    """Serialize an envelope to JSON bytes using orjson."""
    return orjson.dumps(envelope.model_dump(mode="json"))


def envelope_from_json(data: bytes | str) -> Success | Failure:
    """Deserialize an envelope, dispatching on its kind."""
    if isinstance(data, str):
        data = data.encode()
    return _ENVELOPE_ADAPTER.validate_python(orjson.loads(data))
