"""Request/response contracts shared by the dispatcher and the API client."""

from airtablex.contracts.envelope import (
    Failure,
    FailureKind,
    HttpMethod,
    RateLimitAssessment,
    RequestSpec,
    ResponseEnvelope,
    ResponseHead,
    Success,
    envelope_from_json,
    envelope_to_json,
)

__all__ = [
    "Failure",
    "FailureKind",
    "HttpMethod",
    "RateLimitAssessment",
    "RequestSpec",
    "ResponseEnvelope",
    "ResponseHead",
    "Success",
    "envelope_from_json",
    "envelope_to_json",
]
