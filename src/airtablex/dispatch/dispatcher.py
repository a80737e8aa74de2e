"""
Rate-limited request dispatcher.

Per the Airtable rate limit documentation:
- 5 requests per second: space requests for one account by min_interval_ms
- On 429: wait cool_off_ms (30s) before the next request
- Never "fight" the limiter: one dispatch waits at most once, never retries

The cooldown is updated after every response, success or not. Transport
faults propagate without touching the cooldown since no response arrived.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import orjson

from airtablex.config import COOL_OFF_MS, MIN_INTERVAL_MS, RATE_LIMIT_STATUS, SUCCESS_STATUS
from airtablex.contracts import (
    Failure,
    FailureKind,
    RateLimitAssessment,
    ResponseHead,
    Success,
)
from airtablex.dispatch.transport import TransportFault

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from airtablex.contracts import RequestSpec
    from airtablex.dispatch.cooldown import CooldownStore
    from airtablex.dispatch.transport import RawResponse, Transport

logger = logging.getLogger(__name__)

REASON_NO_COOLDOWN = "no cooldown set"
REASON_ELAPSED = "cooldown already elapsed"
REASON_PENDING = "cooldown pending"


@dataclass
class DispatchMetrics:
    """Counters for dispatcher observability."""

    requests_sent: int = 0
    requests_delayed: int = 0  # Waited for a cooldown before sending
    requests_succeeded: int = 0
    requests_rate_limited: int = 0
    requests_failed: int = 0  # Non-429 failures
    transport_faults: int = 0

    total_wait_ms: int = 0
    max_wait_ms: int = 0


def assess(identity: str, next_allowed_ms: int | None, now_ms: int) -> RateLimitAssessment:
    """
    Decide whether a request may be sent now.

    Args:
        identity: Throttling partition key.
        next_allowed_ms: Recorded cooldown, or None.
        now_ms: Current time.

    Returns:
        RateLimitAssessment; waited_ms holds the required wait.
    """
    if next_allowed_ms is None:
        return RateLimitAssessment(identity=identity, eligible=True, reason=REASON_NO_COOLDOWN)
    if next_allowed_ms <= now_ms:
        return RateLimitAssessment(
            identity=identity,
            eligible=True,
            reason=REASON_ELAPSED,
            next_allowed_ms=next_allowed_ms,
        )
    return RateLimitAssessment(
        identity=identity,
        eligible=False,
        reason=REASON_PENDING,
        next_allowed_ms=next_allowed_ms,
        waited_ms=next_allowed_ms - now_ms,
    )


class RequestDispatcher:
    """
    Sends requests through a transport while honouring per-identity cooldowns.

    Concurrent dispatches for the same identity are serialized by the
    cooldown store; different identities never wait on each other.
    """

    def __init__(
        self,
        transport: Transport,
        cooldown_store: CooldownStore,
        *,
        min_interval_ms: int = MIN_INTERVAL_MS,
        cool_off_ms: int = COOL_OFF_MS,
        metrics: DispatchMetrics | None = None,
        _time_fn: Callable[[], int] | None = None,
        _sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            transport: HTTP collaborator.
            cooldown_store: Shared cooldown state.
            min_interval_ms: Spacing after a non-429 response.
            cool_off_ms: Spacing after a 429 response.
            metrics: Shared counters (created if not given).
            _time_fn: Clock in milliseconds, for deterministic testing.
            _sleep_fn: Async sleep in seconds, for deterministic testing.
        """
        self._transport = transport
        self._store = cooldown_store
        self._min_interval_ms = min_interval_ms
        self._cool_off_ms = cool_off_ms
        self.metrics = metrics or DispatchMetrics()
        self._time_fn = _time_fn
        self._sleep_fn = _sleep_fn or asyncio.sleep

    @property
    def cooldown_store(self) -> CooldownStore:
        return self._store

    def _now_ms(self) -> int:
        """Get current time in milliseconds."""
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    async def dispatch(self, identity: str, request: RequestSpec) -> Success | Failure:
        """
        Send one request for an identity.

        Args:
            identity: Throttling partition key.
            request: Fully-formed request.

        Returns:
            Success with the decoded body for a 200, Failure otherwise.

        Raises:
            TransportFault: If no response was received.
        """
        async with self._store.hold(identity):
            now_ms = self._now_ms()
            assessment = assess(identity, self._store.get_next_allowed(identity), now_ms)

            if not assessment.eligible:
                wait_ms = assessment.waited_ms
                logger.debug(
                    "Waiting for cooldown",
                    extra={"identity": identity, "wait_ms": wait_ms},
                )
                self.metrics.requests_delayed += 1
                self.metrics.total_wait_ms += wait_ms
                self.metrics.max_wait_ms = max(self.metrics.max_wait_ms, wait_ms)
                await self._sleep_fn(wait_ms / 1000)

            start_ms = self._now_ms()
            try:
                response = await self._transport.send(request)
            except TransportFault:
                self.metrics.transport_faults += 1
                raise
            end_ms = self._now_ms()
            self.metrics.requests_sent += 1

            if response.status == RATE_LIMIT_STATUS:
                self._store.set_next_allowed(identity, end_ms + self._cool_off_ms)
            else:
                self._store.set_next_allowed(identity, end_ms + self._min_interval_ms)

        return self._to_envelope(request, response, assessment, start_ms, end_ms)

    def _to_envelope(
        self,
        request: RequestSpec,
        response: RawResponse,
        assessment: RateLimitAssessment,
        start_ms: int,
        end_ms: int,
    ) -> Success | Failure:
        """Wrap a raw response in a Success or Failure envelope."""
        failure_kind: FailureKind | None = None

        if response.status == SUCCESS_STATUS:
            try:
                body = orjson.loads(response.body) if response.body else None
            except orjson.JSONDecodeError:
                failure_kind = FailureKind.MALFORMED_BODY
            else:
                self.metrics.requests_succeeded += 1
                return Success(body=body)
        elif response.status == RATE_LIMIT_STATUS:
            failure_kind = FailureKind.RATE_LIMITED
        else:
            failure_kind = FailureKind.REQUEST_FAILED

        if failure_kind == FailureKind.RATE_LIMITED:
            self.metrics.requests_rate_limited += 1
            logger.warning(
                "Rate limit hit, cooling off",
                extra={
                    "identity": assessment.identity,
                    "endpoint": request.endpoint,
                    "cool_off_ms": self._cool_off_ms,
                },
            )
        else:
            self.metrics.requests_failed += 1
            logger.info(
                "Request failed",
                extra={
                    "identity": assessment.identity,
                    "method": request.method.value,
                    "endpoint": request.endpoint,
                    "status": response.status,
                    "failure_kind": failure_kind.value,
                },
            )

        return Failure(
            failure_kind=failure_kind,
            request=request,
            response_head=ResponseHead(status=response.status, headers=dict(response.headers)),
            response_body=response.body.decode("utf-8", errors="replace"),
            rate_limit=assessment,
            start_time_ms=start_ms,
            end_time_ms=end_ms,
            duration_ms=max(0, end_ms - start_ms),
        )
