"""
HTTP transport collaborator.

The dispatcher never opens connections itself; it hands a RequestSpec to a
Transport and gets a RawResponse back. Connection-level problems (DNS,
refused connections, timeouts) surface as TransportFault.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import aiohttp

if TYPE_CHECKING:
    from multidict import CIMultiDictProxy

    from airtablex.contracts import RequestSpec

logger = logging.getLogger(__name__)


class TransportFault(Exception):
    """Raised when no HTTP response could be obtained."""

    def __init__(self, message: str, method: str = "", endpoint: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.endpoint = endpoint


@dataclass(frozen=True)
class RawResponse:
    """
    Undecoded HTTP response.

    Attributes:
        status: HTTP status code.
        headers: Response headers.
        body: Raw body bytes.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def _join_headers(headers: CIMultiDictProxy[str]) -> dict[str, str]:
    """Flatten response headers, joining repeated names with ", "."""
    joined: dict[str, str] = {}
    for name in headers:
        if name not in joined:
            joined[name] = ", ".join(headers.getall(name))
    return joined


class Transport(Protocol):
    """Sends one HTTP request per call."""

    async def send(self, request: RequestSpec) -> RawResponse:
        """Send the request and return the raw response."""
        ...

    async def close(self) -> None:
        """Release any resources held by the transport."""
        ...


class AiohttpTransport:
    """
    Default transport built on aiohttp.

    The ClientSession is created lazily and can be injected for testing.
    """

    def __init__(
        self,
        timeout_ms: int = 30000,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def send(self, request: RequestSpec) -> RawResponse:
        """
        Issue a single HTTP request.

        Args:
            request: Fully-formed request.

        Returns:
            RawResponse for any HTTP status.

        Raises:
            TransportFault: On network errors or timeout.
        """
        headers = dict(request.headers)
        data = request.encode_body()
        if data is not None:
            headers.setdefault("Content-Type", "application/json")

        try:
            session = await self._get_session()
            async with session.request(
                request.method.value,
                request.url,
                params=list(request.params) or None,
                headers=headers,
                data=data,
            ) as response:
                body = await response.read()
                return RawResponse(
                    status=response.status,
                    headers=_join_headers(response.headers),
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Transport fault",
                extra={
                    "method": request.method.value,
                    "endpoint": request.endpoint,
                    "error": str(e),
                },
            )
            raise TransportFault(
                f"{request.method.value} {request.endpoint} failed: {e}",
                method=request.method.value,
                endpoint=request.endpoint,
            ) from e
