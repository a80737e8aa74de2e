"""Tests for the aiohttp transport."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import orjson
import pytest
from multidict import CIMultiDict, CIMultiDictProxy

from airtablex.contracts import HttpMethod, RequestSpec
from airtablex.dispatch.transport import AiohttpTransport, TransportFault


class TestAiohttpTransport:
    """Tests for AiohttpTransport."""

    @pytest.fixture
    def transport(self) -> AiohttpTransport:
        return AiohttpTransport(timeout_ms=5000)

    @pytest.fixture
    def mock_response(self) -> MagicMock:
        """Create mock aiohttp response."""
        response = MagicMock()
        response.status = 200
        response.headers = CIMultiDictProxy(CIMultiDict({"Content-Type": "application/json"}))
        response.read = AsyncMock(return_value=b'{"records":[]}')
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        return response

    @pytest.mark.asyncio
    async def test_get_with_params(
        self,
        transport: AiohttpTransport,
        mock_response: MagicMock,
    ) -> None:
        request = RequestSpec(
            method=HttpMethod.GET,
            url="https://api.airtable.com/v0/appA/Tasks",
            params=(("fields[]", "Name"), ("fields[]", "Notes")),
            headers={"Authorization": "Bearer patTEST"},
        )

        with patch.object(
            aiohttp.ClientSession, "request", return_value=mock_response
        ) as mock_request:
            raw = await transport.send(request)

        assert raw.status == 200
        assert raw.body == b'{"records":[]}'
        assert raw.headers == {"Content-Type": "application/json"}

        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://api.airtable.com/v0/appA/Tasks")
        assert kwargs["params"] == [("fields[]", "Name"), ("fields[]", "Notes")]
        assert kwargs["data"] is None
        assert "Content-Type" not in kwargs["headers"]

        await transport.close()

    @pytest.mark.asyncio
    async def test_repeated_headers_joined(
        self,
        transport: AiohttpTransport,
        mock_response: MagicMock,
    ) -> None:
        mock_response.headers = CIMultiDictProxy(
            CIMultiDict(
                [
                    ("Content-Type", "application/json"),
                    ("Set-Cookie", "a=1"),
                    ("Set-Cookie", "b=2"),
                ]
            )
        )

        with patch.object(aiohttp.ClientSession, "request", return_value=mock_response):
            raw = await transport.send(RequestSpec(url="https://api.airtable.com/v0/appA/T"))

        assert raw.headers == {"Content-Type": "application/json", "Set-Cookie": "a=1, b=2"}

        await transport.close()

    @pytest.mark.asyncio
    async def test_post_encodes_json_body(
        self,
        transport: AiohttpTransport,
        mock_response: MagicMock,
    ) -> None:
        body = {"records": [{"fields": {"Name": "a"}}]}
        request = RequestSpec(
            method=HttpMethod.POST,
            url="https://api.airtable.com/v0/appA/Tasks",
            body=body,
        )

        with patch.object(
            aiohttp.ClientSession, "request", return_value=mock_response
        ) as mock_request:
            await transport.send(request)

        _, kwargs = mock_request.call_args
        assert orjson.loads(kwargs["data"]) == body
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert kwargs["params"] is None

        await transport.close()

    @pytest.mark.asyncio
    async def test_error_status_is_returned(
        self,
        transport: AiohttpTransport,
        mock_response: MagicMock,
    ) -> None:
        """HTTP errors are responses, not faults."""
        mock_response.status = 429
        mock_response.read = AsyncMock(return_value=b'{"errors":[]}')

        with patch.object(aiohttp.ClientSession, "request", return_value=mock_response):
            raw = await transport.send(RequestSpec(url="https://api.airtable.com/v0/appA/T"))

        assert raw.status == 429

        await transport.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()],
    )
    async def test_connection_errors_raise_transport_fault(
        self,
        transport: AiohttpTransport,
        error: Exception,
    ) -> None:
        request = RequestSpec(url="https://api.airtable.com/v0/appA/Tasks")

        with (
            patch.object(aiohttp.ClientSession, "request", side_effect=error),
            pytest.raises(TransportFault) as exc_info,
        ):
            await transport.send(request)

        assert exc_info.value.method == "GET"
        assert exc_info.value.endpoint == "/v0/appA/Tasks"
        assert exc_info.value.__cause__ is error

        await transport.close()

    @pytest.mark.asyncio
    async def test_close_idempotent(self, transport: AiohttpTransport) -> None:
        """Close can be called multiple times."""
        await transport.close()
        await transport.close()  # Should not raise

    @pytest.mark.asyncio
    async def test_injected_session_used(self, mock_response: MagicMock) -> None:
        session = MagicMock()
        session.closed = False
        session.request = MagicMock(return_value=mock_response)
        session.close = AsyncMock()
        transport = AiohttpTransport(session=session)

        raw = await transport.send(RequestSpec(url="https://api.airtable.com/v0/meta/whoami"))
        await transport.close()

        assert raw.status == 200
        session.request.assert_called_once()
        session.close.assert_awaited_once()
