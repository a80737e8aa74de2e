"""
Cursor-based pagination.

List endpoints return an "offset" cursor while more data exists. Pages are
requested one after another with the cursor as the only changing parameter
and handed to the caller as soon as each arrives.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from airtablex.contracts import Failure, Success

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from airtablex.contracts import RequestSpec

logger = logging.getLogger(__name__)

CURSOR_KEY = "offset"


def _page_size(body: object, records_key: str) -> int:
    if isinstance(body, dict):
        items = body.get(records_key)
        if isinstance(items, list):
            return len(items)
    return 0


def _cursor(body: object, cursor_key: str) -> str | None:
    if isinstance(body, dict):
        cursor = body.get(cursor_key)
        if isinstance(cursor, str) and cursor:
            return cursor
    return None


async def list_all(
    identity: str,
    dispatch: Callable[[str, RequestSpec], Awaitable[Success | Failure]],
    base_request: RequestSpec,
    max_records: int | None = None,
    *,
    records_key: str = "records",
    cursor_key: str = CURSOR_KEY,
) -> AsyncIterator[Success | Failure]:
    """
    Yield every page of a list endpoint.

    Args:
        identity: Throttling partition key.
        dispatch: Dispatcher entry point.
        base_request: First-page request (no cursor).
        max_records: Stop once this many records have been received.
        records_key: Body key holding the page's items.
        cursor_key: Body key (and query param) holding the cursor.

    Yields:
        One envelope per page. A Failure is yielded last and ends iteration;
        earlier pages are unaffected.

    Raises:
        ValueError: If max_records is not positive.
    """
    if max_records is not None and max_records <= 0:
        raise ValueError(f"max_records must be > 0, got {max_records}")

    request = base_request
    received = 0
    pages = 0

    while True:
        envelope = await dispatch(identity, request)
        pages += 1
        yield envelope

        if isinstance(envelope, Failure):
            logger.warning(
                "Pagination aborted on failed page",
                extra={
                    "identity": identity,
                    "page": pages,
                    "status": envelope.response_head.status,
                },
            )
            return

        received += _page_size(envelope.body, records_key)
        cursor = _cursor(envelope.body, cursor_key)
        if cursor is None:
            logger.debug("Pagination complete", extra={"pages": pages, "received": received})
            return
        if max_records is not None and received >= max_records:
            logger.debug(
                "Pagination stopped at max_records",
                extra={"pages": pages, "received": received, "max_records": max_records},
            )
            return

        request = base_request.with_param(cursor_key, cursor)
