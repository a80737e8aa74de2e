"""
Batched writes.

The API accepts at most 10 records per create/update/delete request. Larger
jobs are split into consecutive chunks and sent strictly in order; the first
failed chunk stops the job. Chunks sent before the failure have already been
applied remotely, so callers get every envelope up to and including the
failure.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from airtablex.config import MAX_RECORDS_PER_BATCH
from airtablex.contracts import Failure, Success

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunk_records(records: Sequence[T], chunk_size: int = MAX_RECORDS_PER_BATCH) -> list[list[T]]:
    """
    Split records into consecutive chunks of at most chunk_size.

    Raises:
        ValueError: If chunk_size is outside [1, MAX_RECORDS_PER_BATCH].
    """
    if not 1 <= chunk_size <= MAX_RECORDS_PER_BATCH:
        raise ValueError(
            f"chunk_size must be in [1, {MAX_RECORDS_PER_BATCH}], got {chunk_size}"
        )
    return [list(records[i : i + chunk_size]) for i in range(0, len(records), chunk_size)]


async def submit_batch(
    identity: str,
    records: Sequence[T],
    chunk_size: int,
    send_chunk: Callable[[list[T]], Awaitable[Success | Failure]],
) -> list[Success | Failure]:
    """
    Send records chunk by chunk, stopping at the first failure.

    Args:
        identity: Throttling partition key (for logging).
        records: Record payloads, in order.
        chunk_size: Records per request.
        send_chunk: Dispatches one chunk and returns its envelope.

    Returns:
        One envelope per chunk sent. If a chunk failed, its Failure is last
        and later chunks were never sent.
    """
    chunks = chunk_records(records, chunk_size)
    results: list[Success | Failure] = []

    for index, chunk in enumerate(chunks):
        envelope = await send_chunk(chunk)
        results.append(envelope)
        if isinstance(envelope, Failure):
            logger.warning(
                "Batch halted on failed chunk",
                extra={
                    "identity": identity,
                    "chunk_index": index,
                    "chunks_total": len(chunks),
                    "chunks_applied": index,
                    "status": envelope.response_head.status,
                },
            )
            break

    return results


def is_partial_failure(results: Sequence[Success | Failure]) -> bool:
    """Check if a batch failed after at least one chunk was applied."""
    return len(results) > 1 and isinstance(results[-1], Failure)
