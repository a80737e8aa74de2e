"""Rate-limited request dispatch: cooldowns, identity, batching, pagination."""

from airtablex.dispatch.batch import chunk_records, is_partial_failure, submit_batch
from airtablex.dispatch.cache import CacheRegistry, ExpiringLRUCache
from airtablex.dispatch.cooldown import CooldownStore
from airtablex.dispatch.dispatcher import DispatchMetrics, RequestDispatcher
from airtablex.dispatch.identity import UNKNOWN_IDENTITY, IdentityResolver, credential_key
from airtablex.dispatch.normalizer import is_failure, normalize
from airtablex.dispatch.pagination import list_all
from airtablex.dispatch.transport import AiohttpTransport, RawResponse, Transport, TransportFault

__all__ = [
    "UNKNOWN_IDENTITY",
    "AiohttpTransport",
    "CacheRegistry",
    "CooldownStore",
    "DispatchMetrics",
    "ExpiringLRUCache",
    "IdentityResolver",
    "RawResponse",
    "RequestDispatcher",
    "Transport",
    "TransportFault",
    "chunk_records",
    "credential_key",
    "is_failure",
    "is_partial_failure",
    "list_all",
    "normalize",
    "submit_batch",
]
