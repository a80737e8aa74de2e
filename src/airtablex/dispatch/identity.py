"""
Credential -> account identity resolution.

The provider enforces its rate limit per account, not per credential, and
several tokens may belong to one account. The resolver asks the API who a
credential belongs to once and caches the answer under a hash of the
credential.

Known approximation: every credential that fails resolution throttles under
the same UNKNOWN_IDENTITY bucket until a later lookup succeeds.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import TYPE_CHECKING

import orjson

from airtablex.config import SUCCESS_STATUS
from airtablex.contracts import HttpMethod, RequestSpec
from airtablex.dispatch.cache import ExpiringLRUCache
from airtablex.dispatch.transport import TransportFault

if TYPE_CHECKING:
    from collections.abc import Callable

    from airtablex.dispatch.transport import Transport

logger = logging.getLogger(__name__)

UNKNOWN_IDENTITY = "unknown"
WHOAMI_PATH = "/meta/whoami"


def credential_key(credential: str) -> str:
    """Stable cache key for a credential (SHA-256 hex digest)."""
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()


class IdentityResolver:
    """
    Resolves credentials to account ids with a TTL cache.

    Lookups that fail are not cached, so the next call tries again.
    """

    def __init__(
        self,
        transport: Transport,
        base_url: str,
        cache: ExpiringLRUCache[object] | None = None,
        *,
        ttl_ms: int = 3600000,
        max_entries: int = 1000,
        _time_fn: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            transport: Transport used for the whoami lookup.
            base_url: API root (e.g. https://api.airtable.com/v0).
            cache: Shared identity cache. Created if not given.
            ttl_ms: Idle TTL for a created cache.
            max_entries: Size bound for a created cache.
        """
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        if cache is None:
            cache = ExpiringLRUCache(ttl_ms=ttl_ms, max_entries=max_entries, _time_fn=_time_fn)
        self._cache = cache
        # One lock per credential key, dropped once nobody waits on it
        self._lookup_locks: dict[str, asyncio.Lock] = {}
        self._lookup_waiters: dict[str, int] = {}
        self.lookups = 0

    async def resolve(self, credential: str) -> str:
        """
        Get the account identity for a credential.

        Never raises for API or network problems; returns UNKNOWN_IDENTITY
        and lets the caller's own request surface the real cause.
        """
        key = credential_key(credential)
        cached = self._cache.get(key)
        if isinstance(cached, str):
            return cached

        lock = self._lookup_locks.get(key)
        if lock is None:
            lock = self._lookup_locks[key] = asyncio.Lock()
        self._lookup_waiters[key] = self._lookup_waiters.get(key, 0) + 1
        try:
            async with lock:
                # Another task may have resolved it while we waited
                cached = self._cache.get(key)
                if isinstance(cached, str):
                    return cached

                identity = await self._lookup(credential)
                if identity != UNKNOWN_IDENTITY:
                    self._cache.put(key, identity)
                return identity
        finally:
            self._lookup_waiters[key] -= 1
            if self._lookup_waiters[key] == 0:
                del self._lookup_waiters[key]
                del self._lookup_locks[key]

    async def _lookup(self, credential: str) -> str:
        """Call the whoami endpoint."""
        request = RequestSpec(
            method=HttpMethod.GET,
            url=f"{self._base_url}{WHOAMI_PATH}",
            headers={"Authorization": f"Bearer {credential}"},
        )
        self.lookups += 1
        try:
            response = await self._transport.send(request)
        except TransportFault as e:
            logger.warning(
                "Identity lookup failed, using placeholder",
                extra={"error": str(e), "placeholder": UNKNOWN_IDENTITY},
            )
            return UNKNOWN_IDENTITY

        if response.status != SUCCESS_STATUS:
            logger.warning(
                "Identity lookup rejected, using placeholder",
                extra={"status": response.status, "placeholder": UNKNOWN_IDENTITY},
            )
            return UNKNOWN_IDENTITY

        try:
            data = orjson.loads(response.body)
        except orjson.JSONDecodeError:
            logger.warning("Identity lookup returned malformed body, using placeholder")
            return UNKNOWN_IDENTITY

        identity = data.get("id") if isinstance(data, dict) else None
        if not isinstance(identity, str) or not identity:
            logger.warning("Identity lookup response has no id, using placeholder")
            return UNKNOWN_IDENTITY

        logger.debug("Resolved identity", extra={"identity": identity})
        return identity
