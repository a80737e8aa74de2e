"""
Airtable Web API client.

Every call goes through the RequestDispatcher, so all methods share one
per-account cooldown. Results are normalized: a successful call returns the
provider's JSON body, a failed call returns an {"error": {...}} mapping
(see airtablex.dispatch.normalizer). Only transport faults raise.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from airtablex.api.params import ListQuery, SortSpec, coerce_sort
from airtablex.config import ClientConfig
from airtablex.contracts import HttpMethod, RequestSpec
from airtablex.dispatch.batch import submit_batch
from airtablex.dispatch.cache import CacheRegistry
from airtablex.dispatch.cooldown import CooldownStore
from airtablex.dispatch.dispatcher import DispatchMetrics, RequestDispatcher
from airtablex.dispatch.identity import IdentityResolver
from airtablex.dispatch.normalizer import is_failure, normalize
from airtablex.dispatch.pagination import list_all
from airtablex.dispatch.transport import AiohttpTransport

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
    from types import TracebackType

    from airtablex.contracts import Failure, Success
    from airtablex.dispatch.transport import Transport

logger = logging.getLogger(__name__)

IDENTITY_CACHE_NAME = "identity"


class AirtableClient:
    """
    Async client for bases, tables and records.

    Usage:
        async with AirtableClient(api_key="pat...") as client:
            async for page in client.iter_records("appXXX", "Tasks", page_size=100):
                ...
            results = await client.create_records("appXXX", "Tasks", [{"Name": "a"}])
    """

    def __init__(
        self,
        api_key: str | None = None,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
        cooldown_store: CooldownStore | None = None,
        cache_registry: CacheRegistry | None = None,
        metrics: DispatchMetrics | None = None,
        *,
        _time_fn: Callable[[], int] | None = None,
        _sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: Credential (overrides config.api_key).
            config: Client configuration (AIRTABLE_API_KEY env var if not given).
            transport: HTTP collaborator (aiohttp by default).
            cooldown_store: Shared cooldown store (from cache_registry if not given).
            cache_registry: Shared caches; pass the same registry to several
                clients to share cooldowns and resolved identities.
            metrics: Shared dispatcher counters.
        """
        if config is None:
            config = ClientConfig(api_key=api_key or "")
        elif api_key:
            config = dataclasses.replace(config, api_key=api_key)
        self._config = config
        self._owns_transport = transport is None
        self._transport: Transport = transport or AiohttpTransport(
            timeout_ms=config.request_timeout_ms
        )
        self._registry = cache_registry or CacheRegistry(_time_fn=_time_fn)

        if cooldown_store is None:
            cooldown_store = CooldownStore.shared(
                self._registry,
                idle_ttl_ms=config.cooldown_ttl_ms,
                max_entries=config.cooldown_max_entries,
            )
        identity_cache = self._registry.get_or_create(
            IDENTITY_CACHE_NAME,
            ttl_ms=config.identity_ttl_ms,
            max_entries=config.identity_max_entries,
        )
        self._resolver = IdentityResolver(self._transport, config.base_url, cache=identity_cache)
        self._dispatcher = RequestDispatcher(
            self._transport,
            cooldown_store,
            min_interval_ms=config.min_interval_ms,
            cool_off_ms=config.cool_off_ms,
            metrics=metrics,
            _time_fn=_time_fn,
            _sleep_fn=_sleep_fn,
        )

    async def __aenter__(self) -> AirtableClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self._transport.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def metrics(self) -> DispatchMetrics:
        return self._dispatcher.metrics

    @property
    def cooldown_store(self) -> CooldownStore:
        return self._dispatcher.cooldown_store

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _url(self, *segments: str) -> str:
        quoted = "/".join(quote(s, safe="") for s in segments)
        return f"{self._config.base_url}/{quoted}"

    def _request(
        self,
        method: HttpMethod,
        url: str,
        params: Sequence[tuple[str, str]] = (),
        body: Any = None,
    ) -> RequestSpec:
        return RequestSpec(
            method=method,
            url=url,
            params=tuple(params),
            headers={"Authorization": f"Bearer {self._config.api_key}"},
            body=body,
        )

    async def _identity(self) -> str:
        return await self._resolver.resolve(self._config.api_key)

    async def _call(self, request: RequestSpec) -> Any:
        identity = await self._identity()
        return normalize(await self._dispatcher.dispatch(identity, request))

    async def _paginate(
        self,
        request: RequestSpec,
        max_records: int | None,
        records_key: str,
    ) -> AsyncIterator[Any]:
        identity = await self._identity()
        async for envelope in list_all(
            identity,
            self._dispatcher.dispatch,
            request,
            max_records,
            records_key=records_key,
        ):
            yield normalize(envelope)

    async def _batch(
        self,
        method: HttpMethod,
        url: str,
        records: Sequence[Any],
        build: Callable[[HttpMethod, str, list[Any]], RequestSpec],
    ) -> list[Any]:
        identity = await self._identity()

        async def send_chunk(chunk: list[Any]) -> Success | Failure:
            return await self._dispatcher.dispatch(identity, build(method, url, chunk))

        results = await submit_batch(identity, records, self._config.batch_size, send_chunk)
        return [normalize(envelope) for envelope in results]

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------

    async def whoami(self) -> Any:
        """Get the user id (and scopes) of the credential."""
        return await self._call(self._request(HttpMethod.GET, self._url("meta", "whoami")))

    def list_bases(self, max_records: int | None = None) -> AsyncIterator[Any]:
        """Iterate over pages of accessible bases ({"bases": [...], "offset": ...})."""
        request = self._request(HttpMethod.GET, self._url("meta", "bases"))
        return self._paginate(request, max_records, "bases")

    async def get_base_schema(self, base_id: str) -> Any:
        """Get the tables (with fields and views) of a base."""
        return await self._call(
            self._request(HttpMethod.GET, self._url("meta", "bases", base_id, "tables"))
        )

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def iter_records(
        self,
        base_id: str,
        table: str,
        *,
        fields: Sequence[str] = (),
        filter_by_formula: str | None = None,
        sort: Sequence[SortSpec | Mapping[str, str] | str] | None = None,
        view: str | None = None,
        page_size: int | None = None,
        cell_format: str | None = None,
        time_zone: str | None = None,
        user_locale: str | None = None,
        return_fields_by_field_id: bool = False,
        max_records: int | None = None,
    ) -> AsyncIterator[Any]:
        """
        Iterate over pages of records.

        Each page is the provider body ({"records": [...], "offset": ...}); a
        failed page is yielded as an error mapping and ends iteration.
        """
        query = ListQuery(
            fields=tuple(fields),
            filter_by_formula=filter_by_formula,
            sort=coerce_sort(sort),
            view=view,
            page_size=page_size if page_size is not None else self._config.page_size,
            cell_format=cell_format,  # type: ignore[arg-type]
            time_zone=time_zone,
            user_locale=user_locale,
            return_fields_by_field_id=return_fields_by_field_id,
        )
        request = self._request(HttpMethod.GET, self._url(base_id, table), query.to_params())
        return self._paginate(request, max_records, "records")

    async def list_records(
        self,
        base_id: str,
        table: str,
        *,
        max_records: int | None = None,
        **query: Any,
    ) -> Any:
        """
        Fetch all records into one list.

        Returns:
            Records (at most max_records), or the error mapping of the first
            failed page.
        """
        records: list[Any] = []
        async for page in self.iter_records(base_id, table, max_records=max_records, **query):
            if is_failure(page):
                return page
            records.extend((page or {}).get("records", []))
        if max_records is not None:
            del records[max_records:]
        return records

    async def get_record(self, base_id: str, table: str, record_id: str) -> Any:
        """Get a single record."""
        return await self._call(
            self._request(HttpMethod.GET, self._url(base_id, table, record_id))
        )

    async def create_records(
        self,
        base_id: str,
        table: str,
        records: Sequence[Mapping[str, Any]],
    ) -> list[Any]:
        """
        Create records, 10 per request.

        Records may be bare field mappings or {"fields": {...}}.

        Returns:
            One normalized result per request sent. A trailing error mapping
            means later records were not created.
        """
        payload = [_wrap_fields(record) for record in records]
        return await self._batch(
            HttpMethod.POST, self._url(base_id, table), payload, self._records_body
        )

    async def update_records(
        self,
        base_id: str,
        table: str,
        records: Sequence[Mapping[str, Any]],
        *,
        replace: bool = False,
    ) -> list[Any]:
        """
        Update records ({"id": ..., "fields": {...}}), 10 per request.

        Args:
            replace: PUT (clears unspecified fields) instead of PATCH (merge).
        """
        for record in records:
            if not record.get("id"):
                raise ValueError("every record to update needs an 'id'")
        method = HttpMethod.PUT if replace else HttpMethod.PATCH
        payload = [dict(record) for record in records]
        return await self._batch(method, self._url(base_id, table), payload, self._records_body)

    async def delete_records(
        self,
        base_id: str,
        table: str,
        record_ids: Sequence[str],
    ) -> list[Any]:
        """Delete records by id, 10 per request."""
        return await self._batch(
            HttpMethod.DELETE, self._url(base_id, table), list(record_ids), self._delete_request
        )

    def _records_body(self, method: HttpMethod, url: str, chunk: list[Any]) -> RequestSpec:
        return self._request(method, url, body={"records": chunk})

    def _delete_request(self, method: HttpMethod, url: str, chunk: list[Any]) -> RequestSpec:
        return self._request(method, url, params=[("records[]", record_id) for record_id in chunk])


def _wrap_fields(record: Mapping[str, Any]) -> dict[str, Any]:
    if "fields" in record and isinstance(record["fields"], Mapping):
        return dict(record)
    return {"fields": dict(record)}
