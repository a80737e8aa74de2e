"""
Client configuration and provider limits.

Per the Airtable Web API documentation:
- 5 requests per second per base (we space requests 200ms apart per account)
- 429 responses require a 30 second wait before the next request
- Max 10 records per create/update/delete request
- Max 100 records per list page
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://api.airtable.com/v0"

SUCCESS_STATUS = 200
RATE_LIMIT_STATUS = 429

MIN_INTERVAL_MS = 200  # 5 requests per second
COOL_OFF_MS = 30000  # Provider-documented wait after a 429
MAX_RECORDS_PER_BATCH = 10
MAX_PAGE_SIZE = 100

API_KEY_ENV_VAR = "AIRTABLE_API_KEY"
BASE_URL_ENV_VAR = "AIRTABLE_BASE_URL"

# Redacted env vars for logging
REDACTED_ENV_VARS = frozenset({
    API_KEY_ENV_VAR,
    "AIRTABLE_ACCESS_TOKEN",
})


@dataclass
class ClientConfig:
    """
    Configuration for AirtableClient.

    Attributes:
        api_key: Personal access token or legacy API key (AIRTABLE_API_KEY env var).
        base_url: API root, without trailing slash.
        request_timeout_ms: Total timeout for a single HTTP request.
        min_interval_ms: Minimum spacing between requests for one account.
        cool_off_ms: Spacing applied after a 429 response.
        batch_size: Records per write request.
        page_size: Records per list page (None = server default).
        cooldown_ttl_ms: Idle time before a cooldown entry is evicted.
        cooldown_max_entries: Max identities tracked by the cooldown store.
        identity_ttl_ms: Idle time before a resolved identity is evicted.
        identity_max_entries: Max credentials tracked by the identity cache.
    """

    api_key: str = ""
    base_url: str = ""
    request_timeout_ms: int = 30000
    min_interval_ms: int = MIN_INTERVAL_MS
    cool_off_ms: int = COOL_OFF_MS
    batch_size: int = MAX_RECORDS_PER_BATCH
    page_size: int | None = None
    cooldown_ttl_ms: int = 600000  # 10 min
    cooldown_max_entries: int = 1000
    identity_ttl_ms: int = 3600000  # 1 hour
    identity_max_entries: int = 1000

    def __post_init__(self) -> None:
        if not self.api_key:
            self.api_key = os.environ.get(API_KEY_ENV_VAR, "")
        if not self.api_key:
            raise ValueError(f"{API_KEY_ENV_VAR} required when api_key is not given")
        if not self.base_url:
            self.base_url = os.environ.get(BASE_URL_ENV_VAR, DEFAULT_BASE_URL)
        self.base_url = self.base_url.rstrip("/")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be http(s), got {self.base_url!r}")
        if self.request_timeout_ms <= 0:
            raise ValueError(f"request_timeout_ms must be > 0, got {self.request_timeout_ms}")
        if self.min_interval_ms < 0:
            raise ValueError(f"min_interval_ms must be >= 0, got {self.min_interval_ms}")
        if self.cool_off_ms < self.min_interval_ms:
            raise ValueError(
                f"cool_off_ms must be >= min_interval_ms, got {self.cool_off_ms}"
            )
        if not 1 <= self.batch_size <= MAX_RECORDS_PER_BATCH:
            raise ValueError(
                f"batch_size must be in [1, {MAX_RECORDS_PER_BATCH}], got {self.batch_size}"
            )
        if self.page_size is not None and not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be in [1, {MAX_PAGE_SIZE}], got {self.page_size}")
        # An entry evicted mid cool-off would let the next request through early
        if self.cooldown_ttl_ms < self.cool_off_ms:
            raise ValueError(
                f"cooldown_ttl_ms must be >= cool_off_ms, got {self.cooldown_ttl_ms}"
            )
        if self.cooldown_max_entries < 1:
            raise ValueError(
                f"cooldown_max_entries must be >= 1, got {self.cooldown_max_entries}"
            )
        if self.identity_ttl_ms <= 0:
            raise ValueError(f"identity_ttl_ms must be > 0, got {self.identity_ttl_ms}")
        if self.identity_max_entries < 1:
            raise ValueError(
                f"identity_max_entries must be >= 1, got {self.identity_max_entries}"
            )

    def __repr__(self) -> str:
        # Never expose the credential
        return (
            f"ClientConfig(base_url={self.base_url!r}, "
            f"min_interval_ms={self.min_interval_ms}, cool_off_ms={self.cool_off_ms}, "
            f"batch_size={self.batch_size}, page_size={self.page_size})"
        )
