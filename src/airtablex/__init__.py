"""Rate-limited async client for the Airtable Web API."""

from airtablex.api import AirtableClient
from airtablex.config import ClientConfig
from airtablex.contracts import Failure, RequestSpec, Success
from airtablex.dispatch import (
    UNKNOWN_IDENTITY,
    CacheRegistry,
    CooldownStore,
    RequestDispatcher,
    TransportFault,
    is_failure,
    normalize,
)

__version__ = "0.1.0"

__all__ = [
    "UNKNOWN_IDENTITY",
    "AirtableClient",
    "CacheRegistry",
    "ClientConfig",
    "CooldownStore",
    "Failure",
    "RequestDispatcher",
    "RequestSpec",
    "Success",
    "TransportFault",
    "is_failure",
    "normalize",
]
