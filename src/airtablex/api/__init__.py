"""Airtable Web API wrappers (URL templating and parameter marshaling)."""

from airtablex.api.client import AirtableClient
from airtablex.api.params import ListQuery, SortSpec, coerce_sort

__all__ = [
    "AirtableClient",
    "ListQuery",
    "SortSpec",
    "coerce_sort",
]
