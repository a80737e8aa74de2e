"""
Query parameter marshaling for list endpoints.

Airtable encodes arrays and nested objects in the query string:
    fields[]=Name&fields[]=Status
    sort[0][field]=Name&sort[0][direction]=asc
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

from airtablex.config import MAX_PAGE_SIZE

SortDirection = Literal["asc", "desc"]


@dataclass(frozen=True)
class SortSpec:
    """One sort criterion."""

    field: str
    direction: SortDirection = "asc"

    def __post_init__(self) -> None:
        if not self.field:
            raise ValueError("sort field must not be empty")
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"sort direction must be 'asc' or 'desc', got {self.direction!r}")


@dataclass(frozen=True)
class ListQuery:
    """
    Parameters of a list-records call.

    Attributes:
        fields: Only return these fields.
        filter_by_formula: Opaque formula string, passed through unchanged.
        sort: Sort criteria, applied in order.
        view: View name or id.
        page_size: Records per page (1..100).
        cell_format: "json" or "string".
        time_zone: Required by the API when cell_format is "string".
        user_locale: Required by the API when cell_format is "string".
        return_fields_by_field_id: Key returned fields by id instead of name.
    """

    fields: Sequence[str] = field(default_factory=tuple)
    filter_by_formula: str | None = None
    sort: Sequence[SortSpec] = field(default_factory=tuple)
    view: str | None = None
    page_size: int | None = None
    cell_format: Literal["json", "string"] | None = None
    time_zone: str | None = None
    user_locale: str | None = None
    return_fields_by_field_id: bool = False

    def __post_init__(self) -> None:
        if self.page_size is not None and not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be in [1, {MAX_PAGE_SIZE}], got {self.page_size}")
        if self.cell_format == "string" and not (self.time_zone and self.user_locale):
            raise ValueError("time_zone and user_locale are required when cell_format is 'string'")

    def to_params(self) -> tuple[tuple[str, str], ...]:
        """Encode as ordered query parameters."""
        params: list[tuple[str, str]] = [("fields[]", name) for name in self.fields]
        if self.filter_by_formula:
            params.append(("filterByFormula", self.filter_by_formula))
        for i, spec in enumerate(self.sort):
            params.append((f"sort[{i}][field]", spec.field))
            params.append((f"sort[{i}][direction]", spec.direction))
        if self.view:
            params.append(("view", self.view))
        if self.page_size is not None:
            params.append(("pageSize", str(self.page_size)))
        if self.cell_format:
            params.append(("cellFormat", self.cell_format))
        if self.time_zone:
            params.append(("timeZone", self.time_zone))
        if self.user_locale:
            params.append(("userLocale", self.user_locale))
        if self.return_fields_by_field_id:
            params.append(("returnFieldsByFieldId", "true"))
        return tuple(params)


def coerce_sort(
    sort: Sequence[SortSpec | Mapping[str, str] | str] | None,
) -> tuple[SortSpec, ...]:
    """
    Accept sort criteria as SortSpec, {"field": ..., "direction": ...} or
    a bare field name ("-Name" sorts descending).
    """
    if not sort:
        return ()
    specs: list[SortSpec] = []
    for item in sort:
        if isinstance(item, SortSpec):
            specs.append(item)
        elif isinstance(item, str):
            if item.startswith("-"):
                specs.append(SortSpec(field=item[1:], direction="desc"))
            else:
                specs.append(SortSpec(field=item))
        else:
            direction = item.get("direction", "asc")
            specs.append(
                SortSpec(field=item.get("field", ""), direction=direction)  # type: ignore[arg-type]
            )
    return tuple(specs)
