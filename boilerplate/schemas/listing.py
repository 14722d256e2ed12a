from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from boilerplate.core.errors import ListQueryError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

_FILTER_PARAM_RE = re.compile(r"^filters\[([^\[\]]+)\](?:\[([^\[\]]+)\])?$")


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    IN = "in"


class FilterClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOperator = FilterOperator.EQ
    value: Any = None


class ListQueryRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort_by: str | None = None
    sort_order: SortDirection = SortDirection.DESC
    filters: tuple[FilterClause, ...] = ()
    # every field named in the filter map, including ones with no operators
    filter_fields: tuple[str, ...] = ()


class PageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class PaginatedResult(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: list[Any] = Field(default_factory=list)
    metadata: PageMetadata


class ListQueryBody(BaseModel):
    """JSON body form of a list query: ``filters`` is a nested field -> operator -> value map."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: Any = None
    limit: Any = None
    sort_by: str | None = None
    sort_order: str | None = None
    filters: dict[str, Any] | None = None

    def to_request(self) -> ListQueryRequest:
        return build_list_query(
            page=self.page,
            limit=self.limit,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
            filters=flatten_filter_map(self.filters or {}),
            filter_fields=(self.filters or {}).keys(),
        )


def parse_operator(raw: Any) -> FilterOperator:
    text = str(raw or "").strip().lower()
    try:
        return FilterOperator(text)
    except ValueError:
        raise ListQueryError(
            f"Unsupported filter operator: {raw}",
            details={"operator": raw, "supported": [op.value for op in FilterOperator]},
        )


def parse_sort_direction(raw: Any) -> SortDirection:
    if raw is None or str(raw).strip() == "":
        return SortDirection.DESC
    if isinstance(raw, SortDirection):
        return raw
    text = str(raw).strip().upper()
    try:
        return SortDirection(text)
    except ValueError:
        raise ListQueryError(f"Invalid sort order: {raw}. Allowed values: ASC, DESC")


def _parse_int(raw: Any, name: str, default: int) -> int:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    if isinstance(raw, bool):
        raise ListQueryError(f"{name} must be an integer")
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ListQueryError(f"{name} must be an integer")


def flatten_filter_map(filters: Mapping[str, Any]) -> list[FilterClause]:
    if not isinstance(filters, Mapping):
        raise ListQueryError("filters must be an object")
    clauses: list[FilterClause] = []
    for field, entry in filters.items():
        if isinstance(entry, Mapping):
            for op, value in entry.items():
                clauses.append(FilterClause(field=field, op=parse_operator(op), value=value))
        else:
            clauses.append(FilterClause(field=field, op=FilterOperator.EQ, value=entry))
    return clauses


def build_list_query(
    *,
    page: Any = None,
    limit: Any = None,
    sort_by: str | None = None,
    sort_order: Any = None,
    filters: Iterable[FilterClause] = (),
    filter_fields: Iterable[str] = (),
) -> ListQueryRequest:
    page_value = _parse_int(page, "page", DEFAULT_PAGE)
    if page_value < 1:
        raise ListQueryError("page must be greater than or equal to 1")
    # limit is clamped later, not rejected
    limit_value = _parse_int(limit, "limit", DEFAULT_LIMIT)
    sort_text = str(sort_by).strip() if sort_by is not None else ""
    clauses = tuple(filters)
    return ListQueryRequest(
        page=page_value,
        limit=limit_value,
        sort_by=sort_text or None,
        sort_order=parse_sort_direction(sort_order),
        filters=clauses,
        filter_fields=tuple(sorted({str(name) for name in filter_fields} | {c.field for c in clauses})),
    )


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def parse_list_query(params: Iterable[tuple[str, str]] | Mapping[str, str]) -> ListQueryRequest:
    """Build a request from query-string pairs.

    Filters use the bracket form ``filters[field]=value`` (implicit ``eq``) or
    ``filters[field][op]=value``; ``in`` takes a comma separated list. A JSON
    object in a plain ``filters`` parameter is accepted as well.
    """
    items = params.items() if isinstance(params, Mapping) else params
    scalars: dict[str, str] = {}
    clauses: list[FilterClause] = []
    filter_fields: set[str] = set()
    for key, value in items:
        match = _FILTER_PARAM_RE.match(key)
        if match:
            field, op_raw = match.group(1).strip(), match.group(2)
            op = parse_operator(op_raw) if op_raw is not None else FilterOperator.EQ
            if op is FilterOperator.IN:
                value = _split_csv(value)
            clauses.append(FilterClause(field=field, op=op, value=value))
        elif key == "filters":
            try:
                decoded = json.loads(value)
            except ValueError:
                raise ListQueryError("filters must be a JSON object")
            clauses.extend(flatten_filter_map(decoded))
            filter_fields.update(decoded)
        else:
            scalars[key] = value
    return build_list_query(
        page=scalars.get("page"),
        limit=scalars.get("limit"),
        sort_by=scalars.get("sortBy", scalars.get("sort_by")),
        sort_order=scalars.get("sortOrder", scalars.get("sort_order")),
        filters=clauses,
        filter_fields=filter_fields,
    )
