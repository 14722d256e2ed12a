from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from itertools import count
from typing import Any, Callable, Iterable, Mapping, Sequence

from pydantic import ValidationError
from sqlalchemy import String, asc, bindparam, cast, desc, func
from sqlalchemy.orm import Query

from boilerplate.core.errors import ListQueryError
from boilerplate.schemas.listing import (
    FilterClause,
    FilterOperator,
    ListQueryRequest,
    PageMetadata,
    PaginatedResult,
    SortDirection,
)
from boilerplate.services.cache import CacheStore, safe_get, safe_set

_LOG = logging.getLogger("boilerplate.list_query")

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class ListResource:
    """Allowlists and column mapping a resource hands to the list engine."""

    name: str
    model: type
    sortable: frozenset[str]
    filterable: frozenset[str]
    columns: Mapping[str, Any] = field(default_factory=dict)
    primary_key: str = "id"

    @property
    def alias(self) -> str:
        return str(getattr(self.model, "__tablename__", self.name))

    def column(self, name: str):
        if name in self.columns:
            return self.columns[name]
        col = getattr(self.model, name, None)
        if col is None:
            raise ListQueryError(f"Unknown field: {name}")
        return col

    def resolve(self, field_path: str):
        """Column for an alias-qualified path such as ``users.email``; other dotted paths go through ``columns``."""
        prefix = f"{self.alias}."
        if field_path.startswith(prefix):
            return self.column(field_path[len(prefix):])
        return self.column(field_path)


@dataclass(frozen=True)
class SortClause:
    field: str
    direction: SortDirection


@dataclass(frozen=True)
class PredicateClause:
    field: str
    field_path: str
    operator: FilterOperator
    bound_value: Any
    param_name: str

    def to_expression(self, column):
        op = self.operator
        if op is FilterOperator.LIKE:
            param = bindparam(self.param_name, self.bound_value, type_=String())
            if not isinstance(_column_sql_type(column), String):
                column = cast(column, String)
            return func.lower(column).like(func.lower(param), escape=LIKE_ESCAPE)
        sql_type = _column_sql_type(column)
        type_kwargs = {"type_": sql_type} if sql_type is not None else {}
        if op is FilterOperator.IN:
            values = [_coerce_filter_value(column, self.field, item) for item in self.bound_value]
            return column.in_(bindparam(self.param_name, values, expanding=True, **type_kwargs))
        value = _coerce_filter_value(column, self.field, self.bound_value)
        if value is None and op in {FilterOperator.EQ, FilterOperator.NE}:
            return column.is_(None) if op is FilterOperator.EQ else column.is_not(None)
        param = bindparam(self.param_name, value, **type_kwargs)
        if op is FilterOperator.EQ:
            return column == param
        if op is FilterOperator.NE:
            return column != param
        if op is FilterOperator.GT:
            return column > param
        if op is FilterOperator.GTE:
            return column >= param
        if op is FilterOperator.LT:
            return column < param
        if op is FilterOperator.LTE:
            return column <= param
        raise ListQueryError(f"Unsupported filter operator: {op}")


def _column_sql_type(column):
    expr = getattr(column, "expression", column)
    return getattr(expr, "type", None)


def _column_python_type(column):
    try:
        return _column_sql_type(column).python_type
    except (AttributeError, NotImplementedError):
        return None


def _bad_filter_value(field_name: str, kind: str) -> ListQueryError:
    return ListQueryError(f'Invalid filter value for field "{field_name}" ({kind})', details={"field": field_name})


def _coerce_bool(field_name: str, value):
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    raise _bad_filter_value(field_name, "boolean")


def _coerce_number(field_name: str, value, python_type):
    if python_type in {int, float} and isinstance(value, (int, float)) and not isinstance(value, bool):
        return python_type(value)
    if python_type is Decimal and isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        raise _bad_filter_value(field_name, "number")
    try:
        if python_type is int:
            return int(text)
        if python_type is float:
            return float(text)
        return Decimal(text)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(field_name, "number")


def _coerce_date(field_name: str, value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_filter_value(field_name, "date")


def _coerce_datetime(field_name: str, value):
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        try:
            if len(text) == 10 and "T" not in text:
                # date-only literal -> start of the day
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise _bad_filter_value(field_name, "datetime")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_filter_value(column, field_name: str, value):
    if value is None:
        return None
    python_type = _column_python_type(column)
    if python_type is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value).strip())
        except ValueError:
            raise _bad_filter_value(field_name, "uuid")
    if python_type is bool:
        return _coerce_bool(field_name, value)
    if python_type in {int, float, Decimal}:
        return _coerce_number(field_name, value, python_type)
    if python_type is datetime:
        return _coerce_datetime(field_name, value)
    if python_type is date:
        return _coerce_date(field_name, value)
    if python_type is str and not isinstance(value, str):
        return str(value)
    return value


def validate_fields(fields: Iterable[str], allowed: Iterable[str], kind: str) -> None:
    allowed_list = sorted(set(allowed))
    allowed_set = set(allowed_list)
    for name in fields:
        if name not in allowed_set:
            raise ListQueryError(
                f"Invalid {kind} field: {name}. Allowed fields: {', '.join(allowed_list)}",
                details={"field": name, "allowed": allowed_list},
            )


def compute_pagination(page: int, limit: int) -> tuple[int, int]:
    bounded_limit = min(max(int(limit), MIN_PAGE_SIZE), MAX_PAGE_SIZE)
    offset = (int(page) - 1) * bounded_limit
    return offset, bounded_limit


def escape_like_pattern(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _param_base(field_name: str) -> str:
    return re.sub(r"\W", "_", field_name)


def build_predicates(
    filters: Sequence[FilterClause],
    allowed: Iterable[str],
    alias: str | None = None,
) -> list[PredicateClause]:
    validate_fields([clause.field for clause in filters], allowed, "filter")
    counter = count(1)
    predicates: list[PredicateClause] = []
    for clause in filters:
        op = clause.op
        if not isinstance(op, FilterOperator):
            raise ListQueryError(f"Unsupported filter operator: {op}")
        value = clause.value
        if op is FilterOperator.LIKE:
            value = f"%{escape_like_pattern(str(value if value is not None else ''))}%"
        elif op is FilterOperator.IN:
            if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
                raise ListQueryError(
                    f'Filter operator "in" requires a list value for field "{clause.field}"',
                    details={"field": clause.field},
                )
            value = list(value)
        field_path = clause.field if "." in clause.field or not alias else f"{alias}.{clause.field}"
        predicates.append(
            PredicateClause(
                field=clause.field,
                field_path=field_path,
                operator=op,
                bound_value=value,
                param_name=f"{_param_base(clause.field)}_{op.value}_{next(counter)}",
            )
        )
    return predicates


def split_sort_fields(sort_by: str | None) -> list[str]:
    if not sort_by or not sort_by.strip():
        return []
    # empty names between commas are kept so the allowlist rejects them
    return [name.strip() for name in sort_by.split(",")]


def build_sort_clauses(
    sort_by: str | None,
    direction: SortDirection | str = SortDirection.DESC,
    allowed: Iterable[str] = (),
    primary_key: str = "id",
) -> list[SortClause]:
    direction = SortDirection(direction)
    names = split_sort_fields(sort_by)
    if not names:
        return [SortClause(field=primary_key, direction=SortDirection.DESC)]
    validate_fields(names, allowed, "sort")
    return [SortClause(field=name, direction=direction) for name in names]


def build_page_metadata(page: int, limit: int, total_count: int) -> PageMetadata:
    total_pages = -(-total_count // limit) if total_count > 0 else 0
    return PageMetadata(
        page=page,
        limit=limit,
        total_count=total_count,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def validate_request(resource: ListResource, request: ListQueryRequest) -> None:
    filter_fields = list(request.filter_fields)
    filter_fields += [clause.field for clause in request.filters if clause.field not in request.filter_fields]
    validate_fields(filter_fields, resource.filterable, "filter")
    validate_fields(split_sort_fields(request.sort_by), resource.sortable, "sort")


def paginate(query: Query, resource: ListResource, request: ListQueryRequest) -> PaginatedResult:
    validate_request(resource, request)
    predicates = build_predicates(request.filters, resource.filterable, alias=resource.alias)
    sort_clauses = build_sort_clauses(
        request.sort_by,
        request.sort_order,
        resource.sortable,
        primary_key=resource.primary_key,
    )
    offset, limit = compute_pagination(request.page, request.limit)
    conditions = [predicate.to_expression(resource.resolve(predicate.field_path)) for predicate in predicates]
    ordering = [
        asc(resource.column(clause.field)) if clause.direction is SortDirection.ASC else desc(resource.column(clause.field))
        for clause in sort_clauses
    ]

    filtered = query.filter(*conditions) if conditions else query
    total_count = filtered.order_by(None).count()
    rows = filtered.order_by(*ordering).offset(offset).limit(limit).all()
    _LOG.debug(
        "list %s page=%s limit=%s filters=%d sort=%s total=%s",
        resource.name,
        request.page,
        limit,
        len(predicates),
        ",".join(f"{c.field}:{c.direction.value}" for c in sort_clauses),
        total_count,
    )
    return PaginatedResult(data=rows, metadata=build_page_metadata(request.page, limit, total_count))


def list_cache_key(resource: ListResource, request: ListQueryRequest) -> str:
    payload = request.model_dump(mode="json")
    payload["filters"] = sorted(
        payload["filters"],
        key=lambda item: (item["field"], item["op"], json.dumps(item["value"], sort_keys=True, default=str)),
    )
    return f"{resource.name}:{json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str)}"


def _cached_page(cache: CacheStore | None, key: str) -> dict | None:
    cached = safe_get(cache, key)
    if cached is None:
        return None
    try:
        PaginatedResult.model_validate(cached)
    except ValidationError:
        _LOG.warning("Ignoring malformed cached page key=%s", key)
        return None
    return cached


def run_list_query(
    query: Query,
    resource: ListResource,
    request: ListQueryRequest,
    *,
    serialize: Callable[[Any], Any],
    cache: CacheStore | None = None,
    ttl_seconds: int | None = None,
) -> dict:
    validate_request(resource, request)
    key = list_cache_key(resource, request)
    cached = _cached_page(cache, key)
    if cached is not None:
        return cached

    result = paginate(query, resource, request)
    payload = {
        "data": [serialize(row) for row in result.data],
        "metadata": result.metadata.model_dump(by_alias=True),
    }
    safe_set(cache, key, payload, ttl_seconds)
    return payload
