"""Query-string translation for product listing.

Turns the flat, untyped mapping a client sends as a query string into a
typed QuerySpec (filters, ordering, pagination window and projection)
that the repository can apply without looking at raw strings again.

Example:
    ?price[gte]=10&isNew=true&sort=-price,name&fields=name,price&page=2&limit=5
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from app.catalog.exceptions import InvalidArgumentError
from app.infrastructure.config import settings


class Operator(str, Enum):
    """Supported filter operators."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"


@dataclass(frozen=True)
class Predicate:
    """A single ``field <op> value`` condition."""

    field: str
    op: Operator
    value: Any


@dataclass(frozen=True)
class SortField:
    """One ordering term."""

    field: str
    descending: bool = False


@dataclass
class QuerySpec:
    """Structured listing query.

    Attributes:
        where: Predicates combined with AND. Empty matches everything.
        search: Optional free-text term matched against name/description.
        order_by: Ordering terms, empty means the caller's default.
        skip: Rows to skip.
        take: Page size.
        select: Columns to return, ``None`` for all.
    """

    where: list[Predicate] = field(default_factory=list)
    search: str | None = None
    order_by: list[SortField] = field(default_factory=list)
    skip: int = 0
    take: int = 20
    select: list[str] | None = None


# ============================================================================
# Value coercion
# ============================================================================


_TRUE = {"true", "1", "yes", "y", "on"}
_FALSE = {"false", "0", "no", "n", "off", ""}


def coerce_bool(value: Any) -> bool:
    """Coerce a loosely-typed value to bool.

    Accepts real booleans, numbers, and the strings
    true/false/1/0/yes/no/y/n/on/off (case-insensitive, blank is False).

    Raises:
        ValueError: If the value is not recognised.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def coerce_int(value: Any) -> int:
    """Coerce to int, accepting integral floats such as ``"10.0"``.

    Raises:
        ValueError: If the value is not a whole number.
    """
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        return value
    number = coerce_decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"not an integer: {value!r}")
    return int(number)


def coerce_decimal(value: Any) -> Decimal:
    """Coerce to Decimal.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return number


def coerce_float(value: Any) -> float:
    """Coerce to float through Decimal so NaN/inf are rejected."""
    return float(coerce_decimal(value))


def coerce_datetime(value: Any) -> datetime:
    """Coerce an ISO-8601 string to datetime."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).strip())


def coerce_str(value: Any) -> str:
    """Coerce to stripped string."""
    return str(value).strip()


# ============================================================================
# Field registry
# ============================================================================


_ORDERABLE = {Operator.EQ, Operator.NE, Operator.GT, Operator.GTE, Operator.LT, Operator.LTE, Operator.IN}
_TEXT = {Operator.EQ, Operator.NE, Operator.IN, Operator.CONTAINS}
_FLAG = {Operator.EQ, Operator.NE}


@dataclass(frozen=True)
class _FieldType:
    coerce: Callable[[Any], Any]
    operators: frozenset[Operator]


_STRING = _FieldType(coerce_str, frozenset(_TEXT))
_IDENT = _FieldType(coerce_str, frozenset({Operator.EQ, Operator.NE, Operator.IN}))
_INT = _FieldType(coerce_int, frozenset(_ORDERABLE))
_DECIMAL = _FieldType(coerce_decimal, frozenset(_ORDERABLE))
_FLOAT = _FieldType(coerce_float, frozenset(_ORDERABLE))
_BOOL = _FieldType(coerce_bool, frozenset(_FLAG))
_DATETIME = _FieldType(coerce_datetime, frozenset(_ORDERABLE - {Operator.IN}))

PRODUCT_FIELDS: dict[str, _FieldType] = {
    "id": _IDENT,
    "name": _STRING,
    "slug": _IDENT,
    "sku": _IDENT,
    "description": _STRING,
    "price": _DECIMAL,
    "discount": _FLOAT,
    "stock": _INT,
    "is_new": _BOOL,
    "is_trending": _BOOL,
    "is_best_seller": _BOOL,
    "is_featured": _BOOL,
    "category_id": _IDENT,
    "images": _FieldType(coerce_str, frozenset()),
    "created_at": _DATETIME,
    "updated_at": _DATETIME,
}

RESERVED_KEYS = {"page", "limit", "page_size", "pageSize", "sort", "fields", "search"}
UNSORTABLE_FIELDS = {"images", "description"}

_FILTER_KEY = re.compile(r"^(?P<field>[A-Za-z_]+)(?:\[(?P<op>[a-z]+)\])?$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_field(name: str) -> str:
    """Map ``isBestSeller``, ``is_best_seller`` or ``SKU`` to the column name."""
    name = name.strip()
    if name.isupper():
        return name.lower()
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _resolve_field(name: str, context: str) -> str:
    column = normalize_field(name)
    if column not in PRODUCT_FIELDS:
        raise InvalidArgumentError(
            f"Unknown {context} field: {name}",
            details={"field": name},
        )
    return column


# ============================================================================
# Builder
# ============================================================================


class QueryFeatures:
    """Chainable translator from query-string mapping to QuerySpec.

    Stages are meant to run in the order filter, sort, limit_fields,
    paginate; each one reads only the raw mapping, so none depends on
    another's output.

    Example usage:
        spec = (
            QueryFeatures(request.query_params)
            .filter()
            .sort()
            .limit_fields()
            .paginate()
            .build()
        )
    """

    def __init__(
        self,
        query_string: Mapping[str, Any],
        default_page_size: int | None = None,
        max_page_size: int | None = None,
    ) -> None:
        self.query = dict(query_string)
        self.default_page_size = default_page_size or settings.default_page_size
        self.max_page_size = max_page_size or settings.max_page_size
        self._spec = QuerySpec(take=self.default_page_size)

    def filter(self) -> "QueryFeatures":
        """Parse every non-reserved key into a predicate."""
        predicates: list[Predicate] = []

        for key, raw in self.query.items():
            if key in RESERVED_KEYS:
                continue

            match = _FILTER_KEY.match(key)
            if not match:
                raise InvalidArgumentError(
                    f"Malformed filter key: {key}", details={"key": key}
                )

            column = _resolve_field(match.group("field"), "filter")
            op_name = match.group("op") or Operator.EQ.value
            try:
                op = Operator(op_name)
            except ValueError:
                raise InvalidArgumentError(
                    f"Unknown filter operator: {op_name}",
                    details={"key": key, "operator": op_name},
                ) from None

            field_type = PRODUCT_FIELDS[column]
            if op not in field_type.operators:
                raise InvalidArgumentError(
                    f"Operator '{op.value}' is not supported for field '{column}'",
                    details={"key": key, "operator": op.value},
                )

            try:
                if op is Operator.IN:
                    value: Any = [
                        field_type.coerce(part)
                        for part in str(raw).split(",")
                        if part.strip()
                    ]
                else:
                    value = field_type.coerce(raw)
            except ValueError as exc:
                raise InvalidArgumentError(
                    f"Invalid value for '{key}': {raw}",
                    details={"key": key, "value": str(raw)},
                ) from exc

            predicates.append(Predicate(field=column, op=op, value=value))

        search = str(self.query.get("search") or "").strip()
        self._spec.search = search or None
        self._spec.where = predicates
        return self

    def sort(self) -> "QueryFeatures":
        """Parse ``sort=-price,name`` into ordering terms."""
        raw = self.query.get("sort")
        order_by: list[SortField] = []

        if raw:
            for term in str(raw).split(","):
                term = term.strip()
                if not term:
                    continue
                descending = term.startswith("-")
                column = _resolve_field(term.lstrip("+-"), "sort")
                if column in UNSORTABLE_FIELDS:
                    raise InvalidArgumentError(
                        f"Cannot sort by field: {column}", details={"field": column}
                    )
                order_by.append(SortField(field=column, descending=descending))

        self._spec.order_by = order_by
        return self

    def limit_fields(self) -> "QueryFeatures":
        """Parse ``fields=name,price`` into a projection (id always kept)."""
        raw = self.query.get("fields")
        if not raw:
            self._spec.select = None
            return self

        select = ["id"]
        for name in str(raw).split(","):
            if not name.strip():
                continue
            column = _resolve_field(name, "select")
            if column not in select:
                select.append(column)

        self._spec.select = select
        return self

    def paginate(self) -> "QueryFeatures":
        """Compute skip/take from ``page`` and ``limit``."""
        page = self._int_param("page", default=1)
        limit_key = next(
            (k for k in ("limit", "page_size", "pageSize") if k in self.query), None
        )
        take = (
            self._int_param(limit_key, default=self.default_page_size)
            if limit_key
            else self.default_page_size
        )

        page = max(page, 1)
        take = min(max(take, 1), self.max_page_size)

        self._spec.skip = (page - 1) * take
        self._spec.take = take
        return self

    def build(self) -> QuerySpec:
        """Return the finished spec."""
        return self._spec

    def _int_param(self, key: str, default: int) -> int:
        raw = self.query.get(key)
        if raw is None or str(raw).strip() == "":
            return default
        try:
            return int(str(raw).strip())
        except ValueError:
            raise InvalidArgumentError(
                f"'{key}' must be an integer",
                details={"key": key, "value": str(raw)},
            ) from None
