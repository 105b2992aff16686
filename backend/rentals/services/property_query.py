"""Structured predicate builder for property search.

Filters arrive as loosely-typed query values. :func:`build_predicates`
turns them into ``Predicate(field, op, value)`` triples, dropping any
numeric filter that does not parse. :func:`compile_predicates` turns the
triples into bound SQLAlchemy expressions, so the listing query and its
count query share exactly the same WHERE clause::

    predicates = build_predicates(filters)
    where = compile_predicates(predicates)
    select(Property).where(*where)
    select(func.count()).select_from(Property).where(*where)
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import ColumnElement, case, distinct, false, func, or_, select
from sqlalchemy.orm import InstrumentedAttribute

from rentals.models.property import Property, PropertyAmenity, PropertyPetAllowed

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
# Largest OFFSET every supported driver accepts (signed 32-bit).
MAX_OFFSET = 2**31 - 1

# Columns searched by free text, in relevance order.
SEARCH_FIELDS = ("title", "description", "address", "city", "state", "zip_code")
RANKED_FIELDS = ("title", "description", "address", "city")

SORT_KEYS: dict[str, tuple[InstrumentedAttribute, str]] = {
    "newest": (Property.created_at, "desc"),
    "oldest": (Property.created_at, "asc"),
    "views": (Property.views, "desc"),
    "title": (Property.title, "asc"),
    "rating": (Property.average_rating, "desc"),
    "price": (Property.price, "asc"),
}

_COLUMNS: dict[str, InstrumentedAttribute] = {
    "status": Property.status,
    "property_type": Property.property_type,
    "price": Property.price,
    "city": Property.city,
    "bedrooms": Property.bedrooms,
    "bathrooms": Property.bathrooms,
    "square_feet": Property.square_feet,
    "is_verified": Property.is_verified,
    "is_featured": Property.is_featured,
    "host_id": Property.host_id,
    "archived": Property.archived,
}

# field -> (side table, value column)
_SIDE_TABLES = {
    "amenities": (PropertyAmenity, PropertyAmenity.amenity),
    "pets": (PropertyPetAllowed, PropertyPetAllowed.pet_type),
}


@dataclass
class PropertyFilters:
    """Raw search inputs. Numeric values may be strings; bad ones are ignored."""

    status: str | None = None
    property_types: list[str] = field(default_factory=list)
    city: str | None = None
    min_price: Any = None
    max_price: Any = None
    min_bedrooms: Any = None
    min_bathrooms: Any = None
    min_area: Any = None
    max_area: Any = None
    verified: bool | None = None
    featured: bool | None = None
    host_id: uuid.UUID | None = None
    amenities: list[str] = field(default_factory=list)
    pets: list[str] = field(default_factory=list)
    search: str | None = None
    sort: str = "newest"
    order: str | None = None
    page: Any = 1
    limit: Any = DEFAULT_PAGE_SIZE
    include_archived: bool = False


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str  # eq, in, gte, lte, contains, has_all, search
    value: Any


def coerce_int(value: Any) -> int | None:
    """Parse an integer filter value, returning ``None`` when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        parsed = coerce_decimal(value)
        return int(parsed) if parsed is not None else None


def coerce_decimal(value: Any) -> Decimal | None:
    """Parse a decimal filter value, returning ``None`` when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def split_values(values: Any) -> list[str]:
    """Accept ``"a,b"``, ``["a", "b"]`` or ``["a,b"]`` and return ``["a", "b"]``."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    out: list[str] = []
    for value in values:
        for part in str(value).split(","):
            part = part.strip()
            if part and part not in out:
                out.append(part)
    return out


def page_window(page: Any, limit: Any) -> tuple[int, int]:
    """Clamp page/limit to sane values: page >= 1, 1 <= limit <= MAX_PAGE_SIZE.

    Pages past the largest representable offset are pinned to it, so the
    query simply comes back empty.
    """
    size = min(max(coerce_int(limit) or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)
    page_no = max(coerce_int(page) or 1, 1)
    return min(page_no, MAX_OFFSET // size + 1), size


def build_predicates(filters: PropertyFilters) -> list[Predicate]:
    """Translate the present filters into predicate triples."""
    predicates: list[Predicate] = []

    if not filters.include_archived:
        predicates.append(Predicate("archived", "eq", False))
    if filters.status:
        predicates.append(Predicate("status", "eq", filters.status))

    types = split_values(filters.property_types)
    if len(types) == 1:
        predicates.append(Predicate("property_type", "eq", types[0]))
    elif types:
        predicates.append(Predicate("property_type", "in", tuple(types)))

    if filters.city and filters.city.strip():
        predicates.append(Predicate("city", "contains", filters.city.strip()))

    numeric = (
        ("price", "gte", coerce_decimal(filters.min_price)),
        ("price", "lte", coerce_decimal(filters.max_price)),
        ("bedrooms", "gte", coerce_int(filters.min_bedrooms)),
        ("bathrooms", "gte", coerce_decimal(filters.min_bathrooms)),
        ("square_feet", "gte", coerce_decimal(filters.min_area)),
        ("square_feet", "lte", coerce_decimal(filters.max_area)),
    )
    predicates.extend(Predicate(name, op, value) for name, op, value in numeric if value is not None)

    if filters.verified:
        predicates.append(Predicate("is_verified", "eq", True))
    if filters.featured:
        predicates.append(Predicate("is_featured", "eq", True))
    if filters.host_id is not None:
        predicates.append(Predicate("host_id", "eq", filters.host_id))

    amenities = split_values(filters.amenities)
    if amenities:
        predicates.append(Predicate("amenities", "has_all", tuple(amenities)))
    pets = split_values(filters.pets)
    if pets:
        predicates.append(Predicate("pets", "has_all", tuple(pets)))

    if filters.search and filters.search.strip():
        predicates.append(Predicate("text", "search", filters.search.strip()))

    return predicates


def _has_all(field_name: str, values: tuple[str, ...]) -> ColumnElement[bool]:
    table, column = _SIDE_TABLES[field_name]
    return (
        select(table.property_id)
        .where(table.property_id == Property.id, column.in_(values))
        .group_by(table.property_id)
        .having(func.count(distinct(column)) == len(values))
        .exists()
    )


def _text_match(term: str) -> ColumnElement[bool]:
    return or_(*(getattr(Property, name).icontains(term, autoescape=True) for name in SEARCH_FIELDS))


def compile_predicate(predicate: Predicate) -> ColumnElement[bool]:
    """Compile one triple into a bound SQL expression."""
    if predicate.op == "has_all":
        return _has_all(predicate.field, predicate.value)
    if predicate.op == "search":
        return _text_match(predicate.value)

    column = _COLUMNS[predicate.field]
    if predicate.op == "eq":
        return column == predicate.value
    if predicate.op == "in":
        return column.in_(predicate.value) if predicate.value else false()
    if predicate.op == "gte":
        return column >= predicate.value
    if predicate.op == "lte":
        return column <= predicate.value
    if predicate.op == "contains":
        return column.icontains(predicate.value, autoescape=True)
    raise ValueError(f"Unknown predicate operator: {predicate.op}")


def compile_predicates(predicates: list[Predicate]) -> list[ColumnElement[bool]]:
    return [compile_predicate(p) for p in predicates]


def relevance_rank(term: str) -> ColumnElement[int]:
    """1 for a title match, 2 description, 3 address, 4 city, 5 anything else."""
    return case(
        *(
            (getattr(Property, name).icontains(term, autoescape=True), rank)
            for rank, name in enumerate(RANKED_FIELDS, start=1)
        ),
        else_=len(RANKED_FIELDS) + 1,
    )


def order_by_clauses(filters: PropertyFilters) -> list[ColumnElement]:
    """Relevance first when searching, then the sort key, then newest first."""
    clauses: list[ColumnElement] = []
    if filters.search and filters.search.strip():
        clauses.append(relevance_rank(filters.search.strip()))

    column, default_direction = SORT_KEYS.get(filters.sort, SORT_KEYS["newest"])
    direction = (filters.order or default_direction).lower()
    clauses.append(column.asc() if direction == "asc" else column.desc())
    if column is not Property.created_at:
        clauses.append(Property.created_at.desc())
    # Stable pagination when timestamps tie.
    clauses.append(Property.id.asc())
    return clauses


def matched_fields(prop: Property, term: str) -> list[str]:
    """Names of the text fields of ``prop`` that contain ``term`` (case-insensitive)."""
    needle = term.lower()
    return [name for name in SEARCH_FIELDS if needle in (getattr(prop, name) or "").lower()]
