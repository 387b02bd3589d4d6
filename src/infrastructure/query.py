"""
Predicate builder: raw search mapping -> SQLAlchemy WHERE clause.

Field names are looked up in an explicit per-model ``FieldCatalog``; a name
outside the catalog never reaches the query.  Exact-match fields are coerced
to the column type, the reserved ``role`` field is always exact, and every
other searchable text field becomes a case-insensitive substring regular
expression.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import JSON, ColumnElement, and_, inspect, true

from src.domain.exceptions import InvalidSearchError

EXACT_MATCH_FIELDS = frozenset({"active", "rate", "date"})
RESERVED_EXACT_FIELDS = frozenset({"role"})

_UNPORTABLE_SYNTAX = re.compile(r"\(\?P|\(\?<[A-Za-z_]|(?<!\\)\{,")


@dataclass(frozen=True)
class FieldCatalog:
    model: type
    exact: Mapping[str, TypeAdapter] = field(default_factory=dict)
    patterns: frozenset[str] = frozenset()
    sortable: frozenset[str] = frozenset()
    hidden: frozenset[str] = frozenset()

    @classmethod
    def for_model(
        cls,
        model: type,
        *,
        extra_exact: Iterable[str] = (),
        hidden: Iterable[str] = (),
    ) -> "FieldCatalog":
        hidden = frozenset(hidden)
        exact_names = EXACT_MATCH_FIELDS | RESERVED_EXACT_FIELDS | frozenset(extra_exact)
        exact: dict[str, TypeAdapter] = {}
        patterns: set[str] = set()
        sortable: set[str] = set()
        for attr in inspect(model).column_attrs:
            if attr.key in hidden:
                continue
            column_type = attr.columns[0].type
            if isinstance(column_type, JSON):
                continue
            python_type = column_type.python_type
            sortable.add(attr.key)
            if attr.key in exact_names:
                exact[attr.key] = TypeAdapter(python_type)
            elif python_type is str:
                patterns.add(attr.key)
        return cls(
            model=model,
            exact=exact,
            patterns=frozenset(patterns),
            sortable=frozenset(sortable),
            hidden=hidden,
        )

    def column(self, name: str):
        return getattr(self.model, name)


def compile_pattern(value: Any) -> str:
    """Validate *value* as a regular expression and make it case-insensitive.

    Named groups and open-ended ``{,n}`` quantifiers compile in Python but
    not in PostgreSQL; both are refused.
    """
    pattern = str(value)
    re.compile(pattern, re.IGNORECASE)
    if _UNPORTABLE_SYNTAX.search(pattern):
        raise re.error("named groups and {,n} quantifiers are not supported", pattern)
    # Embedded flag understood by both Python's re (SQLite REGEXP) and
    # PostgreSQL advanced regular expressions.
    return "(?i)" + pattern


def build_predicate(
    catalog: FieldCatalog, search: Optional[Mapping[str, Any]]
) -> ColumnElement[bool]:
    """Translate *search* into a WHERE clause; an empty search matches all."""
    if not search:
        return true()

    clauses: list[ColumnElement[bool]] = []
    errors: dict[str, str] = {}
    for name, raw in search.items():
        if name in catalog.exact:
            try:
                value = catalog.exact[name].validate_python(raw)
            except ValidationError as exc:
                errors[name] = exc.errors()[0]["msg"]
                continue
            clauses.append(catalog.column(name) == value)
        elif name in catalog.patterns:
            try:
                pattern = compile_pattern(raw)
            except re.error as exc:
                errors[name] = f"Invalid search pattern: {exc}"
                continue
            clauses.append(catalog.column(name).regexp_match(pattern))
        else:
            errors[name] = "Unknown search field"

    if errors:
        raise InvalidSearchError(errors)
    return and_(true(), *clauses)
