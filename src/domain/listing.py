"""
Listing parameters (search / sort / pagination) and page arithmetic.

Pagination is page-aligned: the effective offset is ``start`` rounded down
to a multiple of ``number``, so ``start=7, number=10`` reads from offset 0.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

_BRACKET_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")


@dataclass(frozen=True)
class Pagination:
    start: int = 0
    number: int = 10

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError("pagination start must be >= 0")
        if self.number < 1:
            raise ValueError("pagination number must be >= 1")

    @property
    def offset(self) -> int:
        return (self.start // self.number) * self.number

    def number_of_pages(self, count: int) -> int:
        return math.ceil(count / self.number)


@dataclass(frozen=True)
class SortSpec:
    predicate: str
    reverse: bool = False


@dataclass(frozen=True)
class ListingParams:
    search: Mapping[str, Any] = field(default_factory=dict)
    sort: Optional[SortSpec] = None
    pagination: Pagination = field(default_factory=Pagination)


@dataclass
class Page:
    data: list[dict]
    number_of_pages: int


def parse_nested_query(items: Iterable[tuple[str, str]]) -> dict:
    """Fold bracket-notation query keys into nested dicts.

    ``[("sort[predicate]", "name"), ("search[predicateObject][role]", "admin")]``
    becomes ``{"sort": {"predicate": "name"},
    "search": {"predicateObject": {"role": "admin"}}}``.
    Keys that are not well formed are ignored; the last value wins.
    """
    result: dict = {}
    for key, value in items:
        match = _BRACKET_KEY.match(key)
        if not match:
            continue
        parts = [match.group(1)] + re.findall(r"\[([^\[\]]*)\]", match.group(2))
        if any(part == "" for part in parts):
            continue
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = value
    return result
