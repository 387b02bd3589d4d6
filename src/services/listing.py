"""
Listing Engine
==============

search -> predicate (``build_predicate``) -> SELECT with optional ORDER BY
-> page-aligned OFFSET / LIMIT, plus an independent COUNT for the page
metadata.  Hidden columns (password, salt) are neither selected nor
returned.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import ColumnElement, and_
from sqlalchemy.exc import DataError, SQLAlchemyError

from src.domain.exceptions import InvalidSearchError, PersistenceFault
from src.domain.listing import ListingParams, Page
from src.infrastructure.models import to_document
from src.infrastructure.query import FieldCatalog, build_predicate
from src.infrastructure.repositories import BaseRepository

logger = logging.getLogger(__name__)


class ListingEngine:
    def __init__(self, repository: BaseRepository, catalog: FieldCatalog):
        self.repository = repository
        self.catalog = catalog

    async def list(
        self, params: ListingParams, scope: Optional[ColumnElement[bool]] = None
    ) -> Page:
        """*scope* is ANDed with the search predicate (e.g. rides visible to a user)."""
        predicate = build_predicate(self.catalog, params.search)
        if scope is not None:
            predicate = scope if predicate is None else and_(predicate, scope)
        query = self.repository.find(predicate, exclude=self.catalog.hidden)

        if params.sort is not None:
            if params.sort.predicate not in self.catalog.sortable:
                raise InvalidSearchError({params.sort.predicate: "Unknown sort field"})
            column = self.catalog.column(params.sort.predicate)
            query = query.order_by(column.desc() if params.sort.reverse else column.asc())

        pagination = params.pagination
        query = query.offset(pagination.offset).limit(pagination.number)

        count, rows, failure = 0, [], None
        try:
            count = await self.repository.count(predicate)
        except SQLAlchemyError as exc:
            logger.exception("Listing count failed for %s", self.catalog.model.__name__)
            failure = exc
        try:
            result = await self.repository.session.execute(query)
            rows = list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.exception("Listing fetch failed for %s", self.catalog.model.__name__)
            failure = failure or exc
        if failure is not None:
            patterns = self._pattern_fields(params)
            if isinstance(failure, DataError) and patterns:
                # the database refused one of the regular expressions
                raise InvalidSearchError(
                    {name: "Invalid search pattern" for name in patterns}
                ) from failure
            raise PersistenceFault("Listing query failed") from failure

        return Page(
            data=[to_document(row, exclude=self.catalog.hidden) for row in rows],
            number_of_pages=pagination.number_of_pages(count),
        )

    def _pattern_fields(self, params: ListingParams) -> list[str]:
        return sorted(name for name in params.search or {} if name in self.catalog.patterns)
