"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes the
storage contract the core relies on (``find``/``count``/``find_by_id``/
``save``/``find_by_id_and_update``/``find_by_id_and_remove``) plus
domain-relevant queries.  ``save`` is the single write path: it validates
the entity against its document schema, runs the registered pre-save
interceptors, flushes, then runs the post-save interceptors.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import ColumnElement, Select, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import load_only

from .interceptors import SaveContext, SaveInterceptors
from .models import RideModel, SettlementModel, UserModel, to_document
from .validation import (
    RideDocument,
    SettlementDocument,
    UserDocument,
    integrity_errors,
    validate_document,
)
from src.domain.enums import UserRole
from src.domain.exceptions import EntityValidationError

M = TypeVar("M")


class BaseRepository(Generic[M]):
    model: Type[M]
    document: Type[BaseModel]

    def __init__(
        self, session: AsyncSession, interceptors: Optional[SaveInterceptors] = None
    ):
        self.session = session
        self.interceptors = interceptors or SaveInterceptors()

    def find(
        self,
        predicate: Optional[ColumnElement[bool]] = None,
        exclude: Iterable[str] = (),
    ) -> Select:
        """SELECT builder; *exclude* names columns left out of the projection."""
        query = select(self.model)
        skip = set(exclude)
        if skip:
            columns = [
                getattr(self.model, attr.key)
                for attr in self.mapper_columns()
                if attr.key not in skip
            ]
            query = query.options(load_only(*columns))
        if predicate is not None:
            query = query.where(predicate)
        return query

    def mapper_columns(self):
        return self.model.__mapper__.column_attrs

    async def count(self, predicate: Optional[ColumnElement[bool]] = None) -> int:
        query = select(func.count()).select_from(self.model)
        if predicate is not None:
            query = query.where(predicate)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def find_by_id(self, entity_id: int) -> Optional[M]:
        return await self.session.get(self.model, entity_id)

    async def save(self, entity: M) -> M:
        validate_document(self.document, to_document(entity))
        ctx = SaveContext.capture(self.session, entity)
        await self.interceptors.run_before(ctx, entity)
        self.session.add(entity)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise EntityValidationError(integrity_errors(exc)) from exc
        await self.interceptors.run_after(ctx, entity)
        return entity

    async def find_by_id_and_update(self, entity_id: int, values: dict[str, Any]) -> Optional[M]:
        entity = await self.find_by_id(entity_id)
        if entity is None:
            return None
        for key, value in values.items():
            setattr(entity, key, value)
        return await self.save(entity)

    async def find_by_id_and_remove(self, entity_id: int) -> bool:
        result = await self.session.execute(
            delete(self.model).where(self.model.id == entity_id)
        )
        return result.rowcount > 0


class UserRepository(BaseRepository[UserModel]):
    model = UserModel
    document = UserDocument

    async def get_for_rate_update(self, user_id: int) -> Optional[UserModel]:
        """SELECT ... FOR UPDATE, refreshing any copy already in the session."""
        result = await self.session.execute(
            select(UserModel)
            .where(UserModel.id == user_id)
            .where(UserModel.role == UserRole.DRIVER.value)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_driver(self, user_id: int) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(
                UserModel.id == user_id, UserModel.role == UserRole.DRIVER.value
            )
        )
        return result.scalar_one_or_none()


class RideRepository(BaseRepository[RideModel]):
    model = RideModel
    document = RideDocument

    async def get_many(self, ride_ids: Iterable[int]) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(RideModel.id.in_(list(ride_ids)))
        )
        return list(result.scalars().all())

    async def mark_settled(self, ride_ids: Iterable[int], settlement_id: int) -> int:
        """Bulk-flag rides as settled; bypasses save interceptors."""
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id.in_(list(ride_ids)))
            .values(is_settled=True, settlement_id=settlement_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount


class SettlementRepository(BaseRepository[SettlementModel]):
    model = SettlementModel
    document = SettlementDocument

    async def list_recent(self, limit: int = 100) -> list[SettlementModel]:
        result = await self.session.execute(
            select(SettlementModel).order_by(SettlementModel.date.desc()).limit(limit)
        )
        return list(result.scalars().all())
