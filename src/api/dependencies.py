"""FastAPI dependency injection helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import AsyncIterator, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas import ListingQuery
from src.config import settings
from src.domain.enums import UserRole
from src.domain.events import RideEventBus
from src.domain.exceptions import AuthorizationDenied
from src.domain.lifecycle import RideStatusMachine
from src.domain.listing import ListingParams, parse_nested_query
from src.infrastructure.database import unit_of_work
from src.infrastructure.files import FilePlacement
from src.infrastructure.interceptors import SaveInterceptors
from src.infrastructure.locks import LocalLockProvider, RedisLockProvider
from src.infrastructure.models import UserModel
from src.infrastructure.notifications import SmsSender, build_sms_sender
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import (
    RideRepository,
    SettlementRepository,
    UserRepository,
)
from src.infrastructure.security import decode_token
from src.services.hooks import build_save_interceptors

ride_events = RideEventBus()
_bearer = HTTPBearer(auto_error=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield an async DB session; commit on success, rollback on error."""
    async with unit_of_work() as session:
        yield session


@lru_cache
def get_status_machine() -> RideStatusMachine:
    return RideStatusMachine(settings.ride_statuses, settings.ride_cancelled_status)


@lru_cache
def get_lock_provider():
    if settings.lock_backend == "local":
        return LocalLockProvider()
    return RedisLockProvider(get_redis())


@lru_cache
def get_interceptors() -> SaveInterceptors:
    return build_save_interceptors(get_lock_provider(), get_status_machine(), ride_events)


def get_sms_sender() -> SmsSender:
    return build_sms_sender()


def get_file_placement() -> FilePlacement:
    return FilePlacement(settings.upload_dir)


def get_user_repository(
    db: AsyncSession = Depends(get_db),
    interceptors: SaveInterceptors = Depends(get_interceptors),
) -> UserRepository:
    return UserRepository(db, interceptors)


def get_ride_repository(
    db: AsyncSession = Depends(get_db),
    interceptors: SaveInterceptors = Depends(get_interceptors),
) -> RideRepository:
    return RideRepository(db, interceptors)


def get_settlement_repository(
    db: AsyncSession = Depends(get_db),
    interceptors: SaveInterceptors = Depends(get_interceptors),
) -> SettlementRepository:
    return SettlementRepository(db, interceptors)


def listing_params(request: Request) -> ListingParams:
    """Parse ``search[...]``, ``sort[...]`` and ``pagination[...]`` query keys."""
    nested = parse_nested_query(request.query_params.multi_items())
    try:
        query = ListingQuery.model_validate(nested)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc
    return query.to_params()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    users: UserRepository = Depends(get_user_repository),
) -> UserModel:
    user_id = decode_token(credentials.credentials) if credentials else None
    user = await users.find_by_id(user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: UserModel = Depends(get_current_user)) -> UserModel:
    if user.role != UserRole.ADMIN.value:
        raise AuthorizationDenied("Admin role required")
    return user
