"""
Ride endpoints
==============

GET    /api/v1/rides                 -- search / sort / paginate (own rides unless admin)
POST   /api/v1/rides                 -- request a ride
GET    /api/v1/rides/{ride_id}       -- ride details
PATCH  /api/v1/rides/{ride_id}       -- JSON Patch (admin)
PUT    /api/v1/rides/{ride_id}/status -- move the ride through its lifecycle
PUT    /api/v1/rides/{ride_id}/rate   -- rider rates the ride
DELETE /api/v1/rides/{ride_id}       -- delete (admin)
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy import or_

from src.api.dependencies import (
    get_current_user,
    get_ride_repository,
    listing_params,
    require_admin,
)
from src.api.middleware import limiter
from src.api.schemas import (
    ListingResponse,
    RideCreate,
    RideRateUpdate,
    RideResponse,
    RideStatusUpdate,
)
from src.config import settings
from src.domain.enums import UserRole
from src.domain.exceptions import AuthorizationDenied, EntityValidationError, NotFoundError
from src.domain.listing import ListingParams
from src.infrastructure.models import RideModel, UserModel
from src.infrastructure.query import FieldCatalog
from src.infrastructure.repositories import RideRepository, UserRepository
from src.services.listing import ListingEngine
from src.services.patching import PatchApplier

router = APIRouter(prefix="/rides", tags=["rides"])

RIDE_FIELDS = FieldCatalog.for_model(
    RideModel,
    extra_exact=("id", "status", "is_settled", "user_id", "driver_id", "settlement_id"),
)


def _is_admin(user: UserModel) -> bool:
    return user.role == UserRole.ADMIN.value


async def _load(rides: RideRepository, ride_id: int) -> RideModel:
    ride = await rides.find_by_id(ride_id)
    if ride is None:
        raise NotFoundError("Ride", ride_id)
    return ride


@router.get(
    "",
    response_model=ListingResponse,
    summary="List rides with search, sort and pagination",
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    params: ListingParams = Depends(listing_params),
    rides: RideRepository = Depends(get_ride_repository),
    user: UserModel = Depends(get_current_user),
):
    scope = None
    if not _is_admin(user):
        scope = or_(RideModel.user_id == user.id, RideModel.driver_id == user.id)
    page = await ListingEngine(rides, RIDE_FIELDS).list(params, scope=scope)
    return ListingResponse(data=page.data, number_of_pages=page.number_of_pages)


@router.post("", status_code=201, response_model=RideResponse, summary="Request a ride")
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreate,
    rides: RideRepository = Depends(get_ride_repository),
    user: UserModel = Depends(get_current_user),
):
    if body.driver_id is not None:
        if await UserRepository(rides.session).get_driver(body.driver_id) is None:
            raise EntityValidationError({"driver_id": f"User {body.driver_id} is not a driver."})
    ride = RideModel(**body.model_dump(exclude_none=True, mode="json"))
    ride.user_id = user.id
    return await rides.save(ride)


@router.get("/{ride_id}", response_model=RideResponse, summary="Ride details")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    rides: RideRepository = Depends(get_ride_repository),
    user: UserModel = Depends(get_current_user),
):
    ride = await _load(rides, ride_id)
    if not _is_admin(user) and user.id not in (ride.user_id, ride.driver_id):
        raise AuthorizationDenied("Not a participant of this ride")
    return ride


@router.patch(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Apply a JSON Patch to a ride",
    responses={422: {"description": "Per-field validation errors"}},
)
@limiter.limit(settings.rate_limit)
async def patch_ride(
    request: Request,
    ride_id: int,
    operations: list[dict[str, Any]] = Body(...),
    rides: RideRepository = Depends(get_ride_repository),
    _: UserModel = Depends(require_admin),
):
    return await PatchApplier(rides, "Ride").apply(ride_id, operations)


@router.put(
    "/{ride_id}/status",
    response_model=RideResponse,
    summary="Change the ride status",
    responses={409: {"description": "Illegal status transition"}},
)
@limiter.limit(settings.rate_limit)
async def update_status(
    request: Request,
    ride_id: int,
    body: RideStatusUpdate,
    rides: RideRepository = Depends(get_ride_repository),
    user: UserModel = Depends(get_current_user),
):
    ride = await _load(rides, ride_id)
    if not _is_admin(user) and user.id != ride.driver_id:
        raise AuthorizationDenied("Only the ride's driver can change its status")
    ride.status = body.status
    return await rides.save(ride)


@router.put("/{ride_id}/rate", response_model=RideResponse, summary="Rate the ride")
@limiter.limit(settings.rate_limit)
async def rate_ride(
    request: Request,
    ride_id: int,
    body: RideRateUpdate,
    rides: RideRepository = Depends(get_ride_repository),
    user: UserModel = Depends(get_current_user),
):
    ride = await _load(rides, ride_id)
    if not _is_admin(user) and user.id != ride.user_id:
        raise AuthorizationDenied("Only the ride's rider can rate it")
    ride.rate = body.rate
    return await rides.save(ride)


@router.delete("/{ride_id}", status_code=204, summary="Delete a ride")
@limiter.limit(settings.rate_limit)
async def delete_ride(
    request: Request,
    ride_id: int,
    rides: RideRepository = Depends(get_ride_repository),
    _: UserModel = Depends(require_admin),
):
    if not await rides.find_by_id_and_remove(ride_id):
        raise NotFoundError("Ride", ride_id)
    return Response(status_code=204)
