"""
Settlement endpoints
====================

POST /api/v1/settlements -- settle a batch of rides (admin)
GET  /api/v1/settlements -- most recent settlements (admin)
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select

from src.api.dependencies import (
    get_ride_repository,
    get_settlement_repository,
    require_admin,
)
from src.api.middleware import limiter
from src.api.schemas import SettlementCreate, SettlementResponse
from src.config import settings
from src.domain.exceptions import EntityValidationError, NotFoundError
from src.infrastructure.models import RideModel, SettlementModel, UserModel
from src.infrastructure.repositories import RideRepository, SettlementRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.post(
    "",
    status_code=201,
    response_model=SettlementResponse,
    summary="Settle a batch of rides",
)
@limiter.limit(settings.rate_limit)
async def create_settlement(
    request: Request,
    body: SettlementCreate,
    rides: RideRepository = Depends(get_ride_repository),
    settlements: SettlementRepository = Depends(get_settlement_repository),
    _: UserModel = Depends(require_admin),
):
    ride_ids = sorted(set(body.ride_ids))
    found = await rides.get_many(ride_ids)
    missing = set(ride_ids) - {ride.id for ride in found}
    if missing:
        raise NotFoundError("Ride", ", ".join(str(i) for i in sorted(missing)))
    settled = sorted(ride.id for ride in found if ride.is_settled)
    if settled:
        raise EntityValidationError(
            {"ride_ids": f"Rides already settled: {', '.join(map(str, settled))}"}
        )

    settlement = await settlements.save(SettlementModel())
    count = await rides.mark_settled(ride_ids, settlement.id)
    logger.info("Settlement %s covers %d rides", settlement.id, count)
    return SettlementResponse(id=settlement.id, date=settlement.date, ride_ids=ride_ids)


@router.get("", response_model=list[SettlementResponse], summary="Recent settlements")
@limiter.limit(settings.rate_limit)
async def list_settlements(
    request: Request,
    settlements: SettlementRepository = Depends(get_settlement_repository),
    _: UserModel = Depends(require_admin),
):
    recent = await settlements.list_recent()
    if not recent:
        return []
    result = await settlements.session.execute(
        select(RideModel.settlement_id, RideModel.id)
        .where(RideModel.settlement_id.in_([s.id for s in recent]))
        .order_by(RideModel.id)
    )
    covered: dict[int, list[int]] = {}
    for settlement_id, ride_id in result.all():
        covered.setdefault(settlement_id, []).append(ride_id)
    return [
        SettlementResponse(id=s.id, date=s.date, ride_ids=covered.get(s.id, []))
        for s in recent
    ]
