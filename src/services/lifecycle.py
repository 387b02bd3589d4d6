"""
Ride save hooks
===============

One pre-save interception point for rides, run by ``RideRepository.save``:

1. default and validate the status against the configured machine;
2. reject illegal status moves and un-settling a settled ride;
3. if the caller did **not** touch ``rate`` in this save, fold the ride's
   rating into its driver's rate before the ride is written; if the caller
   did set it, the rider-supplied value is kept and nothing is aggregated.

After a successful save, status changes are published on the event bus.
"""

from __future__ import annotations

import logging

from src.domain.events import RideEventBus
from src.domain.exceptions import EntityValidationError
from src.domain.lifecycle import RideStatusMachine
from src.domain.rating import DEFAULT_RATE
from src.infrastructure.interceptors import SaveContext
from src.infrastructure.models import RideModel

from .rating import RatingAggregator

logger = logging.getLogger(__name__)


class RideLifecycle:
    def __init__(
        self,
        machine: RideStatusMachine,
        aggregator: RatingAggregator,
        events: RideEventBus,
    ):
        self.machine = machine
        self.aggregator = aggregator
        self.events = events

    async def before_save(self, ctx: SaveContext, ride: RideModel) -> None:
        self._check_status(ctx, ride)
        self._check_settlement(ctx, ride)

        if ctx.touched("rate"):
            logger.debug("Ride %s rate set explicitly; skipping aggregation", ride.id)
            return
        if ride.driver_id is None:
            return
        ride_rate = DEFAULT_RATE if ride.rate is None else ride.rate
        await self.aggregator.apply(ctx.session, ride.driver_id, ride_rate)

    async def after_save(self, ctx: SaveContext, ride: RideModel) -> None:
        if ctx.is_new or ctx.touched("status"):
            await self.events.publish(ride, ctx.previous.get("status"))

    def _check_status(self, ctx: SaveContext, ride: RideModel) -> None:
        if ride.status is None:
            ride.status = self.machine.initial
        if not self.machine.is_known(ride.status):
            allowed = ", ".join(self.machine.statuses)
            raise EntityValidationError(
                {"status": f"`{ride.status}` is not a valid ride status ({allowed})."}
            )
        previous = ctx.previous.get("status")
        if not ctx.is_new and previous is not None and ctx.touched("status"):
            self.machine.ensure_transition(previous, ride.status)

    def _check_settlement(self, ctx: SaveContext, ride: RideModel) -> None:
        if ctx.previous.get("is_settled") and not ride.is_settled:
            raise EntityValidationError(
                {"is_settled": "A settled ride cannot be marked unsettled."}
            )
