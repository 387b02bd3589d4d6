"""
Rating Aggregator
=================

Folds a finalised ride's rating into its driver's rate:
``new = (current + ride) / 2``.

Concurrency safety
------------------
* A **keyed lock** on ``driver-rate:<driver_id>`` (Redis ``DistributedLock``
  across processes, ``LocalLock`` in-process) is held until the surrounding
  unit of work commits or rolls back, so two finalisations for the same
  driver never interleave their read-modify-write.
* **SELECT … FOR UPDATE** on the driver row guards against writers that do
  not go through the lock.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.exceptions import DriverNotFoundError
from src.domain.rating import aggregate_rate
from src.infrastructure.database import hold_until_end_of_transaction
from src.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)


class RatingAggregator:
    def __init__(self, locks):
        self.locks = locks

    async def apply(self, session: AsyncSession, driver_id: int, ride_rate: float) -> float:
        """Update and flush the driver's rate; return the new value."""
        await hold_until_end_of_transaction(
            session, self.locks.lock(f"driver-rate:{driver_id}")
        )
        driver = await UserRepository(session).get_for_rate_update(driver_id)
        if driver is None:
            raise DriverNotFoundError(driver_id)

        previous = driver.rate
        driver.rate = aggregate_rate(previous, ride_rate)
        await session.flush()
        logger.info(
            "Driver %s rate %s -> %s (ride rated %s)",
            driver_id, previous, driver.rate, ride_rate,
        )
        return driver.rate
