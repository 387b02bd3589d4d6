"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 1 admin (admin@example.com / admin)
  - 4 riders and 3 drivers
  - 8 sample rides across the lifecycle, some rated
  - 1 settlement covering the finished rides
"""

import asyncio

from sqlalchemy import text

from src.config import settings
from src.domain.enums import UserRole
from src.domain.events import RideEventBus
from src.domain.lifecycle import RideStatusMachine
from src.infrastructure.database import engine, unit_of_work
from src.infrastructure.locks import LocalLockProvider
from src.infrastructure.models import RideModel, SettlementModel, UserModel
from src.infrastructure.repositories import (
    RideRepository,
    SettlementRepository,
    UserRepository,
)
from src.services.hooks import build_save_interceptors

# Tehran, [lng, lat]
CENTER = (51.3890, 35.6892)


USERS = [
    {"name": "Admin", "email": "admin@example.com", "mobile": "09120000000", "role": UserRole.ADMIN},
    {"name": "Sara Ahmadi", "email": "sara@example.com", "mobile": "09120000001", "role": UserRole.RIDER},
    {"name": "Reza Karimi", "email": "reza@example.com", "mobile": "09120000002", "role": UserRole.RIDER},
    {"name": "Nazanin Rahimi", "email": "nazanin@example.com", "mobile": "09120000003", "role": UserRole.RIDER},
    {"name": "Omid Tehrani", "email": "omid@example.com", "mobile": "09120000004", "role": UserRole.RIDER},
    {"name": "Alireza Hosseini", "email": "alireza@example.com", "mobile": "09130000001", "role": UserRole.DRIVER},
    {"name": "Mina Jafari", "email": "mina@example.com", "mobile": "09130000002", "role": UserRole.DRIVER},
    {"name": "Hamid Moradi", "email": "hamid@example.com", "mobile": "09130000003", "role": UserRole.DRIVER},
]

# (rider index, driver index, status, rider rate or None, cost)
RIDES = [
    (1, 5, "finished", 8, 120000),
    (2, 5, "finished", 6, 95000),
    (3, 6, "finished", None, 180000),
    (4, 6, "started", None, 70000),
    (1, 7, "accepted", None, 60000),
    (2, None, "requested", None, None),
    (3, 7, "cancelled", None, None),
    (4, 5, "arrived", None, 45000),
]


def _point(offset: float) -> dict:
    return {"type": "Point", "coordinates": [CENTER[0] + offset, CENTER[1] + offset]}


async def seed():
    machine = RideStatusMachine(settings.ride_statuses, settings.ride_cancelled_status)
    interceptors = build_save_interceptors(LocalLockProvider(), machine, RideEventBus())

    async with unit_of_work() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        users = UserRepository(session, interceptors)
        rides = RideRepository(session, interceptors)
        settlements = SettlementRepository(session, interceptors)

        # ── Users ─────────────────────────────────────────────────────
        user_models = []
        for u in USERS:
            m = UserModel(
                name=u["name"],
                email=u["email"],
                mobile=u["mobile"],
                role=u["role"].value,
                password="admin" if u["role"] is UserRole.ADMIN else "secret",
                active=True,
            )
            user_models.append(await users.save(m))
        print(f"  Created {len(user_models)} users")

        # ── Rides ─────────────────────────────────────────────────────
        # Each ride walks the lifecycle so every step runs the save hooks.
        finished = []
        for i, (rider, driver, status, rate, cost) in enumerate(RIDES):
            ride = await rides.save(
                RideModel(
                    user_id=user_models[rider].id,
                    driver_id=user_models[driver].id if driver is not None else None,
                    src=_point(0.01 * i),
                    des=[_point(0.02 * i)["coordinates"]],
                    cost=cost,
                    payment_method="cash",
                )
            )
            if status == machine.cancelled:
                ride.status = status
                await rides.save(ride)
            elif status != machine.initial:
                for step in machine.statuses[1 : machine.statuses.index(status) + 1]:
                    ride.status = step
                    await rides.save(ride)
            if rate is not None:
                ride.rate = rate
                await rides.save(ride)
            if status == "finished":
                finished.append(ride.id)
        print(f"  Created {len(RIDES)} rides")

        # ── Settlement ────────────────────────────────────────────────
        settlement = await settlements.save(SettlementModel())
        await rides.mark_settled(finished, settlement.id)
        print(f"  Settled {len(finished)} rides")

    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
