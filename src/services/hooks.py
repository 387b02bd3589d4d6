"""Wiring of the per-entity save interceptors."""

from __future__ import annotations

from src.domain.events import RideEventBus
from src.domain.exceptions import EntityValidationError
from src.domain.lifecycle import RideStatusMachine
from src.infrastructure.interceptors import SaveContext, SaveInterceptors
from src.infrastructure.models import RideModel, UserModel
from src.infrastructure.security import hash_password

from .lifecycle import RideLifecycle
from .rating import RatingAggregator


async def hash_changed_password(ctx: SaveContext, user: UserModel) -> None:
    if ctx.touched("password") and user.password:
        # bcrypt only looks at the first 72 bytes
        if len(user.password.encode("utf-8")) > 72:
            raise EntityValidationError({"password": "Password is too long."})
        user.password, user.salt = hash_password(user.password)


def build_save_interceptors(
    locks, machine: RideStatusMachine, events: RideEventBus
) -> SaveInterceptors:
    interceptors = SaveInterceptors()
    interceptors.before_save(UserModel, hash_changed_password)

    lifecycle = RideLifecycle(machine, RatingAggregator(locks), events)
    interceptors.before_save(RideModel, lifecycle.before_save)
    interceptors.after_save(RideModel, lifecycle.after_save)
    return interceptors
