"""Ride status-change subscription point."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

StatusHandler = Callable[[Any, Optional[str]], Awaitable[None]]

ANY_STATUS = "*"


class RideEventBus:
    """Dispatches ``(ride, previous_status)`` to handlers keyed by new status.

    Handlers registered under ``ANY_STATUS`` see every change.  Handler
    errors propagate to the caller so the surrounding unit of work rolls back.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[StatusHandler]] = defaultdict(list)

    def subscribe(self, status: str, handler: StatusHandler) -> None:
        self._handlers[status].append(handler)

    def unsubscribe(self, status: str, handler: StatusHandler) -> None:
        if handler in self._handlers.get(status, []):
            self._handlers[status].remove(handler)

    async def publish(self, ride: Any, previous: Optional[str]) -> None:
        handlers = self._handlers.get(ride.status, []) + self._handlers.get(ANY_STATUS, [])
        if handlers:
            logger.debug(
                "Ride %s status %s -> %s (%d handlers)",
                ride.id, previous, ride.status, len(handlers),
            )
        for handler in handlers:
            await handler(ride, previous)
