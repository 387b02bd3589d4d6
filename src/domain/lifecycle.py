"""
Ride lifecycle state machine.

The status set is injected (see ``Settings.ride_statuses``): an ordered
progression plus a terminal cancel branch reachable from any non-terminal
status.  The machine only validates; side effects hang off the ride
pre-save hook and the status-change event bus.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .enums import DEFAULT_CANCELLED_STATUS, DEFAULT_RIDE_STATUSES
from .exceptions import InvalidStateTransition


class RideStatusMachine:
    def __init__(
        self,
        progression: Sequence[str] = DEFAULT_RIDE_STATUSES,
        cancelled: str = DEFAULT_CANCELLED_STATUS,
    ):
        if not progression:
            raise ValueError("A ride status progression needs at least one status")
        if cancelled in progression:
            raise ValueError(f"Cancel status {cancelled!r} must not be part of the progression")
        if len(set(progression)) != len(progression):
            raise ValueError("Ride statuses must be unique")
        self.progression: tuple[str, ...] = tuple(progression)
        self.cancelled = cancelled
        self._rank = {status: i for i, status in enumerate(self.progression)}

    @property
    def initial(self) -> str:
        return self.progression[0]

    @property
    def statuses(self) -> tuple[str, ...]:
        return self.progression + (self.cancelled,)

    def is_known(self, status: Optional[str]) -> bool:
        return status in self._rank or status == self.cancelled

    def is_terminal(self, status: str) -> bool:
        return status == self.cancelled or status == self.progression[-1]

    def can_transition(self, current: str, new: str) -> bool:
        if current == new:
            return True
        if not self.is_known(current) or not self.is_known(new):
            return False
        if self.is_terminal(current):
            return False
        if new == self.cancelled:
            return True
        return self._rank[new] > self._rank[current]

    def ensure_transition(self, current: str, new: str) -> None:
        """Raise unless *current* -> *new* is a legal move."""
        if not self.can_transition(current, new):
            raise InvalidStateTransition(
                f"Cannot transition ride from {current} to {new}"
            )
