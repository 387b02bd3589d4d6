"""Domain enumerations."""

import enum


class UserRole(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"


# Default ordered ride progression; the live set comes from settings.
DEFAULT_RIDE_STATUSES: tuple[str, ...] = (
    "requested",
    "accepted",
    "arrived",
    "started",
    "finished",
    "settled",
)
DEFAULT_CANCELLED_STATUS = "cancelled"
