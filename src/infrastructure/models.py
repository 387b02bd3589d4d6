"""
SQLAlchemy ORM models.

Tables
------
* ``users``        -- riders, drivers and admins
* ``rides``        -- individual trips
* ``settlements``  -- financial reconciliation events

Geo data is stored as GeoJSON in JSON columns (``{"type": "Point",
"coordinates": [lng, lat]}``; a route is a list of ``[lng, lat]`` pairs).

Users and rides reference each other by bare id (no FK constraint, no
cascade): deleting a user leaves their rides in place.

Indexes
-------
* **B-Tree** on ``rides.status``, ``rides.user_id``, ``rides.driver_id``,
  ``rides.is_settled`` and ``users.role`` for the listing filters.
"""

from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    inspect,
)

from .database import Base
from src.domain.enums import UserRole
from src.domain.rating import DEFAULT_RATE

SENSITIVE_USER_FIELDS = ("password", "salt")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _origin() -> dict:
    return {"type": "Point", "coordinates": [0, 0]}


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=True)
    mobile = Column(String(20), unique=True, nullable=True)
    national_code = Column(String(20), nullable=True)
    email = Column(String(255), unique=True, nullable=True)
    password = Column(String(255), nullable=True)
    salt = Column(String(64), nullable=True)
    role = Column(String(16), default=UserRole.RIDER.value, nullable=False)
    active = Column(Boolean, default=False, nullable=False)
    rate = Column(Float, default=DEFAULT_RATE, nullable=False)
    activation_code = Column(String(10), nullable=True)
    account_number = Column(String(64), nullable=True)
    driver_state = Column(String(32), nullable=True)
    app_id = Column(String(255), nullable=True)
    location = Column(JSON, nullable=True)
    last_state = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_users_role", "role"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True)
    driver_id = Column(Integer, nullable=True)

    src = Column(JSON, nullable=True)
    des = Column(JSON, nullable=True)
    loc = Column(JSON, default=_origin)

    distance = Column(Float, nullable=True)
    date = Column(DateTime(timezone=True), default=utcnow)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    start_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Float, nullable=True)
    cost = Column(Float, nullable=True)
    payment_method = Column(String(32), nullable=True)
    rate = Column(Float, default=DEFAULT_RATE, nullable=False)
    description = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False)
    is_settled = Column(Boolean, default=False, nullable=False)
    settlement_id = Column(Integer, nullable=True)
    subscribers = Column(JSON, default=list)

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_user", "user_id"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_settled", "is_settled"),
    )


class SettlementModel(Base):
    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(DateTime(timezone=True), default=utcnow)


def to_document(entity: Any, exclude: Iterable[str] = ()) -> dict:
    """Plain ``{attribute: value}`` view of an ORM entity's columns."""
    skip = set(exclude)
    return {
        attr.key: getattr(entity, attr.key)
        for attr in inspect(type(entity)).column_attrs
        if attr.key not in skip
    }
