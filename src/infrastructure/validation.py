"""
Persistence-level document schemas.

Every entity is validated against its document schema right before it is
written, and failures come back as ``{field: message}`` so the form layer
can flag each input.  Integrity errors raised by the database (unique
constraints) are decomposed the same way.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import IntegrityError

from src.domain.enums import UserRole
from src.domain.exceptions import EntityValidationError
from src.domain.rating import MAX_RATE, MIN_RATE

Coordinates = Annotated[list[float], Field(min_length=2, max_length=2)]


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: Coordinates


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class UserDocument(_Document):
    id: Optional[int] = None
    name: Optional[str] = Field(None, max_length=120)
    mobile: Optional[str] = Field(None, max_length=20)
    national_code: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = Field(None, min_length=1, max_length=255)
    salt: Optional[str] = Field(None, max_length=64)
    role: Optional[UserRole] = None
    active: Optional[bool] = None
    rate: Optional[float] = Field(None, ge=MIN_RATE, le=MAX_RATE)
    activation_code: Optional[str] = Field(None, max_length=10)
    account_number: Optional[str] = Field(None, max_length=64)
    driver_state: Optional[str] = Field(None, max_length=32)
    app_id: Optional[str] = Field(None, max_length=255)
    location: Optional[GeoPoint] = None
    last_state: Optional[str] = Field(None, max_length=64)
    created_at: Optional[datetime] = None


class RideDocument(_Document):
    id: Optional[int] = None
    user_id: Optional[int] = None
    driver_id: Optional[int] = None
    src: Optional[GeoPoint] = None
    des: Optional[list[Coordinates]] = None
    loc: Optional[GeoPoint] = None
    distance: Optional[float] = Field(None, ge=0)
    date: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    start_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    payment_method: Optional[str] = Field(None, max_length=32)
    rate: Optional[float] = Field(None, ge=MIN_RATE, le=MAX_RATE)
    description: Optional[str] = Field(None, max_length=200)
    status: Optional[str] = Field(None, max_length=20)
    is_settled: Optional[bool] = None
    settlement_id: Optional[int] = None
    subscribers: Optional[list[str]] = None


class SettlementDocument(_Document):
    id: Optional[int] = None
    date: Optional[datetime] = None


def field_errors(exc: ValidationError) -> dict[str, str]:
    """Map a pydantic error to ``{top-level field: first message}``."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        loc = error.get("loc") or ("__root__",)
        errors.setdefault(str(loc[0]), error["msg"])
    return errors


def validate_document(schema: Type[BaseModel], document: dict[str, Any]) -> BaseModel:
    try:
        return schema.model_validate(document)
    except ValidationError as exc:
        raise EntityValidationError(field_errors(exc)) from exc


_UNIQUE_PATTERNS = (
    re.compile(r"UNIQUE constraint failed: \w+\.(\w+)"),  # sqlite
    re.compile(r"Key \((\w+)\)=\(.*\) already exists"),  # postgresql
)
_NOT_NULL_PATTERNS = (
    re.compile(r"NOT NULL constraint failed: \w+\.(\w+)"),
    re.compile(r'null value in column "(\w+)"'),
)


def integrity_errors(exc: IntegrityError) -> dict[str, str]:
    """Best-effort field mapping for a database integrity error."""
    text = str(exc.orig)
    for pattern in _UNIQUE_PATTERNS:
        match = pattern.search(text)
        if match:
            field = match.group(1)
            return {field: f"The specified {field} is already in use."}
    for pattern in _NOT_NULL_PATTERNS:
        match = pattern.search(text)
        if match:
            field = match.group(1)
            return {field: f"{field} is required."}
    return {"__root__": "The record violates a database constraint."}
