"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from src.config import settings
from src.domain.exceptions import InvalidSearchError
from src.domain.listing import ListingParams, Pagination, SortSpec
from src.infrastructure.validation import Coordinates, GeoPoint


# ── Listing query (bracket notation, see parse_nested_query) ──────────


class SortQuery(BaseModel):
    predicate: Optional[str] = None
    reverse: Optional[str] = None


class PaginationQuery(BaseModel):
    start: int = Field(0, ge=0)
    number: int = Field(settings.default_page_size, ge=1, le=settings.max_page_size)


class ListingQuery(BaseModel):
    search: dict[str, Union[str, dict[str, Any]]] = {}
    sort: SortQuery = SortQuery()
    pagination: PaginationQuery = PaginationQuery()

    def to_params(self) -> ListingParams:
        search = self.search
        # smart-table clients nest filters under search[predicateObject]
        if isinstance(search.get("predicateObject"), dict):
            search = search["predicateObject"]
        bad = {
            key: "Search values must be plain text"
            for key, value in search.items()
            if not isinstance(value, str)
        }
        if bad:
            raise InvalidSearchError(bad)

        sort = None
        if self.sort.predicate:
            # only the literal string "true" reverses the order
            sort = SortSpec(self.sort.predicate, reverse=self.sort.reverse == "true")
        return ListingParams(
            search=dict(search),
            sort=sort,
            pagination=Pagination(self.pagination.start, self.pagination.number),
        )


class ListingResponse(BaseModel):
    data: list[dict[str, Any]]
    number_of_pages: int = Field(serialization_alias="numberOfPages")


# ── Users ─────────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    mobile: Optional[str] = Field(None, max_length=20)
    national_code: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)
    account_number: Optional[str] = Field(None, max_length=64)
    app_id: Optional[str] = Field(None, max_length=255)
    location: Optional[GeoPoint] = None


class UserEdit(BaseModel):
    email: Optional[str] = Field(None, max_length=255)
    account_number: Optional[str] = Field(None, max_length=64)
    driver_state: Optional[str] = Field(None, max_length=32)
    app_id: Optional[str] = Field(None, max_length=255)
    location: Optional[GeoPoint] = None
    last_state: Optional[str] = Field(None, max_length=64)


class PasswordChange(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=1, max_length=72)


class ConfirmRequest(BaseModel):
    activation_code: str
    app_id: Optional[str] = Field(None, max_length=255)


class UserInfo(BaseModel):
    id: int
    name: Optional[str] = None
    mobile: Optional[str] = None
    national_code: Optional[str] = None
    email: Optional[str] = None
    role: str
    active: bool
    rate: float
    account_number: Optional[str] = None
    driver_state: Optional[str] = None
    app_id: Optional[str] = None
    location: Optional[dict[str, Any]] = None
    last_state: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserProfile(BaseModel):
    id: int
    name: Optional[str] = None
    role: str
    rate: float

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    token: str
    user: UserInfo


class ActivationCodeResponse(BaseModel):
    activation_code: str


# ── Rides ─────────────────────────────────────────────────────────────


class RideCreate(BaseModel):
    driver_id: Optional[int] = None
    src: Optional[GeoPoint] = None
    des: Optional[list[Coordinates]] = None
    distance: Optional[float] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    payment_method: Optional[str] = Field(None, max_length=32)
    description: Optional[str] = Field(None, max_length=200)
    subscribers: Optional[list[str]] = None


class RideStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=20)


class RideRateUpdate(BaseModel):
    rate: float = Field(..., ge=0, le=10)


class RideResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    driver_id: Optional[int] = None
    src: Optional[dict[str, Any]] = None
    des: Optional[list[list[float]]] = None
    loc: Optional[dict[str, Any]] = None
    distance: Optional[float] = None
    date: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    start_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration: Optional[float] = None
    cost: Optional[float] = None
    payment_method: Optional[str] = None
    rate: float
    description: Optional[str] = None
    status: str
    is_settled: bool
    settlement_id: Optional[int] = None
    subscribers: Optional[list[str]] = None

    model_config = {"from_attributes": True}


# ── Settlements ───────────────────────────────────────────────────────


class SettlementCreate(BaseModel):
    ride_ids: list[int] = Field(..., min_length=1)


class SettlementResponse(BaseModel):
    id: int
    date: Optional[datetime] = None
    ride_ids: list[int] = []


class HealthResponse(BaseModel):
    status: str = "ok"
