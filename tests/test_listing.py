"""Listing engine: page arithmetic, sorting, projection and the HTTP envelope."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.exc import DataError, OperationalError

from src.api.schemas import ListingQuery
from src.domain.enums import UserRole
from src.domain.exceptions import InvalidSearchError, PersistenceFault
from src.domain.listing import ListingParams, Pagination, SortSpec, parse_nested_query
from src.infrastructure.models import SENSITIVE_USER_FIELDS, UserModel
from src.infrastructure.query import FieldCatalog
from src.infrastructure.repositories import UserRepository
from src.services.listing import ListingEngine
from tests.conftest import auth

USER_FIELDS = FieldCatalog.for_model(UserModel, hidden=SENSITIVE_USER_FIELDS)


class TestPagination:
    def test_offset_is_page_aligned(self):
        assert Pagination(start=7, number=10).offset == 0
        assert Pagination(start=10, number=10).offset == 10
        assert Pagination(start=25, number=10).offset == 20

    def test_number_of_pages_rounds_up(self):
        assert Pagination(number=10).number_of_pages(25) == 3
        assert Pagination(number=10).number_of_pages(20) == 2
        assert Pagination(number=10).number_of_pages(0) == 0

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            Pagination(start=-1)
        with pytest.raises(ValueError):
            Pagination(number=0)


class TestQueryParsing:
    def test_bracket_keys_nest(self):
        nested = parse_nested_query(
            [
                ("search[predicateObject][name]", "ali"),
                ("sort[predicate]", "name"),
                ("sort[reverse]", "true"),
                ("pagination[start]", "10"),
                ("bogus]", "x"),
            ]
        )
        assert nested == {
            "search": {"predicateObject": {"name": "ali"}},
            "sort": {"predicate": "name", "reverse": "true"},
            "pagination": {"start": "10"},
        }

    def test_predicate_object_is_unwrapped(self):
        params = ListingQuery.model_validate(
            {"search": {"predicateObject": {"name": "ali"}}}
        ).to_params()
        assert params.search == {"name": "ali"}

    @pytest.mark.parametrize("value, expected", [("true", True), ("True", False), ("1", False)])
    def test_only_literal_true_reverses(self, value, expected):
        params = ListingQuery.model_validate(
            {"sort": {"predicate": "name", "reverse": value}}
        ).to_params()
        assert params.sort.reverse is expected

    def test_nested_search_values_rejected(self):
        with pytest.raises(InvalidSearchError):
            ListingQuery.model_validate({"search": {"name": {"$ne": "x"}}}).to_params()


@pytest_asyncio.fixture
async def users(db_session):
    for i in range(25):
        db_session.add(
            UserModel(name=f"user{i:02d}", password="hash", salt="salt", role="rider", rate=i % 11)
        )
    await db_session.flush()
    return UserRepository(db_session)


class TestListingEngine:
    @pytest.mark.asyncio
    async def test_page_and_metadata(self, users):
        page = await ListingEngine(users, USER_FIELDS).list(
            ListingParams(sort=SortSpec("name"), pagination=Pagination(start=7, number=10))
        )
        assert page.number_of_pages == 3
        assert [row["name"] for row in page.data] == [f"user{i:02d}" for i in range(10)]

    @pytest.mark.asyncio
    async def test_last_page_is_partial(self, users):
        page = await ListingEngine(users, USER_FIELDS).list(
            ListingParams(sort=SortSpec("name"), pagination=Pagination(start=20, number=10))
        )
        assert len(page.data) == 5

    @pytest.mark.asyncio
    async def test_reverse_sort(self, users):
        page = await ListingEngine(users, USER_FIELDS).list(
            ListingParams(sort=SortSpec("name", reverse=True), pagination=Pagination(number=2))
        )
        assert [row["name"] for row in page.data] == ["user24", "user23"]

    @pytest.mark.asyncio
    async def test_sensitive_fields_are_not_returned(self, users):
        page = await ListingEngine(users, USER_FIELDS).list(ListingParams())
        assert page.data
        for row in page.data:
            assert "password" not in row
            assert "salt" not in row

    @pytest.mark.asyncio
    async def test_count_follows_the_search(self, users):
        page = await ListingEngine(users, USER_FIELDS).list(
            ListingParams(search={"name": "user1"}, pagination=Pagination(number=3))
        )
        assert page.number_of_pages == 4  # user10..user19

    @pytest.mark.asyncio
    async def test_unknown_sort_field_rejected(self, users):
        with pytest.raises(InvalidSearchError):
            await ListingEngine(users, USER_FIELDS).list(ListingParams(sort=SortSpec("password")))

    @pytest.mark.asyncio
    async def test_storage_failure_is_a_persistence_fault(self, users):
        users.count = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))
        with pytest.raises(PersistenceFault):
            await ListingEngine(users, USER_FIELDS).list(ListingParams())

    @pytest.mark.asyncio
    async def test_pattern_refused_by_the_database_is_a_search_error(self, users):
        users.count = AsyncMock(
            side_effect=DataError("SELECT", {}, Exception("invalid regular expression"))
        )
        with pytest.raises(InvalidSearchError) as info:
            await ListingEngine(users, USER_FIELDS).list(
                ListingParams(search={"name": "ali", "active": "true"})
            )
        assert list(info.value.fields) == ["name"]

    @pytest.mark.asyncio
    async def test_data_error_without_patterns_is_a_persistence_fault(self, users):
        users.count = AsyncMock(side_effect=DataError("SELECT", {}, Exception("bad")))
        with pytest.raises(PersistenceFault):
            await ListingEngine(users, USER_FIELDS).list(ListingParams())


# ── HTTP ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_users_listing_envelope(client: AsyncClient, create_user):
    admin = await create_user(name="Boss", email="boss@example.com", role=UserRole.ADMIN)
    await create_user(name="Alireza", email="ali@example.com")
    await create_user(name="Sara", email="sara@example.com")

    resp = await client.get(
        "/api/v1/users",
        params={
            "search[predicateObject][name]": "ali",
            "sort[predicate]": "name",
            "pagination[number]": "10",
        },
        headers=auth(admin),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["numberOfPages"] == 1
    assert [row["name"] for row in body["data"]] == ["Alireza"]
    assert "password" not in body["data"][0]
    assert "activation_code" not in body["data"][0]


@pytest.mark.asyncio
async def test_invalid_search_is_400(client: AsyncClient, create_user):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    resp = await client.get(
        "/api/v1/users", params={"search[name]": "(unclosed"}, headers=auth(admin)
    )
    assert resp.status_code == 400
    assert "name" in resp.json()["fields"]

    resp = await client.get(
        "/api/v1/users", params={"search[name]": "(?P<n>x)"}, headers=auth(admin)
    )
    assert resp.status_code == 400
    assert "name" in resp.json()["fields"]


@pytest.mark.asyncio
async def test_users_listing_requires_admin(client: AsyncClient, create_user):
    rider = await create_user(name="Rider")
    resp = await client.get("/api/v1/users", headers=auth(rider))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_page_size_is_capped(client: AsyncClient, create_user):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    resp = await client.get(
        "/api/v1/users", params={"pagination[number]": "100000"}, headers=auth(admin)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_rides_listing_is_scoped_to_participants(
    client: AsyncClient, create_user, create_ride
):
    rider = await create_user(name="Rider", mobile="0911")
    other = await create_user(name="Other", mobile="0912")
    await create_ride(user_id=rider.id, description="mine")
    await create_ride(user_id=other.id, description="theirs")

    resp = await client.get("/api/v1/rides", headers=auth(rider))
    assert resp.status_code == 200
    assert [row["description"] for row in resp.json()["data"]] == ["mine"]
