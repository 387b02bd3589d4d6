"""JSON Patch application: all-or-nothing updates with per-field errors."""

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from src.domain.exceptions import InvalidPatchError
from src.domain.patching import apply_operations, changed_fields, strip_identity_ops
from tests.conftest import auth


class TestPatchHelpers:
    def test_identity_ops_are_stripped(self):
        ops = [
            {"op": "replace", "path": "/id", "value": 99},
            {"op": "replace", "path": "/_id", "value": 99},
            {"op": "replace", "path": "/name", "value": "x"},
        ]
        assert strip_identity_ops(ops) == [{"op": "replace", "path": "/name", "value": "x"}]

    def test_apply_leaves_source_untouched(self):
        doc = {"name": "a", "tags": ["x"]}
        patched = apply_operations(doc, [{"op": "add", "path": "/tags/-", "value": "y"}])
        assert patched["tags"] == ["x", "y"]
        assert doc == {"name": "a", "tags": ["x"]}

    def test_failed_operation_names_the_field(self):
        with pytest.raises(InvalidPatchError) as info:
            apply_operations({"name": "a"}, [{"op": "test", "path": "/name", "value": "b"}])
        assert "name" in info.value.errors

    def test_malformed_operation_rejected(self):
        with pytest.raises(InvalidPatchError):
            apply_operations({"name": "a"}, [{"op": "frobnicate", "path": "/name"}])

    def test_changed_fields(self):
        assert changed_fields({"a": 1, "b": 2}, {"a": 1, "b": 3}) == {"b": 3}


@pytest.mark.asyncio
async def test_patch_ride(client: AsyncClient, create_user, create_ride):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    ride = await create_ride(description="old")

    resp = await client.patch(
        f"/api/v1/rides/{ride.id}",
        json=[
            {"op": "replace", "path": "/description", "value": "new"},
            {"op": "replace", "path": "/id", "value": 777},
        ],
        headers=auth(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["id"] == ride.id
    assert resp.json()["description"] == "new"


@pytest.mark.asyncio
async def test_failing_patch_changes_nothing(client: AsyncClient, create_user, create_ride):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    ride = await create_ride(description="old", cost=10)

    resp = await client.patch(
        f"/api/v1/rides/{ride.id}",
        json=[
            {"op": "replace", "path": "/description", "value": "new"},
            {"op": "remove", "path": "/missing_field"},
        ],
        headers=auth(admin),
    )
    assert resp.status_code == 422

    resp = await client.get(f"/api/v1/rides/{ride.id}", headers=auth(admin))
    assert resp.json()["description"] == "old"


@pytest.mark.asyncio
async def test_patch_validation_errors_are_per_field(
    client: AsyncClient, create_user, create_ride
):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    ride = await create_ride()

    resp = await client.patch(
        f"/api/v1/rides/{ride.id}",
        json=[
            {"op": "replace", "path": "/rate", "value": 42},
            {"op": "replace", "path": "/description", "value": "x" * 201},
        ],
        headers=auth(admin),
    )
    assert resp.status_code == 422
    errors = resp.json()["errors"]
    assert set(errors) == {"rate", "description"}
    assert all(entry["invalid"] is True for entry in errors.values())


@pytest.mark.asyncio
async def test_patch_missing_entity_is_404(client: AsyncClient, create_user):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    resp = await client.patch(
        "/api/v1/rides/9999",
        json=[{"op": "replace", "path": "/description", "value": "x"}],
        headers=auth(admin),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_patch_user_rehashes_password(client: AsyncClient, create_user):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    user = await create_user(name="Rider", mobile="0911")

    resp = await client.patch(
        f"/api/v1/users/{user.id}",
        json=[{"op": "replace", "path": "/password", "value": "n3w"}],
        headers=auth(admin),
    )
    assert resp.status_code == 200

    resp = await client.put(
        "/api/v1/users/me/password",
        json={"old_password": "n3w", "new_password": "newer"},
        headers=auth(user),
    )
    assert resp.status_code == 204


@pytest.mark.asyncio
async def test_unique_conflict_is_per_field(client: AsyncClient, create_user):
    admin = await create_user(name="Boss", role=UserRole.ADMIN)
    await create_user(name="A", email="a@example.com")
    b = await create_user(name="B", email="b@example.com")

    resp = await client.patch(
        f"/api/v1/users/{b.id}",
        json=[{"op": "replace", "path": "/email", "value": "a@example.com"}],
        headers=auth(admin),
    )
    assert resp.status_code == 422
    assert "email" in resp.json()["errors"]


@pytest.mark.asyncio
async def test_patch_requires_admin(client: AsyncClient, create_user, create_ride):
    rider = await create_user(name="Rider")
    ride = await create_ride(user_id=rider.id)
    resp = await client.patch(
        f"/api/v1/rides/{ride.id}",
        json=[{"op": "replace", "path": "/description", "value": "x"}],
        headers=auth(rider),
    )
    assert resp.status_code == 403
