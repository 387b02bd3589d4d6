"""
User endpoints
==============

GET    /api/v1/users                          -- search / sort / paginate (admin)
POST   /api/v1/users                          -- register a rider, text activation code
POST   /api/v1/users/driver                   -- register a driver with document images (admin)
POST   /api/v1/users/admin                    -- create an admin (admin)
GET    /api/v1/users/me                       -- own account
PUT    /api/v1/users/me                       -- edit own contact / driver fields
PUT    /api/v1/users/me/password              -- change password
GET    /api/v1/users/me/activation-code       -- text a fresh activation code
POST   /api/v1/users/me/confirm               -- confirm with the activation code
GET    /api/v1/users/{user_id}                -- public profile
PATCH  /api/v1/users/{user_id}                -- JSON Patch (admin)
PUT    /api/v1/users/{user_id}/toggle-activation (admin)
DELETE /api/v1/users/{user_id}                -- delete, rides are kept (admin)
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from src.api.dependencies import (
    get_current_user,
    get_file_placement,
    get_sms_sender,
    get_user_repository,
    listing_params,
    require_admin,
)
from src.api.middleware import limiter
from src.api.schemas import (
    ActivationCodeResponse,
    AuthResponse,
    ConfirmRequest,
    ListingResponse,
    PasswordChange,
    UserCreate,
    UserEdit,
    UserInfo,
    UserProfile,
)
from src.config import settings
from src.domain.enums import UserRole
from src.domain.exceptions import AuthorizationDenied, EntityValidationError, NotFoundError
from src.domain.listing import ListingParams
from src.infrastructure.database import on_rollback
from src.infrastructure.files import FilePlacement
from src.infrastructure.models import SENSITIVE_USER_FIELDS, UserModel
from src.infrastructure.notifications import SmsSender, activation_message
from src.infrastructure.query import FieldCatalog
from src.infrastructure.repositories import UserRepository
from src.infrastructure.security import (
    generate_activation_code,
    issue_token,
    verify_password,
)
from src.infrastructure.validation import field_errors
from src.services.listing import ListingEngine
from src.services.patching import PatchApplier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

USER_FIELDS = FieldCatalog.for_model(
    UserModel, hidden=SENSITIVE_USER_FIELDS + ("activation_code",)
)
EDITABLE_FIELDS = ("email", "account_number", "driver_state", "app_id", "location", "last_state")


def _auth_response(user: UserModel) -> AuthResponse:
    return AuthResponse(token=issue_token(user.id), user=UserInfo.model_validate(user))


async def _create_user(
    users: UserRepository,
    body: UserCreate,
    role: UserRole,
    active: bool,
    activation_code: str | None = None,
) -> UserModel:
    user = UserModel(**body.model_dump(exclude_none=True, mode="json"))
    user.role = role.value
    user.active = active
    user.activation_code = activation_code
    return await users.save(user)


@router.get(
    "",
    response_model=ListingResponse,
    summary="List users with search, sort and pagination",
)
@limiter.limit(settings.rate_limit)
async def list_users(
    request: Request,
    params: ListingParams = Depends(listing_params),
    users: UserRepository = Depends(get_user_repository),
    _: UserModel = Depends(require_admin),
):
    page = await ListingEngine(users, USER_FIELDS).list(params)
    return ListingResponse(data=page.data, number_of_pages=page.number_of_pages)


@router.post("", response_model=AuthResponse, summary="Register a rider")
@limiter.limit(settings.rate_limit)
async def create_user(
    request: Request,
    body: UserCreate,
    users: UserRepository = Depends(get_user_repository),
    sms: SmsSender = Depends(get_sms_sender),
):
    user = await _create_user(
        users, body, UserRole.RIDER, active=False, activation_code=generate_activation_code()
    )
    await sms.send(user.mobile, activation_message(user.activation_code))
    return _auth_response(user)


@router.post(
    "/driver",
    response_model=AuthResponse,
    summary="Register a driver with uploaded document images",
)
@limiter.limit(settings.rate_limit)
async def create_driver(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    placement: FilePlacement = Depends(get_file_placement),
    _: UserModel = Depends(require_admin),
):
    form = await request.form()
    fields: dict[str, Any] = {}
    uploads: dict[str, UploadFile] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            uploads.setdefault(key, value)
        else:
            fields[key] = value
    try:
        body = UserCreate.model_validate(fields)
    except ValidationError as exc:
        raise EntityValidationError(field_errors(exc)) from exc

    user = await _create_user(users, body, UserRole.DRIVER, active=True)
    if uploads:
        placed = await placement.place(user.id, uploads)
        on_rollback(users.session, lambda: placement.discard(placed.values()))
    return _auth_response(user)


@router.post("/admin", response_model=AuthResponse, summary="Create an admin")
@limiter.limit(settings.rate_limit)
async def create_admin(
    request: Request,
    body: UserCreate,
    users: UserRepository = Depends(get_user_repository),
    _: UserModel = Depends(require_admin),
):
    user = await _create_user(users, body, UserRole.ADMIN, active=True)
    return _auth_response(user)


@router.get("/me", response_model=UserInfo, summary="Current user")
@limiter.limit(settings.rate_limit)
async def me(request: Request, user: UserModel = Depends(get_current_user)):
    return user


@router.put("/me", response_model=UserInfo, summary="Edit own account")
@limiter.limit(settings.rate_limit)
async def edit_me(
    request: Request,
    body: UserEdit,
    user: UserModel = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    values = body.model_dump(mode="json")
    for prop in EDITABLE_FIELDS:
        # empty values keep what is stored
        if values.get(prop):
            setattr(user, prop, values[prop])
    return await users.save(user)


@router.put("/me/password", status_code=204, summary="Change password")
@limiter.limit(settings.rate_limit)
async def change_password(
    request: Request,
    body: PasswordChange,
    user: UserModel = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    if not verify_password(body.old_password, user.password):
        raise AuthorizationDenied("Old password does not match")
    user.password = body.new_password
    await users.save(user)
    return Response(status_code=204)


@router.get(
    "/me/activation-code",
    response_model=ActivationCodeResponse,
    summary="Text a fresh activation code",
)
@limiter.limit(settings.rate_limit)
async def get_activation_code(
    request: Request,
    user: UserModel = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    sms: SmsSender = Depends(get_sms_sender),
):
    code = generate_activation_code()
    user = await users.find_by_id_and_update(user.id, {"activation_code": code})
    await sms.send(user.mobile, activation_message(code))
    return ActivationCodeResponse(activation_code=code)


@router.post("/me/confirm", summary="Confirm the account with the activation code")
@limiter.limit(settings.rate_limit)
async def confirm(
    request: Request,
    body: ConfirmRequest,
    user: UserModel = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    if not user.activation_code or user.activation_code != body.activation_code:
        raise HTTPException(status_code=400, detail="Activation code does not match")
    user.active = True
    user.app_id = body.app_id
    await users.save(user)
    return {}


@router.get("/{user_id}", response_model=UserProfile, summary="Public profile")
@limiter.limit(settings.rate_limit)
async def show(
    request: Request,
    user_id: int,
    users: UserRepository = Depends(get_user_repository),
    _: UserModel = Depends(get_current_user),
):
    user = await users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


@router.patch(
    "/{user_id}",
    response_model=UserInfo,
    summary="Apply a JSON Patch to a user",
    responses={422: {"description": "Per-field validation errors"}},
)
@limiter.limit(settings.rate_limit)
async def patch_user(
    request: Request,
    user_id: int,
    operations: list[dict[str, Any]] = Body(...),
    users: UserRepository = Depends(get_user_repository),
    _: UserModel = Depends(require_admin),
):
    return await PatchApplier(users, "User").apply(user_id, operations)


@router.put("/{user_id}/toggle-activation", status_code=204, summary="Flip `active`")
@limiter.limit(settings.rate_limit)
async def toggle_activation(
    request: Request,
    user_id: int,
    users: UserRepository = Depends(get_user_repository),
    _: UserModel = Depends(require_admin),
):
    user = await users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    user.active = not user.active
    await users.save(user)
    return Response(status_code=204)


@router.delete("/{user_id}", status_code=204, summary="Delete a user")
@limiter.limit(settings.rate_limit)
async def destroy(
    request: Request,
    user_id: int,
    users: UserRepository = Depends(get_user_repository),
    _: UserModel = Depends(require_admin),
):
    if not await users.find_by_id_and_remove(user_id):
        raise NotFoundError("User", user_id)
    logger.info("User %s deleted; their rides are kept", user_id)
    return Response(status_code=204)
