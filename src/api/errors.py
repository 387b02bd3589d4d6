"""Exception handlers mapping the domain error taxonomy to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.domain.exceptions import (
    AuthorizationDenied,
    EntityValidationError,
    InvalidSearchError,
    InvalidStateTransition,
    NotFoundError,
    PersistenceFault,
)
from src.infrastructure.locks import LockTimeout

logger = logging.getLogger(__name__)

_REQUEST_PARTS = ("body", "query", "path", "header", "cookie")


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def entity_validation_handler(request: Request, exc: EntityValidationError) -> JSONResponse:
    logger.info("Validation failed on %s %s: %s", request.method, request.url.path, exc.errors)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.message, "errors": exc.form_errors()},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """FastAPI's default body plus the same per-field ``errors`` map."""
    errors = {}
    for error in exc.errors():
        loc = [part for part in error.get("loc", ()) if part not in _REQUEST_PARTS]
        field = str(loc[0]) if loc else "__root__"
        errors.setdefault(field, {"message": error.get("msg", "Invalid value"), "invalid": True})
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({"detail": exc.errors(), "errors": errors}),
    )


async def invalid_search_handler(request: Request, exc: InvalidSearchError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid search parameters", "fields": exc.fields},
    )


async def authorization_handler(request: Request, exc: AuthorizationDenied) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc) or "Forbidden"})


async def state_transition_handler(request: Request, exc: InvalidStateTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def lock_timeout_handler(request: Request, exc: LockTimeout) -> JSONResponse:
    logger.warning("Lock wait exceeded on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Resource busy, try again"})


async def persistence_fault_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(EntityValidationError, entity_validation_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(InvalidSearchError, invalid_search_handler)
    app.add_exception_handler(AuthorizationDenied, authorization_handler)
    app.add_exception_handler(InvalidStateTransition, state_transition_handler)
    app.add_exception_handler(LockTimeout, lock_timeout_handler)
    app.add_exception_handler(PersistenceFault, persistence_fault_handler)
    app.add_exception_handler(SQLAlchemyError, persistence_fault_handler)
