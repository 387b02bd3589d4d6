"""
FastAPI application factory.

* Registers routes for users, rides, settlements and admin.
* Maps the domain error taxonomy to HTTP responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from pathlib import Path

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.errors import register_exception_handlers
from src.api.middleware import limiter
from src.api.routes import admin, rides, settlements, users
from src.config import settings
from src.infrastructure.database import engine

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the upload directory on startup; release DB connections on shutdown."""
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Ride statuses: %s (+%s)", ", ".join(settings.ride_statuses), settings.ride_cancelled_status)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride Hailing Resource API",
        description=(
            "Users, rides and settlements for a ride-hailing platform: "
            "ride lifecycle with driver rating aggregation, search / sort / "
            "pagination listings, and JSON Patch updates with per-field "
            "validation errors."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # Routers
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(settlements.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
