"""FastAPI application entrypoint and router wiring."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from proposal_lifecycle.api.deps import SESSION_DEP
from proposal_lifecycle.api.files import router as files_router
from proposal_lifecycle.api.notifications import router as notifications_router
from proposal_lifecycle.api.proposals import router as proposals_router
from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.error_handling import install_error_handling
from proposal_lifecycle.core.logging import configure_logging, get_logger
from proposal_lifecycle.db.session import init_db
from proposal_lifecycle.schemas.health import HealthStatusResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)

OPENAPI_TAGS = [
    {
        "name": "health",
        "description": "Service liveness/readiness probes used by infrastructure checks.",
    },
    {
        "name": "proposals",
        "description": (
            "Proposal lifecycle: drafts, versioned edits, submission, reviewer "
            "decisions, and the project created on approval."
        ),
    },
    {
        "name": "files",
        "description": "Attachment upload returning a checksummed file reference.",
    },
    {
        "name": "notifications",
        "description": "Per-user in-app notifications written by the notification worker.",
    },
]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources before serving requests."""
    logger.info(
        "app.lifecycle.starting",
        extra={
            "environment": settings.environment,
            "db_auto_migrate": settings.db_auto_migrate,
        },
    )
    await init_db()
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="Proposal Lifecycle API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "X-Limit", "X-Offset"],
    )
    logger.info("app.cors.enabled", extra={"origins_count": len(origins)})
else:
    logger.info("app.cors.disabled")

install_error_handling(app)

_PROBE_RESPONSES = {
    status.HTTP_200_OK: {
        "description": "Probe succeeded.",
        "content": {"application/json": {"example": {"ok": True}}},
    }
}


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Check",
    responses=_PROBE_RESPONSES,
)
def health() -> HealthStatusResponse:
    """Lightweight liveness probe endpoint."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/healthz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Alias Check",
    responses=_PROBE_RESPONSES,
)
def healthz() -> HealthStatusResponse:
    """Alias liveness probe endpoint for platform compatibility."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/readyz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Readiness Check",
    responses=_PROBE_RESPONSES,
)
async def readyz(session: AsyncSession = SESSION_DEP) -> HealthStatusResponse:
    """Readiness probe; a datastore outage surfaces as a retryable 503."""
    await session.exec(select(1))
    return HealthStatusResponse(ok=True)


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(proposals_router)
api_v1.include_router(files_router)
api_v1.include_router(notifications_router)
app.include_router(api_v1)
