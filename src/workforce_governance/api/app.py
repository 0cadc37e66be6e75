"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workforce_governance.api.routes import health_router, work_items_router
from workforce_governance.config import get_settings
from workforce_governance.database import create_schema
from workforce_governance.governance.errors import GovernanceError, RejectionKind

logger = logging.getLogger(__name__)

HTTP_STATUS_FOR_KIND: dict[RejectionKind, int] = {
    RejectionKind.UNAUTHORIZED_ROLE: status.HTTP_403_FORBIDDEN,
    RejectionKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionKind.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
    RejectionKind.JUSTIFICATION_REQUIRED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RejectionKind.STALE_STATE: status.HTTP_409_CONFLICT,
    RejectionKind.INVALID_ALLOCATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RejectionKind.STORAGE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    RejectionKind.UNKNOWN_ROLE: status.HTTP_400_BAD_REQUEST,
}


def error_body(exc: GovernanceError) -> dict:
    """Response body for a governance rejection."""
    body = exc.to_dict()
    return {"detail": body["rule"], "code": body["kind"], "context": body["context"]}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    await create_schema()
    yield


def create_app(manage_schema: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Workforce Governance API",
        description="Approval, override and contribution governance for reports and tasks",
        version=settings.engine_version,
        lifespan=lifespan if manage_schema else None,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(GovernanceError)
    async def governance_exception_handler(
        request: Request, exc: GovernanceError
    ) -> JSONResponse:
        """Render typed rejections with kind, rule and context."""
        return JSONResponse(
            status_code=HTTP_STATUS_FOR_KIND[exc.kind],
            content=error_body(exc),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(work_items_router, prefix="/api/v1")

    return app
