"""FastAPI server for the DIA approval backend.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import dia, health, settings, transactions
from core.errors import (
    ErpCommunicationError,
    InvalidRecordIdentity,
    NoSessionError,
    UnsupportedTransactionType,
)
from core.observability.logging import get_logger
from core.services import AppServices, build_services
from notifications.mail_service import MailSettingsNotFound

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    app.state.services.db.init_schema()
    logger.info("Approval API starting up...")

    yield

    # Shutdown
    await app.state.services.close()
    logger.info("Approval API shutting down...")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP responses."""

    @app.exception_handler(NoSessionError)
    async def no_session_handler(request: Request, exc: NoSessionError) -> JSONResponse:
        return _error(401, str(exc))

    @app.exception_handler(ErpCommunicationError)
    async def erp_error_handler(request: Request, exc: ErpCommunicationError) -> JSONResponse:
        logger.warning(f"DIA communication error on {request.url.path}: {exc}")
        return _error(502, str(exc))

    @app.exception_handler(InvalidRecordIdentity)
    async def invalid_identity_handler(request: Request, exc: InvalidRecordIdentity) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(UnsupportedTransactionType)
    async def unsupported_type_handler(request: Request, exc: UnsupportedTransactionType) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(MailSettingsNotFound)
    async def mail_settings_handler(request: Request, exc: MailSettingsNotFound) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt services (tests); built from settings at startup otherwise
    """
    app = FastAPI(
        title="DIA Approval API",
        description="Approval dashboard backend for pending DIA ERP transactions",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(dia.router, prefix="/api/dia", tags=["DIA"])
    app.include_router(transactions.router, prefix="/api/transactions", tags=["Transactions"])
    app.include_router(settings.router, prefix="/api/settings", tags=["Settings"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
