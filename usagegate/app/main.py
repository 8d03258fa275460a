from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from usagegate.app.api.admin import router as admin_router
from usagegate.app.api.auth import router as auth_router
from usagegate.app.api.usage import router as usage_router
from usagegate.app.core.config import AppConfig, Settings, settings as default_settings
from usagegate.app.core.logging import get_logger, setup_logging
from usagegate.app.core.security import TokenService
from usagegate.app.exceptions import (
    ConfigurationError,
    StorageError,
    UnauthorizedError,
    UsageGateError,
)
from usagegate.app.middleware.request_id import RequestIdMiddleware, get_request_id
from usagegate.app.services.quota import QuotaService
from usagegate.app.storage.repository import QuotaRepository


def create_app(
    settings: Optional[Settings] = None,
    config: Optional[AppConfig] = None,
    repository: Optional[QuotaRepository] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; defaults to the environment-loaded instance
        config: Prebuilt configuration; built from ``settings`` if None
        repository: Record repository; built from ``config.storage`` if None

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger(__name__)

    config = config or AppConfig.from_settings(settings)
    token_service = TokenService(config)
    quota_service = QuotaService(config, repository=repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if not config.auth_secret:
            logger.error("AUTH_SECRET is not set; every token operation will fail")
        logger.info(
            "Application startup complete",
            extra={
                "storage": quota_service.storage_mode,
                "admins": len(config.admins.ids),
                "users": len(config.credentials),
                "limits": quota_service.limits_payload()["limits"],
            },
        )
        yield
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Usage Gate",
        description="Per-user usage quotas for listening, translation and pronunciation exercises",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.token_service = token_service
    app.state.quota_service = quota_service

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(auth_router)
    app.include_router(usage_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness check reporting the active storage backend."""
        return {"status": "ok", "storage": quota_service.storage_mode}

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
        """Never reveal whether a token was expired, forged or malformed."""
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "Usage storage failed: %s",
            exc.message,
            extra={"request_id": get_request_id(request), "key": exc.key},
        )
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error: %s", exc.message)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    @app.exception_handler(UsageGateError)
    async def usage_gate_error_handler(request: Request, exc: UsageGateError) -> JSONResponse:
        """Client-facing errors (400/403/429) carry their message."""
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled exceptions server-side and return a generic 500."""
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={"request_id": request_id, "exception_type": type(exc).__name__},
        )
        content = {"error": "Internal Server Error", "request_id": request_id}
        if settings.debug:
            content["message"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
