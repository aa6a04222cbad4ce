from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import time

from cryptoledger.core.config import settings
from cryptoledger.core.logging import get_logger
from cryptoledger.core.monitoring import ErrorMonitoring
from cryptoledger.core.cache import cache_manager
from cryptoledger.core.database import DatabaseManager
from cryptoledger.core.dependencies import external_services
from cryptoledger.core.exceptions import LedgerError
from cryptoledger.core.responses import (
    create_error_response,
    ledger_error_response,
    validation_error,
    internal_error,
    ErrorCode
)
from cryptoledger.api.v1 import api_router
from cryptoledger.api.middleware import LoggingMiddleware, RateLimitMiddleware


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events
    """
    logger.info("Starting application", environment=settings.environment)
    app.state.start_time = time.time()

    ErrorMonitoring.init_sentry(settings)

    if settings.enable_caching:
        await cache_manager.connect()
    else:
        logger.info("Cache is disabled")

    if settings.enable_database:
        if await DatabaseManager.check_connection():
            logger.info("Database connection established")
            # Local SQLite databases are created on the fly; everything else goes through Alembic
            if settings.is_sqlite and settings.is_development:
                await DatabaseManager.create_all()
        else:
            logger.warning("Database connection failed")
    else:
        logger.info("Database is disabled")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down application")

    await external_services.close()

    if settings.enable_caching:
        await cache_manager.disconnect()

    if settings.enable_database:
        await DatabaseManager.close()

    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.api.title,
    description=settings.api.description,
    version=settings.api.version,
    openapi_url=f"{settings.api.prefix}/openapi.json" if not settings.is_production else None,
    docs_url=f"{settings.api.prefix}/docs" if not settings.is_production else None,
    redoc_url=f"{settings.api.prefix}/redoc" if not settings.is_production else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.security.allow_credentials,
    allow_methods=settings.security.allowed_methods,
    allow_headers=settings.security.allowed_headers,
)

app.add_middleware(LoggingMiddleware)
if settings.api.rate_limit_enabled and settings.features.get("enable_rate_limiting", True) and not settings.is_testing:
    app.add_middleware(RateLimitMiddleware)


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    """
    Render domain errors (not found, bad amounts, bad state) with their own code
    """
    return ledger_error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle validation errors with proper formatting
    """
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return validation_error(
        message="Request validation failed",
        errors=errors
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    error_code_map = {
        400: ErrorCode.INVALID_REQUEST,
        404: ErrorCode.NOT_FOUND,
        405: ErrorCode.INVALID_REQUEST,
        409: ErrorCode.ALREADY_EXISTS,
        429: ErrorCode.RATE_LIMIT_EXCEEDED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_API_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE
    }

    return create_error_response(
        error_code=error_code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        message=str(exc.detail),
        status_code=exc.status_code
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Handle all unhandled exceptions
    """
    logger.error("Unhandled exception", error=exc, path=request.url.path)

    ErrorMonitoring.capture_exception(
        exc,
        context={
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else None
        }
    )

    return internal_error(
        message="An unexpected error occurred",
        error=exc if settings.debug else None
    )


app.include_router(api_router, prefix=settings.api.prefix)


@app.get("/", tags=["root"])
async def root():
    return {
        "name": settings.api.title,
        "version": settings.api.version,
        "environment": settings.environment,
        "docs": f"{settings.api.prefix}/docs" if not settings.is_production else None
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint with detailed status
    """
    cache_status = {
        "enabled": settings.enable_caching,
        "connected": cache_manager.connected if settings.enable_caching else None,
        "metrics": cache_manager.get_metrics() if settings.enable_caching else None
    }

    database_status = {
        "enabled": settings.enable_database,
        "connected": await DatabaseManager.check_connection() if settings.enable_database else None
    }

    is_healthy = True
    if settings.enable_caching and not cache_manager.connected:
        is_healthy = False
    if settings.enable_database and not database_status["connected"]:
        is_healthy = False

    start_time = getattr(app.state, "start_time", None)
    return {
        "status": "healthy" if is_healthy else "degraded",
        "version": settings.api.version,
        "environment": settings.environment,
        "uptime_seconds": time.time() - start_time if start_time else 0,
        "cache": cache_status,
        "database": database_status,
        "features": {
            "database": settings.enable_database,
            "caching": settings.enable_caching,
            "price_enrichment": settings.enable_price_enrichment,
            **settings.features
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cryptoledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.logging_config.level.lower()
    )
