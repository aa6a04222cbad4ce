from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from cryptoledger.core.responses import create_success_response, create_error_response, ErrorCode
from cryptoledger.core.cache import cache_manager
from cryptoledger.core.config import settings
from cryptoledger.core.database import DatabaseManager


router = APIRouter()


@router.get("")
async def health_check() -> JSONResponse:
    """
    Detailed health check endpoint
    """
    health_data = {
        "status": "healthy",
        "service": settings.api.title,
        "version": settings.api.version,
        "environment": settings.environment,
        "cache": {
            "connected": cache_manager.connected,
            "enabled": settings.enable_caching
        },
        "database": {
            "enabled": settings.enable_database
        },
        "enrichment": {
            "enabled": settings.enable_price_enrichment
        }
    }

    return create_success_response(
        data=health_data,
        message="Service is healthy"
    )


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """
    Readiness probe: the ledger database must answer
    """
    if not await DatabaseManager.check_connection():
        return create_error_response(
            error_code=ErrorCode.SERVICE_UNAVAILABLE,
            message="Database is not reachable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    return create_success_response(
        data={"ready": True},
        message="Service is ready"
    )


@router.get("/live")
async def liveness_check() -> JSONResponse:
    return create_success_response(
        data={"alive": True},
        message="Service is alive"
    )
