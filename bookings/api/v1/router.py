"""
Main API router for Bookings Service.
Combines all API endpoints and provides health checks.
"""

from fastapi import APIRouter
import logging

from bookings.api.dependencies import check_service_health
from bookings.api.v1.bookings import router as bookings_router
from bookings.api.v1.admin import router as admin_router
from bookings.api.v1.audit_logs import router as audit_logs_router
from bookings.schemas.booking import HealthCheckResponse

logger = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"

# Create main router
router = APIRouter(prefix="/api/v1")

router.include_router(bookings_router)
router.include_router(admin_router)
router.include_router(audit_logs_router)


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """
    Health check endpoint for the bookings service.

    Returns:
        Service health status
    """
    try:
        health_status = await check_service_health()

        return HealthCheckResponse(
            status=health_status["overall"],
            version=SERVICE_VERSION,
            database=health_status["database"],
            redis=health_status["redis"]
        )

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return HealthCheckResponse(
            status="unhealthy",
            version=SERVICE_VERSION,
            database="unknown",
            redis="unknown"
        )


@router.get("/info")
async def service_info():
    """
    Service information endpoint.

    Returns:
        Service information and capabilities
    """
    return {
        "service": "Bookings Service",
        "version": SERVICE_VERSION,
        "description": "Event booking admission service",
        "capabilities": [
            "Capacity-checked booking creation",
            "Booking updates, cancellation and feedback",
            "Event completion",
            "Audit trail"
        ]
    }
