"""
API dependencies for Bookings Service.
Handles authentication, authorization, and common dependencies.
"""

from typing import Dict, Any
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
import logging

from bookings.core.config import config
from bookings.db.database import db_manager
from bookings.db.redis_client import redis_manager
from bookings.schemas.auth import Identity
from bookings.services.jwt_service import jwt_service, TokenError
from bookings.services.booking_service import BookingService, booking_service
from bookings.services.event_lookup import EventLookup, event_lookup
from bookings.services.audit_service import AuditService, audit_service

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer()


async def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    # Check for forwarded headers first (for load balancers/proxies)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    # Fallback to direct connection IP
    return request.client.host if request.client else "unknown"


async def get_user_agent(request: Request) -> str:
    """Extract user agent from request."""
    return request.headers.get("User-Agent", "unknown")


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    client_ip: str = Depends(get_client_ip),
    user_agent: str = Depends(get_user_agent)
) -> Identity:
    """
    Decode the bearer token into the caller's identity.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return await jwt_service.get_identity(
            credentials.credentials,
            client_ip=client_ip,
            user_agent=user_agent
        )

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except TokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception as e:
        logger.error(f"Authentication error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """
    Require admin role for access.

    Raises:
        HTTPException: If user is not admin
    """
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return identity


def get_booking_service() -> BookingService:
    return booking_service


def get_event_lookup() -> EventLookup:
    return event_lookup


def get_audit_service() -> AuditService:
    return audit_service


async def check_service_health() -> Dict[str, Any]:
    """
    Check the health of all service dependencies.

    Redis is only checked when the admission locks or the event
    subscriber use it; otherwise it is reported as "not_used".

    Returns:
        Dictionary with health status of all components
    """
    health_status = {
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    health_status["database"] = "healthy" if db_manager.health_check() else "unhealthy"

    consistency_config = await config.get_consistency_config()
    subscriber_config = await config.get_subscriber_config()
    redis_required = consistency_config["lock_backend"] == "redis" or subscriber_config["enabled"]

    if redis_required:
        try:
            redis_healthy = await redis_manager.health_check()
            health_status["redis"] = "healthy" if redis_healthy else "unhealthy"
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            health_status["redis"] = "unhealthy"
    else:
        health_status["redis"] = "not_used"

    # Overall health
    if health_status["database"] == "healthy" and health_status["redis"] in ("healthy", "not_used"):
        health_status["overall"] = "healthy"
    else:
        health_status["overall"] = "unhealthy"

    return health_status
