"""
Main FastAPI application for Bookings Service.
Handles application startup, middleware, and routing.
"""

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time

from bookings.core.config import config
from bookings.core.exceptions import BookingServiceError
from bookings.db.database import db_manager
from bookings.db.redis_client import redis_manager
from bookings.api.v1.router import router as api_router, SERVICE_VERSION
from bookings.services.event_subscriber import event_subscriber

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting Bookings Service...")

    consistency_config = await config.get_consistency_config()
    subscriber_config = await config.get_subscriber_config()
    uses_redis = consistency_config["lock_backend"] == "redis" or subscriber_config["enabled"]

    try:
        # Initialize database
        await db_manager.initialize()
        db_manager.create_tables()
        logger.info("Database manager initialized")

        # Initialize Redis
        if uses_redis:
            await redis_manager.initialize()
            logger.info("Redis manager initialized")

        # Start event subscriber
        if subscriber_config["enabled"]:
            await event_subscriber.start()
            logger.info("Event subscriber started")

        logger.info("Bookings Service started successfully")

    except Exception as e:
        logger.error(f"Failed to start Bookings Service: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down Bookings Service...")

    try:
        await event_subscriber.stop()

        db_manager.close()

        if uses_redis:
            await redis_manager.close()

        await config.close()

        logger.info("Bookings Service shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI application
app = FastAPI(
    title="Bookings Service",
    description="Event booking admission service for EventBook",
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8080").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to response headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


def _error_body(error_code: str, message, status_code: int, details=None) -> dict:
    body = {
        "error_code": error_code,
        "error_message": message,
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    if details:
        body["details"] = details
    return body


# Domain exception handler
@app.exception_handler(BookingServiceError)
async def booking_error_handler(request: Request, exc: BookingServiceError):
    """Render booking domain errors with their status and error code."""
    logger.warning(f"{exc.error_code}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code, exc.message, exc.status_code, exc.details)
    )


# HTTP exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP exception handler for FastAPI HTTP exceptions."""
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTP_ERROR", exc.detail, exc.status_code),
        headers=exc.headers
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=_error_body("INTERNAL_SERVER_ERROR", "An internal server error occurred", 500)
    )


# Include API router
app.include_router(api_router)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "Bookings Service",
        "version": SERVICE_VERSION,
        "status": "running",
        "endpoints": {
            "api": "/api/v1",
            "health": "/api/v1/health",
            "docs": "/docs",
            "redoc": "/redoc"
        }
    }


# Health check endpoint (simple)
@app.get("/health")
async def simple_health_check():
    """Simple health check endpoint."""
    return {"status": "healthy", "service": "bookings"}
