"""
Admin API endpoints for Bookings Service.
Provides booking oversight, event completion and the audit log.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query, Path
from typing import List, Optional
from datetime import datetime
import math
import logging

from bookings.api.dependencies import (
    require_admin,
    get_booking_service,
    get_event_lookup,
    get_audit_service,
)
from bookings.api.v1.bookings import build_booking_response, to_booking_status
from bookings.core.exceptions import BookingServiceError
from bookings.models.audit_log import AuditAction, AuditEntityType
from bookings.schemas.auth import Identity
from bookings.schemas.audit_log import AuditLogFilter, AuditLogListResponse, AuditLogResponse
from bookings.schemas.booking import BookingResponse, BookingStatusEnum, CompleteBookingsResponse
from bookings.services.audit_service import AuditService
from bookings.services.booking_service import BookingService
from bookings.services.event_lookup import EventLookup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/bookings", response_model=List[BookingResponse])
async def get_all_bookings(
    status_filter: Optional[BookingStatusEnum] = Query(None, alias="status", description="Filter by booking status"),
    event_id: Optional[int] = Query(None, gt=0, description="Filter by event ID"),
    user_id: Optional[int] = Query(None, gt=0, description="Filter by user ID"),
    identity: Identity = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """Get all bookings matching the filters, newest first."""
    try:
        bookings = await service.get_all_bookings(
            identity,
            status=to_booking_status(status_filter),
            event_id=event_id,
            user_id=user_id
        )
        return [await build_booking_response(booking, event_lookup) for booking in bookings]

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to list bookings: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve bookings"
        )


@router.post("/events/{event_id}/complete-bookings", response_model=CompleteBookingsResponse)
async def complete_event_bookings(
    event_id: int = Path(..., gt=0, description="Event ID"),
    identity: Identity = Depends(require_admin),
    service: BookingService = Depends(get_booking_service)
):
    """Mark every confirmed booking of an event as completed."""
    try:
        completed_count = await service.complete_bookings_after_event(event_id)
        logger.info(f"Admin {identity.user_id} completed {completed_count} bookings for event {event_id}")
        return CompleteBookingsResponse(event_id=event_id, completed_count=completed_count)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to complete bookings for event {event_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete bookings"
        )


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def get_audit_logs(
    action: Optional[AuditAction] = Query(None, description="Filter by action"),
    entity_type: Optional[AuditEntityType] = Query(None, description="Filter by entity type"),
    entity_id: Optional[str] = Query(None, description="Filter by entity ID"),
    user_id: Optional[int] = Query(None, gt=0, description="Filter by acting user"),
    start_date: Optional[datetime] = Query(None, description="Entries created at or after"),
    end_date: Optional[datetime] = Query(None, description="Entries created at or before"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Number of items per page"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$", description="Sort order by creation date"),
    identity: Identity = Depends(require_admin),
    audit: AuditService = Depends(get_audit_service)
):
    """Get a page of audit log entries."""
    try:
        filters = AuditLogFilter(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
            sort_order=sort_order
        )
        items, total = audit.find_all(filters)

        return AuditLogListResponse(
            items=[AuditLogResponse.model_validate(item) for item in items],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get audit logs: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve audit logs"
        )


@router.get("/audit-logs/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(
    log_id: int = Path(..., gt=0, description="Audit log ID"),
    identity: Identity = Depends(require_admin),
    audit: AuditService = Depends(get_audit_service)
):
    """Get a single audit log entry."""
    try:
        return AuditLogResponse.model_validate(audit.find_by_id(log_id))

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get audit log {log_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve audit log"
        )
