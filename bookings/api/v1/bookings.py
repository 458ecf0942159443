"""
Booking API endpoints for Bookings Service.
Handles booking creation, updates, cancellation, feedback and deletion.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status, Query, Path
from typing import List, Optional
import logging

from bookings.api.dependencies import (
    get_current_identity,
    get_booking_service,
    get_event_lookup,
)
from bookings.core.exceptions import BookingServiceError
from bookings.models.booking import Booking, BookingStatus
from bookings.schemas.auth import Identity
from bookings.schemas.audit_log import AuditLogResponse
from bookings.schemas.booking import (
    BookingCreate,
    BookingUpdate,
    BookingFeedback,
    BookingResponse,
    BookingStatusEnum,
)
from bookings.schemas.event import EventSummaryResponse
from bookings.services.booking_service import BookingService
from bookings.services.event_lookup import EventLookup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


async def build_booking_response(booking: Booking, event_lookup: EventLookup) -> BookingResponse:
    """Join a booking with a summary of its event."""
    response = BookingResponse.model_validate(booking)
    event = await event_lookup.get_event(booking.event_id)
    if event:
        response.event = EventSummaryResponse.model_validate(event)
    return response


def to_booking_status(status_filter: Optional[BookingStatusEnum]) -> Optional[BookingStatus]:
    return BookingStatus(status_filter.value) if status_filter else None


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """
    Create a new booking for an event.

    Returns:
        Created booking with its event summary
    """
    try:
        booking = await service.create_booking(identity, booking_data)
        return await build_booking_response(booking, event_lookup)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Booking creation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking"
        )


@router.get("/", response_model=List[BookingResponse])
async def get_user_bookings(
    status_filter: Optional[BookingStatusEnum] = Query(None, alias="status", description="Filter by booking status"),
    event_id: Optional[int] = Query(None, gt=0, description="Filter by event ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """Get the current user's bookings, newest first."""
    try:
        bookings = await service.get_user_bookings(
            user_id=identity.user_id,
            status=to_booking_status(status_filter),
            event_id=event_id
        )
        return [await build_booking_response(booking, event_lookup) for booking in bookings]

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get bookings for user {identity.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve bookings"
        )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int = Path(..., gt=0, description="Booking ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """Get a booking owned by the caller (or any booking for admins)."""
    try:
        booking = await service.get_booking_by_id(booking_id, identity)
        return await build_booking_response(booking, event_lookup)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve booking"
        )


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    update_data: BookingUpdate,
    booking_id: int = Path(..., gt=0, description="Booking ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """Change a booking's quantity and/or status."""
    try:
        booking = await service.update_booking(booking_id, update_data, identity)
        return await build_booking_response(booking, event_lookup)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to update booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking"
        )


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int = Path(..., gt=0, description="Booking ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """Cancel a booking before its event starts."""
    try:
        booking = await service.cancel_booking(booking_id, identity)
        return await build_booking_response(booking, event_lookup)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to cancel booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel booking"
        )


@router.patch("/{booking_id}/feedback", response_model=BookingResponse)
async def submit_feedback(
    feedback_data: BookingFeedback,
    booking_id: int = Path(..., gt=0, description="Booking ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
    event_lookup: EventLookup = Depends(get_event_lookup)
):
    """Submit feedback and a rating for a completed booking."""
    try:
        booking = await service.submit_feedback(booking_id, feedback_data, identity)
        return await build_booking_response(booking, event_lookup)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to submit feedback for booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit feedback"
        )


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: int = Path(..., gt=0, description="Booking ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service)
):
    """Delete a booking (admin only)."""
    try:
        await service.delete_booking(booking_id, identity)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to delete booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete booking"
        )


@router.get("/{booking_id}/audit", response_model=List[AuditLogResponse])
async def get_booking_audit_trail(
    booking_id: int = Path(..., gt=0, description="Booking ID"),
    identity: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service)
):
    """Get the audit trail of a booking, newest first."""
    try:
        entries = await service.get_booking_audit_trail(booking_id, identity)
        return [AuditLogResponse.model_validate(entry) for entry in entries]

    except (BookingServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get audit trail for booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve audit trail"
        )
