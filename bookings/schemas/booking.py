"""
Pydantic schemas for Bookings Service.
Handles request/response validation and serialization.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime, timezone
from enum import Enum

from bookings.models.booking import BookingStatus
from bookings.schemas.event import EventSummaryResponse


class BookingStatusEnum(str, Enum):
    """Booking status enumeration for API."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Request schemas
class BookingCreate(BaseModel):
    """Schema for creating a new booking."""

    event_id: int = Field(..., gt=0, description="ID of the event to book")
    quantity: int = Field(1, gt=0, le=10, description="Number of tickets (max 10)")


class BookingUpdate(BaseModel):
    """Schema for updating an existing booking."""

    status: Optional[BookingStatusEnum] = Field(None, description="New booking status")
    quantity: Optional[int] = Field(None, gt=0, le=10, description="New number of tickets")

    @model_validator(mode='after')
    def validate_not_empty(self):
        """At least one field must be provided."""
        if self.status is None and self.quantity is None:
            raise ValueError('At least one of status or quantity must be provided')
        return self


class BookingFeedback(BaseModel):
    """Schema for post-event feedback."""

    feedback: str = Field(..., min_length=1, max_length=2000, description="Feedback text")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")

    @field_validator('feedback')
    @classmethod
    def validate_feedback(cls, v):
        if not v.strip():
            raise ValueError('Feedback cannot be blank')
        return v.strip()


# Response schemas
class BookingResponse(BaseModel):
    """Schema for booking response."""

    id: int
    booking_reference: str
    user_id: int
    event_id: int
    quantity: int
    total_price: float
    currency: str
    status: BookingStatus
    booking_date: datetime
    cancellation_date: Optional[datetime]
    feedback: Optional[str]
    rating: Optional[int]
    created_at: datetime
    updated_at: datetime
    version: int
    event: Optional[EventSummaryResponse] = None

    class Config:
        from_attributes = True


class CompleteBookingsResponse(BaseModel):
    """Schema for the event completion result."""

    event_id: int
    completed_count: int


# Health check schemas
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Health check timestamp")
    version: str = Field(..., description="Service version")
    database: str = Field(..., description="Database connection status")
    redis: str = Field(..., description="Redis connection status")
