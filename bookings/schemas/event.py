"""
Event facts as seen by the Bookings Service.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class EventInfo(BaseModel):
    """Booking-relevant facts about one event."""

    id: int
    name: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    max_attendees: Optional[int] = Field(None, ge=0, description="None means unlimited capacity")
    price: Decimal = Field(Decimal("0"), ge=0)
    currency: str = "USD"
    is_published: bool = False
    venue_name: Optional[str] = None
    category_name: Optional[str] = None

    class Config:
        from_attributes = True


class EventSummaryResponse(BaseModel):
    """Event summary joined into booking responses."""

    id: int
    name: Optional[str]
    start_date: datetime
    end_date: Optional[datetime]
    venue_name: Optional[str]
    category_name: Optional[str]

    class Config:
        from_attributes = True
