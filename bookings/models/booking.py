"""
Booking models for the Bookings Service.
Bookings are admitted against a local snapshot of each event's booking-relevant facts.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Enum, Numeric,
    Index, CheckConstraint, UniqueConstraint, Text
)
from sqlalchemy.orm import declarative_base
from enum import Enum as PyEnum
from datetime import datetime, timezone

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, PyEnum):
    """Booking status enumeration."""
    PENDING = "pending"           # Held, awaiting confirmation
    CONFIRMED = "confirmed"       # Seat(s) admitted
    CANCELLED = "cancelled"       # Cancelled before the event started
    COMPLETED = "completed"       # Event took place


ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(Base):
    """
    A user's reservation of one or more tickets for one event.
    At most one booking exists per (user, event) pair.
    """

    __tablename__ = "bookings"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # References to other services
    user_id = Column(Integer, nullable=False, index=True)
    event_id = Column(Integer, nullable=False, index=True)

    # Booking details
    booking_reference = Column(String(50), unique=True, index=True, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    total_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    # Status tracking
    status = Column(Enum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False, index=True)

    # Timing
    booking_date = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    cancellation_date = Column(DateTime(timezone=True), nullable=True)

    # Post-event feedback
    feedback = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'event_id', name='uq_booking_user_event'),
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
        CheckConstraint('total_price >= 0', name='check_total_price_positive'),
        CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='check_rating_range'),
        CheckConstraint('version > 0', name='check_version_positive'),
        Index('idx_booking_event_status', 'event_id', 'status'),
        Index('idx_booking_status_date', 'status', 'booking_date'),
    )

    # Optimistic locking: every UPDATE/DELETE checks and bumps the version
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        status = self.status.value if self.status else None
        return f"<Booking(id={self.id}, reference='{self.booking_reference}', status='{status}')>"

    @property
    def is_active(self) -> bool:
        """Active bookings (confirmed or pending) count against event capacity."""
        return self.status in ACTIVE_STATUSES

    @property
    def has_feedback(self) -> bool:
        return self.feedback is not None or self.rating is not None


class EventSnapshot(Base):
    """
    Local copy of the events service's booking-relevant facts.
    Kept in sync by the event subscriber.
    """

    __tablename__ = "event_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)

    # NULL means unlimited capacity
    max_attendees = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), default="USD", nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)

    venue_name = Column(String(255), nullable=True)
    category_name = Column(String(255), nullable=True)

    last_updated = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint('max_attendees IS NULL OR max_attendees >= 0', name='check_max_attendees_positive'),
        CheckConstraint('price >= 0', name='check_event_price_positive'),
    )

    def __repr__(self):
        return f"<EventSnapshot(event_id={self.event_id}, published={self.is_published}, max={self.max_attendees})>"
