"""
Tests for request and response schemas.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from pydantic import ValidationError

from bookings.models.booking import Booking, BookingStatus
from bookings.schemas.auth import Identity, UserRole
from bookings.schemas.booking import (
    BookingCreate,
    BookingUpdate,
    BookingFeedback,
    BookingResponse,
    BookingStatusEnum,
)


class TestBookingCreate:

    def test_quantity_defaults_to_one(self):
        assert BookingCreate(event_id=1).quantity == 1

    @pytest.mark.parametrize("quantity", [0, -1, 11])
    def test_quantity_bounds(self, quantity):
        with pytest.raises(ValidationError):
            BookingCreate(event_id=1, quantity=quantity)

    def test_event_id_positive(self):
        with pytest.raises(ValidationError):
            BookingCreate(event_id=0)


class TestBookingUpdate:

    def test_requires_a_field(self):
        with pytest.raises(ValidationError, match="At least one"):
            BookingUpdate()

    def test_status_only(self):
        update = BookingUpdate(status="cancelled")

        assert update.status == BookingStatusEnum.CANCELLED
        assert update.quantity is None

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            BookingUpdate(status="refunded")


class TestBookingFeedback:

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_bounds(self, rating):
        with pytest.raises(ValidationError):
            BookingFeedback(feedback="ok", rating=rating)

    def test_blank_feedback(self):
        with pytest.raises(ValidationError):
            BookingFeedback(feedback="   ", rating=3)

    def test_feedback_trimmed(self):
        assert BookingFeedback(feedback="  Loved it ", rating=5).feedback == "Loved it"


class TestBookingResponse:

    def test_from_model(self):
        now = datetime.now(timezone.utc)
        booking = Booking(
            id=1,
            booking_reference="BK-20250101-ABCDEF12",
            user_id=1,
            event_id=2,
            quantity=2,
            total_price=Decimal("99.90"),
            currency="USD",
            status=BookingStatus.CONFIRMED,
            booking_date=now,
            created_at=now,
            updated_at=now,
            version=1,
        )

        response = BookingResponse.model_validate(booking)

        assert response.total_price == pytest.approx(99.9)
        assert response.status == BookingStatus.CONFIRMED
        assert response.event is None
        assert response.model_dump(mode="json")["status"] == "confirmed"


class TestIdentity:

    def test_default_role_is_user(self):
        identity = Identity(user_id=3)

        assert identity.role == UserRole.USER
        assert identity.is_admin is False

    def test_user_id_positive(self):
        with pytest.raises(ValidationError):
            Identity(user_id=0)
