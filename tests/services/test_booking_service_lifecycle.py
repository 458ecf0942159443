"""
Tests for booking retrieval, updates, cancellation, feedback, deletion and completion.
"""

import pytest
from decimal import Decimal

from bookings.core.exceptions import (
    NotFoundError,
    ConflictError,
    InvalidStateError,
    CapacityExceededError,
    ForbiddenError,
)
from bookings.models.booking import Booking, BookingStatus
from bookings.models.audit_log import AuditLog, AuditAction, AuditEntityType
from bookings.schemas.auth import Identity
from bookings.schemas.booking import BookingCreate, BookingUpdate, BookingFeedback


@pytest.fixture
def published_event(event_lookup):
    return event_lookup.add_event(event_id=1, max_attendees=10, price="50.00")


async def _book(service, identity, event_id=1, quantity=1):
    return await service.create_booking(identity, BookingCreate(event_id=event_id, quantity=quantity))


class TestBookingRetrieval:
    """Test cases for reading bookings."""

    @pytest.mark.asyncio
    async def test_owner_can_get_booking(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)

        found = await booking_service.get_booking_by_id(booking.id, user_identity)

        assert found.id == booking.id

    @pytest.mark.asyncio
    async def test_admin_can_get_any_booking(self, booking_service, published_event, user_identity, admin_identity):
        booking = await _book(booking_service, user_identity)

        found = await booking_service.get_booking_by_id(booking.id, admin_identity)

        assert found.user_id == user_identity.user_id

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, booking_service, published_event, user_identity, other_user_identity):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(ForbiddenError):
            await booking_service.get_booking_by_id(booking.id, other_user_identity)

    @pytest.mark.asyncio
    async def test_missing_booking_not_found(self, booking_service, user_identity):
        with pytest.raises(NotFoundError):
            await booking_service.get_booking_by_id(999, user_identity)

    @pytest.mark.asyncio
    async def test_get_all_bookings_requires_admin(self, booking_service, user_identity):
        with pytest.raises(ForbiddenError):
            await booking_service.get_all_bookings(user_identity)

    @pytest.mark.asyncio
    async def test_get_all_bookings_filters(self, booking_service, event_lookup, admin_identity):
        event_lookup.add_event(event_id=1)
        event_lookup.add_event(event_id=2)
        await _book(booking_service, Identity(user_id=1), event_id=1)
        await _book(booking_service, Identity(user_id=2), event_id=1)
        cancelled = await _book(booking_service, Identity(user_id=2), event_id=2)
        await booking_service.cancel_booking(cancelled.id, Identity(user_id=2))

        assert len(await booking_service.get_all_bookings(admin_identity)) == 3
        assert len(await booking_service.get_all_bookings(admin_identity, event_id=1)) == 2
        assert len(await booking_service.get_all_bookings(admin_identity, user_id=2)) == 2

        filtered = await booking_service.get_all_bookings(
            admin_identity, status=BookingStatus.CANCELLED, user_id=2
        )
        assert [booking.id for booking in filtered] == [cancelled.id]

    @pytest.mark.asyncio
    async def test_get_user_bookings_newest_first(self, booking_service, event_lookup, user_identity):
        event_lookup.add_event(event_id=1)
        event_lookup.add_event(event_id=2)
        first = await _book(booking_service, user_identity, event_id=1)
        second = await _book(booking_service, user_identity, event_id=2)
        await _book(booking_service, Identity(user_id=5), event_id=1)

        bookings = await booking_service.get_user_bookings(user_id=user_identity.user_id)

        assert [booking.id for booking in bookings] == [second.id, first.id]


class TestBookingUpdate:
    """Test cases for updating bookings."""

    @pytest.mark.asyncio
    async def test_quantity_update_recomputes_price(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity, quantity=1)

        updated = await booking_service.update_booking(booking.id, BookingUpdate(quantity=3), user_identity)

        assert updated.quantity == 3
        assert updated.total_price == Decimal("150.00")
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_quantity_increase_excludes_own_tickets(self, booking_service, event_lookup):
        event_lookup.add_event(event_id=1, max_attendees=4)
        first = await _book(booking_service, Identity(user_id=1), quantity=1)
        await _book(booking_service, Identity(user_id=2), quantity=1)

        with pytest.raises(CapacityExceededError):
            await booking_service.update_booking(first.id, BookingUpdate(quantity=4), Identity(user_id=1))

        updated = await booking_service.update_booking(first.id, BookingUpdate(quantity=3), Identity(user_id=1))
        assert updated.quantity == 3

    @pytest.mark.asyncio
    async def test_capacity_three_rejects_then_four_accepts(self, booking_service, event_lookup):
        event_lookup.add_event(event_id=1, max_attendees=3)
        booking = await _book(booking_service, Identity(user_id=1), quantity=2)
        await _book(booking_service, Identity(user_id=2), quantity=1)

        with pytest.raises(CapacityExceededError):
            await booking_service.update_booking(booking.id, BookingUpdate(quantity=3), Identity(user_id=1))

        event_lookup.add_event(event_id=1, max_attendees=4)
        updated = await booking_service.update_booking(booking.id, BookingUpdate(quantity=3), Identity(user_id=1))
        assert updated.quantity == 3

    @pytest.mark.asyncio
    async def test_failed_update_leaves_booking_untouched(self, booking_service, event_lookup, db_session):
        event_lookup.add_event(event_id=1, max_attendees=2)
        booking = await _book(booking_service, Identity(user_id=1), quantity=1)
        await _book(booking_service, Identity(user_id=2), quantity=1)

        with pytest.raises(CapacityExceededError):
            await booking_service.update_booking(
                booking.id, BookingUpdate(quantity=2, status="cancelled"), Identity(user_id=1)
            )

        stored = db_session.get(Booking, booking.id)
        assert stored.quantity == 1
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_owner_can_cancel_through_update(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)

        updated = await booking_service.update_booking(booking.id, BookingUpdate(status="cancelled"), user_identity)

        assert updated.status == BookingStatus.CANCELLED
        assert updated.cancellation_date is not None

    @pytest.mark.asyncio
    async def test_non_admin_cannot_complete(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(ForbiddenError):
            await booking_service.update_booking(booking.id, BookingUpdate(status="completed"), user_identity)

    @pytest.mark.asyncio
    async def test_admin_cannot_complete_through_update(
        self, booking_service, published_event, user_identity, admin_identity, db_session
    ):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(InvalidStateError, match="from confirmed to completed"):
            await booking_service.update_booking(booking.id, BookingUpdate(status="completed"), admin_identity)

        assert db_session.get(Booking, booking.id).status == BookingStatus.CONFIRMED
        with pytest.raises(InvalidStateError, match="completed bookings"):
            await booking_service.submit_feedback(
                booking.id, BookingFeedback(feedback="Not yet held", rating=5), user_identity
            )

    @pytest.mark.asyncio
    async def test_invalid_transition(self, booking_service, published_event, user_identity, admin_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.cancel_booking(booking.id, user_identity)

        with pytest.raises(InvalidStateError, match="from cancelled to confirmed"):
            await booking_service.update_booking(booking.id, BookingUpdate(status="confirmed"), admin_identity)

    @pytest.mark.asyncio
    async def test_quantity_change_on_cancelled_booking(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.cancel_booking(booking.id, user_identity)

        with pytest.raises(InvalidStateError, match="active bookings"):
            await booking_service.update_booking(booking.id, BookingUpdate(quantity=2), user_identity)

    @pytest.mark.asyncio
    async def test_update_after_event_started(self, booking_service, event_lookup, user_identity):
        event_lookup.add_event(event_id=1)
        booking = await _book(booking_service, user_identity)
        event_lookup.start_event(1)

        with pytest.raises(InvalidStateError, match="already started"):
            await booking_service.update_booking(booking.id, BookingUpdate(quantity=2), user_identity)

    @pytest.mark.asyncio
    async def test_update_by_other_user_forbidden(self, booking_service, published_event, user_identity, other_user_identity):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(ForbiddenError):
            await booking_service.update_booking(booking.id, BookingUpdate(quantity=2), other_user_identity)

    @pytest.mark.asyncio
    async def test_update_audit_details(self, booking_service, published_event, user_identity, db_session):
        booking = await _book(booking_service, user_identity)

        await booking_service.update_booking(booking.id, BookingUpdate(quantity=2), user_identity)

        entry = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.UPDATE).one()
        assert entry.details == {"quantity": 2}


class TestBookingCancellation:
    """Test cases for cancelling bookings."""

    @pytest.mark.asyncio
    async def test_cancel_booking(self, booking_service, published_event, user_identity, db_session):
        booking = await _book(booking_service, user_identity)

        cancelled = await booking_service.cancel_booking(booking.id, user_identity)

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation_date is not None
        entry = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.OTHER).one()
        assert entry.details == {"operation": "cancel", "previous_status": "confirmed"}

    @pytest.mark.asyncio
    async def test_cancel_races_concurrent_update(self, booking_service, published_event, user_identity, db_session, monkeypatch):
        booking = await _book(booking_service, user_identity)

        def update_from_another_request(session, **entry):
            stored = db_session.get(Booking, booking.id)
            stored.quantity = 2
            db_session.commit()

        monkeypatch.setattr(booking_service, "_audit_in_transaction", update_from_another_request)

        with pytest.raises(ConflictError, match="modified by another request"):
            await booking_service.cancel_booking(booking.id, user_identity)

        db_session.expire_all()
        stored = db_session.get(Booking, booking.id)
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.quantity == 2
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_cancel_twice(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.cancel_booking(booking.id, user_identity)

        with pytest.raises(InvalidStateError, match="already cancelled"):
            await booking_service.cancel_booking(booking.id, user_identity)

    @pytest.mark.asyncio
    async def test_cancel_completed(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.complete_bookings_after_event(1)

        with pytest.raises(InvalidStateError, match="completed"):
            await booking_service.cancel_booking(booking.id, user_identity)

    @pytest.mark.asyncio
    async def test_cancel_after_event_started(self, booking_service, event_lookup, user_identity):
        event_lookup.add_event(event_id=1)
        booking = await _book(booking_service, user_identity)
        event_lookup.start_event(1)

        with pytest.raises(InvalidStateError, match="already started"):
            await booking_service.cancel_booking(booking.id, user_identity)

    @pytest.mark.asyncio
    async def test_admin_can_cancel(self, booking_service, published_event, user_identity, admin_identity):
        booking = await _book(booking_service, user_identity)

        cancelled = await booking_service.cancel_booking(booking.id, admin_identity)

        assert cancelled.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_other_user_cannot_cancel(self, booking_service, published_event, user_identity, other_user_identity):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(ForbiddenError):
            await booking_service.cancel_booking(booking.id, other_user_identity)


class TestBookingCompletionAndFeedback:
    """Test cases for completing bookings and submitting feedback."""

    @pytest.mark.asyncio
    async def test_complete_only_confirmed(self, booking_service, event_lookup, db_session):
        event_lookup.add_event(event_id=1)
        event_lookup.add_event(event_id=2)
        first = await _book(booking_service, Identity(user_id=1))
        second = await _book(booking_service, Identity(user_id=2))
        cancelled = await _book(booking_service, Identity(user_id=3))
        await booking_service.cancel_booking(cancelled.id, Identity(user_id=3))
        other_event = await _book(booking_service, Identity(user_id=1), event_id=2)

        count = await booking_service.complete_bookings_after_event(1)

        assert count == 2
        assert db_session.get(Booking, first.id).status == BookingStatus.COMPLETED
        assert db_session.get(Booking, second.id).status == BookingStatus.COMPLETED
        assert db_session.get(Booking, cancelled.id).status == BookingStatus.CANCELLED
        assert db_session.get(Booking, other_event.id).status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_complete_writes_single_batch_audit(self, booking_service, published_event, db_session):
        first = await _book(booking_service, Identity(user_id=1))
        second = await _book(booking_service, Identity(user_id=2))

        await booking_service.complete_bookings_after_event(1)

        entry = db_session.query(AuditLog).filter(AuditLog.entity_type == AuditEntityType.EVENT).one()
        assert entry.action == AuditAction.UPDATE
        assert entry.entity_id == "1"
        assert entry.user_id is None
        assert entry.details["operation"] == "complete_bookings"
        assert entry.details["completed_count"] == 2
        assert sorted(entry.details["booking_ids"]) == sorted([first.id, second.id])

    @pytest.mark.asyncio
    async def test_complete_nothing_writes_no_audit(self, booking_service, db_session):
        count = await booking_service.complete_bookings_after_event(77)

        assert count == 0
        assert db_session.query(AuditLog).count() == 0

    @pytest.mark.asyncio
    async def test_feedback_after_completion(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.complete_bookings_after_event(1)

        updated = await booking_service.submit_feedback(
            booking.id, BookingFeedback(feedback="Great event", rating=5), user_identity
        )

        assert updated.feedback == "Great event"
        assert updated.rating == 5

    @pytest.mark.asyncio
    async def test_feedback_before_completion(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(InvalidStateError, match="completed bookings"):
            await booking_service.submit_feedback(
                booking.id, BookingFeedback(feedback="Too early", rating=3), user_identity
            )

    @pytest.mark.asyncio
    async def test_feedback_only_once(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.complete_bookings_after_event(1)
        await booking_service.submit_feedback(booking.id, BookingFeedback(feedback="Good", rating=4), user_identity)

        with pytest.raises(InvalidStateError, match="already been submitted"):
            await booking_service.submit_feedback(booking.id, BookingFeedback(feedback="Again", rating=1), user_identity)

    @pytest.mark.asyncio
    async def test_admin_cannot_submit_feedback_for_others(self, booking_service, published_event, user_identity, admin_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.complete_bookings_after_event(1)

        with pytest.raises(ForbiddenError):
            await booking_service.submit_feedback(booking.id, BookingFeedback(feedback="Nope", rating=2), admin_identity)


class TestBookingDeletion:
    """Test cases for deleting bookings."""

    @pytest.mark.asyncio
    async def test_delete_requires_admin(self, booking_service, published_event, user_identity):
        booking = await _book(booking_service, user_identity)

        with pytest.raises(ForbiddenError):
            await booking_service.delete_booking(booking.id, user_identity)

    @pytest.mark.asyncio
    async def test_delete_keeps_audit_trail(self, booking_service, published_event, user_identity, admin_identity, db_session):
        booking = await _book(booking_service, user_identity)

        await booking_service.delete_booking(booking.id, admin_identity)

        assert db_session.get(Booking, booking.id) is None
        trail = booking_service.audit_service.find_by_entity(AuditEntityType.BOOKING, booking.id)
        assert [entry.action for entry in trail] == [AuditAction.DELETE, AuditAction.CREATE]
        assert trail[0].details == {"event_id": 1, "user_id": user_identity.user_id}

    @pytest.mark.asyncio
    async def test_delete_missing(self, booking_service, admin_identity):
        with pytest.raises(NotFoundError):
            await booking_service.delete_booking(999, admin_identity)

    @pytest.mark.asyncio
    async def test_delete_frees_pair_for_rebooking(self, booking_service, published_event, user_identity, admin_identity):
        booking = await _book(booking_service, user_identity)
        await booking_service.delete_booking(booking.id, admin_identity)

        rebooked = await _book(booking_service, user_identity)

        assert rebooked.id is not None
