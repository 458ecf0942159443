"""
Booking Service for consistent admission control.
Handles booking creation, updates, cancellation, feedback and completion with atomic transactions.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy import func
import logging

from bookings.core.config import config
from bookings.core.exceptions import (
    BookingServiceError,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    CapacityExceededError,
    ForbiddenError,
    AuditLogError,
)
from bookings.db.database import db_manager
from bookings.db.redis_client import get_distributed_lock, LocalLockRegistry
from bookings.models.booking import Booking, BookingStatus, ACTIVE_STATUSES, utc_now
from bookings.models.audit_log import AuditLog, AuditAction, AuditEntityType
from bookings.schemas.auth import Identity
from bookings.schemas.booking import BookingCreate, BookingUpdate, BookingFeedback
from bookings.schemas.event import EventInfo
from .event_lookup import EventLookup, event_lookup as default_event_lookup
from .audit_service import AuditService, audit_service as default_audit_service

logger = logging.getLogger(__name__)


# Status changes reachable through update_booking
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
    BookingStatus.CONFIRMED: (BookingStatus.CANCELLED,),
    BookingStatus.CANCELLED: (),
    BookingStatus.COMPLETED: (),
}


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def has_started(event: EventInfo) -> bool:
    return ensure_utc(event.start_date) <= datetime.now(timezone.utc)


class BookingService:
    """
    Booking admission service.

    Capacity is recounted from active bookings on every admission decision,
    and the count-then-write step is serialized per event by a lock.
    """

    def __init__(
        self,
        event_lookup: Optional[EventLookup] = None,
        audit_service: Optional[AuditService] = None
    ):
        self.event_lookup = event_lookup or default_event_lookup
        self.audit_service = audit_service or default_audit_service
        self.consistency_config = None
        self.booking_config = None
        self.audit_config = None
        self._local_locks = LocalLockRegistry()

    async def _get_configs(self):
        """Get configuration settings."""
        if not self.consistency_config:
            self.consistency_config = await config.get_consistency_config()
        if not self.booking_config:
            self.booking_config = await config.get_booking_config()
        if not self.audit_config:
            self.audit_config = await config.get_audit_config()

    def _admission_lock(self, event_id: int):
        """Lock serializing admission decisions for one event."""
        lock_key = f"booking:event:{event_id}"
        blocking_timeout = self.consistency_config["lock_blocking_timeout_seconds"]

        if self.consistency_config["lock_backend"] == "local":
            return self._local_locks.get_lock(lock_key, blocking_timeout)

        return get_distributed_lock(
            lock_key,
            timeout=self.consistency_config["lock_timeout_seconds"],
            blocking_timeout=blocking_timeout
        )

    def _generate_booking_reference(self) -> str:
        """Generate unique booking reference."""
        return f"BK-{datetime.now(timezone.utc).strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"

    async def _active_quantity(
        self,
        session: Session,
        event_id: int,
        exclude_booking_id: Optional[int] = None
    ) -> int:
        """Sum of tickets held by active bookings of an event."""
        query = session.query(func.coalesce(func.sum(Booking.quantity), 0)).filter(
            Booking.event_id == event_id,
            Booking.status.in_(ACTIVE_STATUSES)
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)

        return int(query.scalar())

    def _check_capacity(self, event: EventInfo, active_quantity: int, requested: int):
        if event.max_attendees is None:
            return

        if active_quantity + requested > event.max_attendees:
            available = max(event.max_attendees - active_quantity, 0)
            raise CapacityExceededError(
                f"Not enough tickets available. Only {available} tickets left.",
                details={"event_id": event.id, "available": available, "requested": requested}
            )

    def _check_quantity_limit(self, quantity: int):
        max_quantity = self.booking_config["max_booking_quantity"]
        if quantity > max_quantity:
            raise InvalidStateError(f"Maximum {max_quantity} tickets per booking")

    def _check_access(self, booking: Booking, identity: Identity):
        if booking.user_id != identity.user_id and not identity.is_admin:
            raise ForbiddenError("You do not have permission to access this booking")

    def _load_booking(self, session: Session, booking_id: int) -> Booking:
        booking = session.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError(f"Booking with ID {booking_id} not found")
        return booking

    def _audit_in_transaction(self, session: Session, **entry):
        """Write the audit entry into the booking transaction under the strict policy."""
        if self.audit_config["failure_policy"] != "strict":
            return

        try:
            self.audit_service.record(session=session, **entry)
        except Exception as e:
            logger.error(f"Failed to record audit entry for {entry['entity_type'].value}:{entry['entity_id']}: {e}")
            raise AuditLogError(f"Failed to record audit entry: {e}")

    def _audit_after_commit(self, **entry):
        """Write the audit entry on its own under the best-effort policy."""
        if self.audit_config["failure_policy"] == "strict":
            return

        try:
            self.audit_service.record(**entry)
        except Exception as e:
            logger.error(f"Failed to record audit entry for {entry['entity_type'].value}:{entry['entity_id']}: {e}")

    async def create_booking(self, identity: Identity, booking_data: BookingCreate) -> Booking:
        """
        Create a confirmed booking if the event has room for it.

        Args:
            identity: Caller creating the booking
            booking_data: Event and quantity to book

        Returns:
            The created booking

        Raises:
            NotFoundError: Event missing or unpublished
            InvalidStateError: Event already started
            ConflictError: Caller already booked this event
            CapacityExceededError: Not enough tickets left
        """
        await self._get_configs()
        self._check_quantity_limit(booking_data.quantity)

        event = await self.event_lookup.find_published_event(booking_data.event_id)
        if not event:
            raise NotFoundError(f"Event with ID {booking_data.event_id} not found")

        if has_started(event):
            raise InvalidStateError("Cannot book past events")

        try:
            async with self._admission_lock(event.id):
                with db_manager.get_transaction_session() as session:
                    existing = session.query(Booking).filter(
                        Booking.user_id == identity.user_id,
                        Booking.event_id == event.id
                    ).first()
                    if existing:
                        raise ConflictError(
                            "You already have a booking for this event",
                            details={"booking_id": existing.id}
                        )

                    if event.max_attendees is not None:
                        active_quantity = await self._active_quantity(session, event.id)
                        self._check_capacity(event, active_quantity, booking_data.quantity)

                    booking = Booking(
                        user_id=identity.user_id,
                        event_id=event.id,
                        booking_reference=self._generate_booking_reference(),
                        quantity=booking_data.quantity,
                        total_price=event.price * booking_data.quantity,
                        currency=event.currency or self.booking_config["default_currency"],
                        status=BookingStatus.CONFIRMED
                    )
                    session.add(booking)

                    try:
                        session.flush()  # Get the booking ID
                    except IntegrityError:
                        raise ConflictError("You already have a booking for this event")

                    audit_entry = dict(
                        action=AuditAction.CREATE,
                        entity_type=AuditEntityType.BOOKING,
                        entity_id=booking.id,
                        user_id=identity.user_id,
                        details={"event_id": event.id, "quantity": booking.quantity},
                        ip_address=identity.client_ip,
                        user_agent=identity.user_agent
                    )
                    self._audit_in_transaction(session, **audit_entry)

                    session.commit()

            self._audit_after_commit(**audit_entry)
            logger.info(f"Booking created successfully: {booking.booking_reference}")
            return booking

        except BookingServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to create booking for event {booking_data.event_id}: {e}")
            raise

    def _list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        event_id: Optional[int] = None,
        user_id: Optional[int] = None
    ) -> List[Booking]:
        with db_manager.get_session() as session:
            query = session.query(Booking)

            if status:
                query = query.filter(Booking.status == status)
            if event_id:
                query = query.filter(Booking.event_id == event_id)
            if user_id:
                query = query.filter(Booking.user_id == user_id)

            return query.order_by(Booking.booking_date.desc(), Booking.id.desc()).all()

    async def get_all_bookings(
        self,
        identity: Identity,
        status: Optional[BookingStatus] = None,
        event_id: Optional[int] = None,
        user_id: Optional[int] = None
    ) -> List[Booking]:
        """Get all bookings matching the filters (admin only)."""
        if not identity.is_admin:
            raise ForbiddenError("Only admins can list all bookings")

        return self._list_bookings(status=status, event_id=event_id, user_id=user_id)

    async def get_user_bookings(
        self,
        user_id: int,
        status: Optional[BookingStatus] = None,
        event_id: Optional[int] = None
    ) -> List[Booking]:
        """Get bookings for a user, newest first."""
        return self._list_bookings(status=status, event_id=event_id, user_id=user_id)

    async def get_booking_by_id(self, booking_id: int, identity: Identity) -> Booking:
        """Get a booking the caller owns, or any booking for admins."""
        with db_manager.get_session() as session:
            booking = self._load_booking(session, booking_id)

        self._check_access(booking, identity)
        return booking

    async def get_booking_audit_trail(self, booking_id: int, identity: Identity) -> List[AuditLog]:
        """Get the audit entries recorded for a booking."""
        await self.get_booking_by_id(booking_id, identity)
        return self.audit_service.find_by_entity(AuditEntityType.BOOKING, booking_id)

    async def update_booking(self, booking_id: int, update_data: BookingUpdate, identity: Identity) -> Booking:
        """
        Change a booking's quantity and/or status.

        Quantity increases are re-admitted against the event's capacity,
        excluding the booking's own tickets. Either every change applies or none does.
        """
        await self._get_configs()

        current = await self.get_booking_by_id(booking_id, identity)
        new_status = BookingStatus(update_data.status.value) if update_data.status else None

        if new_status and new_status != current.status and not identity.is_admin \
                and new_status != BookingStatus.CANCELLED:
            raise ForbiddenError("Only admins can change a booking to this status")

        if update_data.quantity is not None:
            self._check_quantity_limit(update_data.quantity)

        event = await self.event_lookup.get_event(current.event_id)
        if event is None and update_data.quantity is not None:
            raise NotFoundError(f"Event with ID {current.event_id} not found")
        if event is not None and has_started(event):
            raise InvalidStateError("Cannot modify bookings for events that have already started")

        try:
            async with self._admission_lock(current.event_id):
                with db_manager.get_transaction_session() as session:
                    booking = self._load_booking(session, booking_id)

                    if new_status and new_status != booking.status \
                            and new_status not in ALLOWED_TRANSITIONS[booking.status]:
                        raise InvalidStateError(
                            f"Cannot change booking status from {booking.status.value} to {new_status.value}"
                        )

                    if update_data.quantity is not None and update_data.quantity != booking.quantity:
                        if not booking.is_active:
                            raise InvalidStateError("Quantity can only be changed on active bookings")

                        if update_data.quantity > booking.quantity and event.max_attendees is not None:
                            active_quantity = await self._active_quantity(
                                session, booking.event_id, exclude_booking_id=booking.id
                            )
                            self._check_capacity(event, active_quantity, update_data.quantity)

                        booking.quantity = update_data.quantity
                        booking.total_price = event.price * update_data.quantity

                    if new_status and new_status != booking.status:
                        booking.status = new_status
                        if new_status == BookingStatus.CANCELLED:
                            booking.cancellation_date = utc_now()

                    audit_entry = dict(
                        action=AuditAction.UPDATE,
                        entity_type=AuditEntityType.BOOKING,
                        entity_id=booking.id,
                        user_id=identity.user_id,
                        details=update_data.model_dump(mode="json", exclude_none=True),
                        ip_address=identity.client_ip,
                        user_agent=identity.user_agent
                    )
                    self._audit_in_transaction(session, **audit_entry)

                    session.commit()

            self._audit_after_commit(**audit_entry)
            logger.info(f"Booking updated: {booking.booking_reference}")
            return booking

        except BookingServiceError:
            raise
        except StaleDataError:
            raise ConflictError("Booking was modified by another request, please retry")
        except Exception as e:
            logger.error(f"Failed to update booking {booking_id}: {e}")
            raise

    async def cancel_booking(self, booking_id: int, identity: Identity) -> Booking:
        """
        Cancel a booking before its event starts.
        The tickets become available again immediately.
        """
        await self._get_configs()

        current = await self.get_booking_by_id(booking_id, identity)

        event = await self.event_lookup.get_event(current.event_id)
        if event is not None and has_started(event):
            raise InvalidStateError("Cannot cancel bookings for events that have already started")

        try:
            with db_manager.get_transaction_session() as session:
                booking = self._load_booking(session, booking_id)

                if booking.status == BookingStatus.CANCELLED:
                    raise InvalidStateError("Booking is already cancelled")
                if booking.status == BookingStatus.COMPLETED:
                    raise InvalidStateError("Cannot cancel a completed booking")

                previous_status = booking.status
                booking.status = BookingStatus.CANCELLED
                booking.cancellation_date = utc_now()

                audit_entry = dict(
                    action=AuditAction.OTHER,
                    entity_type=AuditEntityType.BOOKING,
                    entity_id=booking.id,
                    user_id=identity.user_id,
                    details={"operation": "cancel", "previous_status": previous_status.value},
                    ip_address=identity.client_ip,
                    user_agent=identity.user_agent
                )
                self._audit_in_transaction(session, **audit_entry)

                session.commit()

            self._audit_after_commit(**audit_entry)
            logger.info(f"Booking cancelled: {booking.booking_reference}")
            return booking

        except BookingServiceError:
            raise
        except StaleDataError:
            raise ConflictError("Booking was modified by another request, please retry")
        except Exception as e:
            logger.error(f"Failed to cancel booking {booking_id}: {e}")
            raise

    async def submit_feedback(self, booking_id: int, feedback_data: BookingFeedback, identity: Identity) -> Booking:
        """Attach the owner's feedback and rating to a completed booking, once."""
        await self._get_configs()

        try:
            with db_manager.get_transaction_session() as session:
                booking = self._load_booking(session, booking_id)

                if booking.user_id != identity.user_id:
                    raise ForbiddenError("You can only submit feedback for your own bookings")
                if booking.status != BookingStatus.COMPLETED:
                    raise InvalidStateError("Feedback can only be submitted for completed bookings")
                if booking.has_feedback:
                    raise InvalidStateError("Feedback has already been submitted for this booking")

                booking.feedback = feedback_data.feedback
                booking.rating = feedback_data.rating

                audit_entry = dict(
                    action=AuditAction.OTHER,
                    entity_type=AuditEntityType.BOOKING,
                    entity_id=booking.id,
                    user_id=identity.user_id,
                    details={
                        "operation": "feedback",
                        "rating": feedback_data.rating,
                        "feedback": feedback_data.feedback
                    },
                    ip_address=identity.client_ip,
                    user_agent=identity.user_agent
                )
                self._audit_in_transaction(session, **audit_entry)

                session.commit()

            self._audit_after_commit(**audit_entry)
            logger.info(f"Feedback submitted for booking {booking.booking_reference}")
            return booking

        except BookingServiceError:
            raise
        except StaleDataError:
            raise ConflictError("Booking was modified by another request, please retry")
        except Exception as e:
            logger.error(f"Failed to submit feedback for booking {booking_id}: {e}")
            raise

    async def delete_booking(self, booking_id: int, identity: Identity) -> None:
        """Hard-delete a booking (admin only). The audit trail is kept."""
        await self._get_configs()

        if not identity.is_admin:
            raise ForbiddenError("Only admins can delete bookings")

        try:
            with db_manager.get_transaction_session() as session:
                booking = self._load_booking(session, booking_id)

                audit_entry = dict(
                    action=AuditAction.DELETE,
                    entity_type=AuditEntityType.BOOKING,
                    entity_id=booking.id,
                    user_id=identity.user_id,
                    details={"event_id": booking.event_id, "user_id": booking.user_id},
                    ip_address=identity.client_ip,
                    user_agent=identity.user_agent
                )

                session.delete(booking)
                self._audit_in_transaction(session, **audit_entry)

                session.commit()

            self._audit_after_commit(**audit_entry)
            logger.info(f"Booking {booking_id} deleted by user {identity.user_id}")

        except BookingServiceError:
            raise
        except StaleDataError:
            raise ConflictError("Booking was modified by another request, please retry")
        except Exception as e:
            logger.error(f"Failed to delete booking {booking_id}: {e}")
            raise

    async def complete_bookings_after_event(self, event_id: int) -> int:
        """
        Mark every confirmed booking of an event as completed.

        Returns:
            Number of bookings completed
        """
        await self._get_configs()

        try:
            audit_entry: Dict[str, Any] = {}

            with db_manager.get_transaction_session() as session:
                bookings = session.query(Booking).filter(
                    Booking.event_id == event_id,
                    Booking.status == BookingStatus.CONFIRMED
                ).all()

                for booking in bookings:
                    booking.status = BookingStatus.COMPLETED

                completed_count = len(bookings)

                if completed_count:
                    audit_entry = dict(
                        action=AuditAction.UPDATE,
                        entity_type=AuditEntityType.EVENT,
                        entity_id=event_id,
                        user_id=None,
                        details={
                            "operation": "complete_bookings",
                            "completed_count": completed_count,
                            "booking_ids": [booking.id for booking in bookings]
                        }
                    )
                    self._audit_in_transaction(session, **audit_entry)

                session.commit()

            if audit_entry:
                self._audit_after_commit(**audit_entry)

            logger.info(f"Completed {completed_count} bookings for event {event_id}")
            return completed_count

        except BookingServiceError:
            raise
        except StaleDataError:
            raise ConflictError("Booking was modified by another request, please retry")
        except Exception as e:
            logger.error(f"Failed to complete bookings for event {event_id}: {e}")
            raise


# Global booking service instance
booking_service = BookingService()
