"""
Read-only access to event facts.
Booking operations only see events through this interface.
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging

from bookings.db.database import db_manager
from bookings.models.booking import EventSnapshot
from bookings.schemas.event import EventInfo

logger = logging.getLogger(__name__)


class EventLookup(ABC):
    """Narrow collaborator that answers questions about events."""

    @abstractmethod
    async def find_published_event(self, event_id: int) -> Optional[EventInfo]:
        """Return the event if it exists and is published, otherwise None."""

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[EventInfo]:
        """Return the event regardless of its publish state, or None."""


class SqlEventLookup(EventLookup):
    """Event lookup backed by the local event_snapshots table."""

    def _load(self, event_id: int) -> Optional[EventInfo]:
        with db_manager.get_session() as session:
            snapshot = session.query(EventSnapshot).filter(
                EventSnapshot.event_id == event_id
            ).first()
            if not snapshot:
                return None

            return EventInfo(
                id=snapshot.event_id,
                name=snapshot.name,
                start_date=snapshot.start_date,
                end_date=snapshot.end_date,
                max_attendees=snapshot.max_attendees,
                price=snapshot.price,
                currency=snapshot.currency,
                is_published=snapshot.is_published,
                venue_name=snapshot.venue_name,
                category_name=snapshot.category_name,
            )

    async def find_published_event(self, event_id: int) -> Optional[EventInfo]:
        event = self._load(event_id)
        if event is None or not event.is_published:
            logger.debug(f"Event {event_id} not found or not published")
            return None
        return event

    async def get_event(self, event_id: int) -> Optional[EventInfo]:
        return self._load(event_id)


# Global event lookup instance
event_lookup = SqlEventLookup()
