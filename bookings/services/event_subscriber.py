"""
Event Subscriber Service for Bookings Service.
Subscribes to Redis events from the Events Service, keeps the local event
snapshots in sync, and completes bookings once an event has ended.
"""

import asyncio
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional

from bookings.core.config import config
from bookings.db.redis_client import redis_manager
from bookings.db.database import db_manager
from bookings.models.booking import EventSnapshot, utc_now
from .booking_service import BookingService, booking_service as default_booking_service

logger = logging.getLogger(__name__)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class EventSubscriber:
    """
    Subscribes to Redis events from Events Service and maintains the event snapshots.
    """

    def __init__(self, booking_service: Optional[BookingService] = None):
        self.booking_service = booking_service or default_booking_service
        self.channel_prefix = "eventbook:events"
        self.running = False
        self.pubsub = None
        self._listener_task: Optional[asyncio.Task] = None

    @property
    def channels(self):
        return [
            f"{self.channel_prefix}:created",
            f"{self.channel_prefix}:updated",
            f"{self.channel_prefix}:deleted",
            f"{self.channel_prefix}:ended",
        ]

    async def start(self):
        """Start the event subscriber."""
        if self.running:
            return

        try:
            subscriber_config = await config.get_subscriber_config()
            self.channel_prefix = subscriber_config["channel_prefix"]

            self.pubsub = await redis_manager.pubsub()
            await self.pubsub.subscribe(*self.channels)
            self.running = True

            logger.info(f"Event subscriber started, listening on {self.channel_prefix}:*")

            self._listener_task = asyncio.create_task(self._listen_for_messages())

        except Exception as e:
            logger.error(f"Failed to start event subscriber: {e}")
            raise

    async def stop(self):
        """Stop the event subscriber."""
        if not self.running:
            return

        self.running = False
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
        if self.pubsub:
            await self.pubsub.unsubscribe()
            await self.pubsub.aclose()

        logger.info("Event subscriber stopped")

    async def _listen_for_messages(self):
        """Listen for messages from Redis pub/sub."""
        try:
            while self.running:
                message = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)

                if message and message['type'] == 'message':
                    await self._handle_message(message)

                # Small delay to prevent busy waiting
                await asyncio.sleep(0.1)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in message listener: {e}")
            self.running = False

    async def _handle_message(self, message):
        """Handle incoming Redis message."""
        try:
            data = json.loads(message['data'])
            event_type = data.get('type')
            event_id = data.get('event_id')

            logger.info(f"Received event: {event_type} for event {event_id}")

            if event_type in ('EventCreated', 'EventUpdated'):
                await self._handle_event_upserted(data)
            elif event_type == 'EventDeleted':
                await self._handle_event_deleted(event_id)
            elif event_type == 'EventEnded':
                await self._handle_event_ended(event_id)
            else:
                logger.warning(f"Unknown event type: {event_type}")

        except Exception as e:
            logger.error(f"Error handling message: {e}")

    def _snapshot_fields(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
        """Map an events-service payload onto snapshot columns."""
        start_date = _parse_datetime(event_data.get('start_date') or event_data.get('event_date'))

        if 'is_published' in event_data:
            is_published = bool(event_data['is_published'])
        else:
            is_published = str(event_data.get('status', '')).lower() == 'published'

        max_attendees = event_data.get('max_attendees', event_data.get('capacity'))

        return {
            "name": event_data.get('name') or event_data.get('title'),
            "start_date": start_date,
            "end_date": _parse_datetime(event_data.get('end_date')),
            "max_attendees": int(max_attendees) if max_attendees is not None else None,
            "price": Decimal(str(event_data.get('price') or 0)),
            "currency": event_data.get('currency') or "USD",
            "is_published": is_published,
            "venue_name": event_data.get('venue_name') or event_data.get('venue'),
            "category_name": event_data.get('category_name') or event_data.get('category'),
        }

    async def _handle_event_upserted(self, data: Dict[str, Any]):
        """Handle event created or updated notification."""
        event_data = data.get('event_data') or {}
        event_id = event_data.get('id') or data.get('event_id')

        if not event_id:
            logger.error(f"Event ID missing in {data.get('type')} data")
            return

        fields = self._snapshot_fields(event_data)
        if fields["start_date"] is None:
            logger.error(f"Start date missing in {data.get('type')} data for event {event_id}")
            return

        with db_manager.get_session() as session:
            snapshot = session.query(EventSnapshot).filter(
                EventSnapshot.event_id == event_id
            ).first()

            if snapshot is None:
                snapshot = EventSnapshot(event_id=event_id, **fields)
                session.add(snapshot)
                logger.info(f"Created snapshot for event {event_id}")
            else:
                for key, value in fields.items():
                    setattr(snapshot, key, value)
                snapshot.last_updated = utc_now()
                logger.info(f"Updated snapshot for event {event_id}")

    async def _handle_event_deleted(self, event_id: Optional[int]):
        """Handle event deleted notification. Existing bookings are left untouched."""
        if not event_id:
            logger.error("Event ID missing in EventDeleted data")
            return

        with db_manager.get_session() as session:
            deleted = session.query(EventSnapshot).filter(
                EventSnapshot.event_id == event_id
            ).delete()

        logger.info(f"Removed {deleted} snapshot(s) for deleted event {event_id}")

    async def _handle_event_ended(self, event_id: Optional[int]):
        """Handle event ended notification by completing its confirmed bookings."""
        if not event_id:
            logger.error("Event ID missing in EventEnded data")
            return

        completed = await self.booking_service.complete_bookings_after_event(int(event_id))
        logger.info(f"Event {event_id} ended, {completed} bookings completed")


# Global event subscriber instance
event_subscriber = EventSubscriber()
