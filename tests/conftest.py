"""
Test configuration and fixtures for Bookings Service.
Focuses on admission control and consistency scenarios.
"""

import os

os.environ.pop("ZERO_TOKEN", None)
os.environ["JWT_SECRET"] = "test-secret-key-for-the-bookings-service"
os.environ["JWT_ALGORITHM"] = "HS256"

import pytest
import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from unittest.mock import patch
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Dict, Optional

from bookings.main import app
from bookings.api.dependencies import get_booking_service, get_event_lookup
from bookings.db.database import db_manager
from bookings.models.booking import Base
from bookings.schemas.auth import Identity, UserRole
from bookings.schemas.event import EventInfo
from bookings.services.audit_service import AuditService
from bookings.services.booking_service import BookingService
from bookings.services.event_lookup import EventLookup

# In-memory database shared by every session through a single connection
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


class FakeEventLookup(EventLookup):
    """In-memory event lookup."""

    def __init__(self):
        self.events: Dict[int, EventInfo] = {}

    def add_event(
        self,
        event_id: int = 1,
        max_attendees: Optional[int] = None,
        price: str = "50.00",
        currency: str = "USD",
        is_published: bool = True,
        starts_in: timedelta = timedelta(days=7),
        name: str = "Python Conference"
    ) -> EventInfo:
        start_date = datetime.now(timezone.utc) + starts_in
        event = EventInfo(
            id=event_id,
            name=name,
            start_date=start_date,
            end_date=start_date + timedelta(hours=8),
            max_attendees=max_attendees,
            price=Decimal(price),
            currency=currency,
            is_published=is_published,
            venue_name="Main Hall",
            category_name="Technology"
        )
        self.events[event_id] = event
        return event

    def start_event(self, event_id: int):
        """Move an event's start into the past."""
        event = self.events[event_id]
        self.events[event_id] = event.model_copy(
            update={"start_date": datetime.now(timezone.utc) - timedelta(hours=1)}
        )

    async def find_published_event(self, event_id: int) -> Optional[EventInfo]:
        event = self.events.get(event_id)
        if event is None or not event.is_published:
            return None
        return event

    async def get_event(self, event_id: int) -> Optional[EventInfo]:
        return self.events.get(event_id)


@pytest.fixture(scope="function")
def initialized_db_manager():
    """Point the global database manager at a fresh in-memory database."""
    Base.metadata.create_all(bind=engine)

    with patch.object(db_manager, "engine", engine), \
         patch.object(db_manager, "session_factory", TestingSessionLocal), \
         patch.object(db_manager, "_initialized", True):
        yield db_manager

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(initialized_db_manager):
    """Create a database session for assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def event_lookup():
    return FakeEventLookup()


@pytest.fixture
def consistency_config():
    """Admission lock configuration for testing."""
    return {
        "lock_backend": "local",
        "lock_timeout_seconds": 5,
        "lock_blocking_timeout_seconds": 5
    }


@pytest.fixture
def booking_config():
    """Booking configuration for testing."""
    return {
        "max_booking_quantity": 10,
        "default_currency": "USD"
    }


@pytest.fixture
def booking_service(initialized_db_manager, event_lookup, consistency_config, booking_config):
    """Create booking service instance for testing."""
    service = BookingService(event_lookup=event_lookup, audit_service=AuditService())
    service.consistency_config = consistency_config
    service.booking_config = booking_config
    service.audit_config = {"failure_policy": "best_effort"}
    return service


@pytest.fixture
def user_identity():
    return Identity(user_id=1, role=UserRole.USER, client_ip="127.0.0.1", user_agent="pytest")


@pytest.fixture
def other_user_identity():
    return Identity(user_id=2, role=UserRole.USER)


@pytest.fixture
def admin_identity():
    return Identity(user_id=99, role=UserRole.ADMIN)


def make_token(user_id: int, role: str = "user", expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    payload = {
        "user_id": user_id,
        "email": f"user{user_id}@example.com",
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims
    }
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {make_token(1)}"}


@pytest.fixture
def other_user_headers():
    return {"Authorization": f"Bearer {make_token(2)}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(99, role='admin')}"}


@pytest.fixture
def client(booking_service, event_lookup):
    """Create test client wired to the test booking service and event lookup."""
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_event_lookup] = lambda: event_lookup

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def token_factory():
    return make_token
