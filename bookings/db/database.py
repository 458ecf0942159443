"""
Database connection and session management for the Bookings Service.
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from contextlib import contextmanager
from typing import Generator, Optional
import logging

from bookings.core.config import config
from bookings.models.booking import Base
from bookings.models import audit_log  # noqa: F401

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database manager.
    Handles connection pooling and transaction management.
    """

    def __init__(self):
        self.engine = None
        self.session_factory = None
        self._initialized = False

    async def initialize(self, database_url: Optional[str] = None):
        """Initialize the engine and session factory."""
        if self._initialized:
            return

        try:
            db_url = database_url or await config.get_database_url()
            db_config = await config.get_database_config()

            if db_url.startswith("sqlite"):
                self.engine = create_engine(
                    db_url,
                    connect_args={"check_same_thread": False},
                    echo=db_config["echo"],
                )
            else:
                self.engine = create_engine(
                    db_url,
                    pool_size=db_config["pool_size"],
                    max_overflow=db_config["max_overflow"],
                    pool_timeout=db_config["pool_timeout"],
                    pool_recycle=db_config["pool_recycle"],
                    pool_pre_ping=True,
                    echo=db_config["echo"],
                )

            self.session_factory = sessionmaker(
                bind=self.engine,
                class_=Session,
                autoflush=False,
                expire_on_commit=False
            )

            self._setup_event_listeners()

            self._initialized = True
            logger.info("Database manager initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database manager: {e}")
            raise

    def _setup_event_listeners(self):
        """Set per-connection parameters."""

        @event.listens_for(self.engine, "connect")
        def set_connection_parameters(dbapi_connection, connection_record):
            if self.engine.dialect.name == "postgresql":
                with dbapi_connection.cursor() as cursor:
                    cursor.execute("SET lock_timeout TO '30s'")
                    cursor.execute("SET statement_timeout TO '60s'")
            elif self.engine.dialect.name == "sqlite":
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic transaction management.
        Commits on success and rolls back on exceptions.
        """
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")

        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def get_transaction_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with explicit transaction control.
        The caller commits; anything left uncommitted is rolled back.
        """
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")

        session = self.session_factory()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Transaction session error: {e}")
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create all database tables."""
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created successfully")

    def health_check(self) -> bool:
        """Run a trivial query against the database."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self):
        """Close all database connections."""
        if self.engine:
            self.engine.dispose()
        self._initialized = False
        logger.info("Database connections closed")


# Global database manager instance
db_manager = DatabaseManager()