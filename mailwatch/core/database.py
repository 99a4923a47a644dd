"""
Database models and management for Mailwatch.

This module contains the SQLAlchemy models and the DatabaseManager class.
The watch manager only ever writes the subscription expiration through
DatabaseManager.update_subscription_expiration.
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.sql import func
from datetime import datetime, timedelta, timezone
from typing import Optional, List
import logging

from .exceptions import DatabaseError, UserNotFoundError

Base = declarative_base()


# ============================================================================
# USERS & SUBSCRIPTIONS
# ============================================================================


class User(Base):
    """Mailbox owner. Holds the persisted watch expiration."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, index=True)

    # NULL means unwatched
    watch_emails_expiration_date = Column(DateTime(timezone=True), index=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}', watch_expires={self.watch_emails_expiration_date})>"


class SubscriptionEvent(Base):
    """
    Watch subscription lifecycle events for monitoring.

    One row per watch/renew/unwatch outcome.
    """
    __tablename__ = "subscription_events"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    event_type = Column(String(20), nullable=False, index=True)
    timestamp = Column(DateTime, default=func.now(), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    __table_args__ = (
        CheckConstraint(
            "event_type IN ('watched', 'renewed', 'ambiguous', 'unwatched', 'revoked', 'failed')",
            name="valid_subscription_event_type"
        ),
        Index("idx_subscription_events_user_time", "user_id", "timestamp"),
    )

    def __repr__(self):
        return f"<SubscriptionEvent(id={self.id}, user='{self.user_id}', type='{self.event_type}')>"


# ============================================================================
# DATABASE MANAGER
# ============================================================================


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DatabaseManager:
    """Database operations manager."""

    def __init__(self, connection_string: str):
        """Initialize database manager with connection string."""
        self.logger = logging.getLogger(__name__)
        self.connection_string = connection_string

        engine_kwargs = {"pool_pre_ping": True, "echo": False}
        if not connection_string.startswith("sqlite"):
            engine_kwargs.update(pool_size=10, max_overflow=20)

        self.engine = create_engine(connection_string, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(self.engine)
        self.logger.info("Database tables created successfully")

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()

    # ========================================================================
    # USER METHODS
    # ========================================================================

    def get_or_create_user(self, user_id: str, email: Optional[str] = None) -> User:
        """Return the user row, creating it if missing."""
        session = self.get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                user = User(id=user_id, email=email)
                session.add(user)
                session.commit()
                session.refresh(user)
                self.logger.info(f"Created user {user_id}")
            session.expunge(user)
            return user
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseError(f"Failed to get or create user {user_id}: {e}")
        finally:
            session.close()

    # ========================================================================
    # SUBSCRIPTION METHODS
    # ========================================================================

    def update_subscription_expiration(self, user_id: str, expires_at: Optional[datetime]):
        """
        Set or clear the watch expiration for a user.

        Last write wins; no compare-and-swap.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        session = self.get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            user.watch_emails_expiration_date = expires_at
            session.commit()
            self.logger.debug(f"Updated watch expiration for {user_id}: {expires_at}")
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseError(f"Failed to update watch expiration for {user_id}: {e}")
        finally:
            session.close()

    def get_subscription_expiration(self, user_id: str) -> Optional[datetime]:
        """Return the stored watch expiration, or None when unwatched."""
        session = self.get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            return _as_utc(user.watch_emails_expiration_date)
        finally:
            session.close()

    def get_users_due_for_renewal(self, threshold_hours: int, now: Optional[datetime] = None) -> List[User]:
        """
        Users whose watch is missing or expires within threshold_hours.

        Args:
            threshold_hours: Renewal window
            now: Reference time (default: current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now + timedelta(hours=threshold_hours)
        session = self.get_session()
        try:
            users = (
                session.query(User)
                .filter(
                    (User.watch_emails_expiration_date.is_(None))
                    | (User.watch_emails_expiration_date < cutoff)
                )
                .order_by(User.id)
                .all()
            )
            for user in users:
                session.expunge(user)
            return users
        finally:
            session.close()

    def log_subscription_event(
        self,
        user_id: str,
        event_type: str,
        expires_at: Optional[datetime] = None,
        error_message: Optional[str] = None,
    ) -> Optional[int]:
        """
        Record a subscription event.

        Returns:
            Event ID if logged successfully, None otherwise
        """
        session = self.get_session()
        try:
            event = SubscriptionEvent(
                user_id=user_id,
                event_type=event_type,
                expires_at=expires_at,
                error_message=error_message,
            )
            session.add(event)
            session.commit()
            session.refresh(event)
            self.logger.debug(f"Logged subscription event: {event_type} (user={user_id})")
            return event.id
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to log subscription event: {e}")
            session.rollback()
            return None
        finally:
            session.close()

    def get_subscription_events(self, user_id: str) -> List[SubscriptionEvent]:
        """Events for a user, oldest first."""
        session = self.get_session()
        try:
            events = (
                session.query(SubscriptionEvent)
                .filter(SubscriptionEvent.user_id == user_id)
                .order_by(SubscriptionEvent.id)
                .all()
            )
            for event in events:
                session.expunge(event)
            return events
        finally:
            session.close()
