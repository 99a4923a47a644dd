"""
Tests for DatabaseManager subscription persistence against a temporary SQLite file.
"""

import pytest
from datetime import datetime, timedelta, timezone

from mailwatch.core.database import DatabaseManager
from mailwatch.core.exceptions import UserNotFoundError


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'mailwatch.db'}")
    manager.create_tables()
    return manager


EXPIRES = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_get_or_create_user_is_idempotent(db):
    first = db.get_or_create_user("u1", email="me@example.com")
    second = db.get_or_create_user("u1")

    assert first.id == second.id == "u1"
    assert second.email == "me@example.com"
    assert db.get_subscription_expiration("u1") is None


def test_update_and_clear_expiration(db):
    db.get_or_create_user("u1")

    db.update_subscription_expiration("u1", EXPIRES)
    assert db.get_subscription_expiration("u1") == EXPIRES

    db.update_subscription_expiration("u1", None)
    assert db.get_subscription_expiration("u1") is None


def test_update_unknown_user_raises(db):
    with pytest.raises(UserNotFoundError):
        db.update_subscription_expiration("ghost", EXPIRES)


def test_users_due_for_renewal(db):
    now = datetime(2023, 11, 10, 12, 0, tzinfo=timezone.utc)
    for user_id in ("fresh", "soon", "never"):
        db.get_or_create_user(user_id)
    db.update_subscription_expiration("fresh", now + timedelta(days=5))
    db.update_subscription_expiration("soon", now + timedelta(hours=3))

    due = db.get_users_due_for_renewal(24, now=now)

    assert [u.id for u in due] == ["never", "soon"]


def test_subscription_events_are_recorded(db):
    db.get_or_create_user("u1")

    event_id = db.log_subscription_event("u1", "watched", expires_at=EXPIRES)
    db.log_subscription_event("u1", "revoked", error_message="invalid_grant")

    assert event_id is not None
    events = db.get_subscription_events("u1")
    assert [e.event_type for e in events] == ["watched", "revoked"]
    assert events[1].error_message == "invalid_grant"


def test_invalid_event_type_is_not_logged(db):
    db.get_or_create_user("u1")

    assert db.log_subscription_event("u1", "exploded") is None
    assert db.get_subscription_events("u1") == []
