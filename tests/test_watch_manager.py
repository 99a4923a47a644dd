"""
Unit tests for the Gmail watch subscription manager.

Covers the watch / renew / unwatch transitions and how each failure is
classified, with the Gmail client and the store mocked.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from mailwatch.core.exceptions import (
    AmbiguousSubscriptionState,
    AuthorizationRevoked,
    DatabaseError,
    GmailAPIError,
)
from mailwatch.watch.manager import (
    UnwatchStatus,
    WatchManager,
    WatchStatus,
    expiration_from_millis,
    is_authorization_revoked,
)


TOPIC = "projects/mailwatch/topics/gmail"


@pytest.fixture
def mock_store():
    store = Mock()
    store.update_subscription_expiration = Mock()
    store.log_subscription_event = Mock()
    return store


@pytest.fixture
def mock_gmail_client():
    client = Mock()
    client.post = Mock(return_value={"historyId": "1", "expiration": "1700000000000"})
    return client


@pytest.fixture
def mock_reporter():
    reporter = Mock()
    reporter.report_error = Mock()
    return reporter


@pytest.fixture
def manager(mock_store, mock_gmail_client, mock_reporter):
    factory = Mock(return_value=mock_gmail_client)
    return WatchManager(mock_store, TOPIC, factory, mock_reporter, renew_threshold_hours=24)


# ============================================================================
# watch
# ============================================================================


def test_expiration_from_millis():
    assert expiration_from_millis("1700000000000") == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_watch_subscribes_inbox_and_persists_expiration(manager, mock_store, mock_gmail_client):
    result = manager.watch("user-1", mock_gmail_client)

    mock_gmail_client.post.assert_called_once_with(
        "/users/me/watch",
        json={"labelIds": ["INBOX"], "labelFilterBehavior": "include", "topicName": TOPIC},
    )
    expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert result.status == WatchStatus.WATCHED
    assert result.ok
    assert result.expires_at == expected
    assert result.expires_at.isoformat() == "2023-11-14T22:13:20+00:00"
    mock_store.update_subscription_expiration.assert_called_once_with("user-1", expected)


def test_watch_without_expiration_is_ambiguous_and_not_persisted(manager, mock_store, mock_gmail_client, mock_reporter):
    mock_gmail_client.post.return_value = {"historyId": "1"}

    result = manager.watch("user-1", mock_gmail_client)

    assert result.status == WatchStatus.AMBIGUOUS
    assert isinstance(result.error, AmbiguousSubscriptionState)
    assert not result.ok
    mock_store.update_subscription_expiration.assert_not_called()
    mock_reporter.report_error.assert_not_called()


def test_watch_api_failure_is_reported_not_raised(manager, mock_store, mock_gmail_client, mock_reporter):
    mock_gmail_client.post.side_effect = GmailAPIError("Gmail API request failed: 403", status_code=403)

    result = manager.watch("user-1", mock_gmail_client)

    assert result.status == WatchStatus.FAILED
    mock_store.update_subscription_expiration.assert_not_called()
    mock_reporter.report_error.assert_called_once()
    assert mock_reporter.report_error.call_args.args[0] == "watch"


def test_watch_persist_failure_is_reported(manager, mock_store, mock_gmail_client, mock_reporter):
    mock_store.update_subscription_expiration.side_effect = DatabaseError("db down")

    result = manager.watch("user-1", mock_gmail_client)

    assert result.status == WatchStatus.FAILED
    mock_reporter.report_error.assert_called_once()


def test_watch_logs_event(manager, mock_store, mock_gmail_client):
    manager.watch("user-1", mock_gmail_client)

    args, kwargs = mock_store.log_subscription_event.call_args
    assert args == ("user-1", "watched")
    assert kwargs["expires_at"] == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_watch_works_with_store_without_event_log(mock_gmail_client, mock_reporter):
    store = Mock(spec=["update_subscription_expiration"])
    manager = WatchManager(store, TOPIC, Mock(), mock_reporter)

    result = manager.watch("user-1", mock_gmail_client)

    assert result.status == WatchStatus.WATCHED
    store.update_subscription_expiration.assert_called_once()


# ============================================================================
# renew
# ============================================================================


NOW = datetime(2023, 11, 10, 12, 0, tzinfo=timezone.utc)


def test_renew_skips_when_far_from_expiry(manager, mock_gmail_client):
    current = NOW + timedelta(days=3)

    result = manager.renew("user-1", mock_gmail_client, current, now=NOW)

    assert result.status == WatchStatus.SKIPPED
    assert result.expires_at == current
    mock_gmail_client.post.assert_not_called()


def test_renew_rewatches_when_close_to_expiry(manager, mock_store, mock_gmail_client):
    result = manager.renew("user-1", mock_gmail_client, NOW + timedelta(hours=2), now=NOW)

    assert result.status == WatchStatus.WATCHED
    mock_gmail_client.post.assert_called_once()
    assert mock_store.log_subscription_event.call_args.args == ("user-1", "renewed")


def test_renew_watches_when_unwatched(manager, mock_gmail_client):
    result = manager.renew("user-1", mock_gmail_client, None, now=NOW)

    assert result.status == WatchStatus.WATCHED


def test_renew_accepts_naive_expiration(manager, mock_gmail_client):
    naive = (NOW + timedelta(days=5)).replace(tzinfo=None)

    result = manager.renew("user-1", mock_gmail_client, naive, now=NOW)

    assert result.status == WatchStatus.SKIPPED


# ============================================================================
# unwatch
# ============================================================================


def test_unwatch_cancels_and_clears(manager, mock_store, mock_gmail_client, mock_reporter):
    mock_gmail_client.post.return_value = {}

    result = manager.unwatch("user-1", "access", "refresh")

    manager.client_factory.assert_called_once_with("access", "refresh")
    mock_gmail_client.post.assert_called_once_with("/users/me/stop")
    assert result.status == UnwatchStatus.CANCELLED
    mock_store.update_subscription_expiration.assert_called_once_with("user-1", None)
    mock_reporter.report_error.assert_not_called()


def test_unwatch_invalid_grant_is_benign(manager, mock_store, mock_gmail_client, mock_reporter):
    mock_gmail_client.post.side_effect = AuthorizationRevoked("Token refresh failed, invalid_grant: revoked")

    result = manager.unwatch("user-1", "access", "refresh")

    assert result.status == UnwatchStatus.AUTHORIZATION_REVOKED
    mock_store.update_subscription_expiration.assert_called_once_with("user-1", None)
    mock_reporter.report_error.assert_not_called()


def test_unwatch_invalid_grant_message_signature(manager, mock_gmail_client, mock_reporter):
    mock_gmail_client.post.side_effect = RuntimeError("('invalid_grant: Token has been expired or revoked.', {})")

    result = manager.unwatch("user-1", None, "refresh")

    assert result.status == UnwatchStatus.AUTHORIZATION_REVOKED
    mock_reporter.report_error.assert_not_called()


def test_unwatch_other_failure_clears_and_reports(manager, mock_store, mock_gmail_client, mock_reporter):
    error = GmailAPIError("Gmail API request failed: 500", status_code=500)
    mock_gmail_client.post.side_effect = error

    result = manager.unwatch("user-1", "access", "refresh")

    assert result.status == UnwatchStatus.FAILED
    assert result.error is error
    mock_store.update_subscription_expiration.assert_called_once_with("user-1", None)
    mock_reporter.report_error.assert_called_once()
    assert mock_reporter.report_error.call_args.args[:2] == ("unwatch", error)


def test_unwatch_client_construction_failure_still_clears(mock_store, mock_reporter):
    factory = Mock(side_effect=ValueError("bad tokens"))
    manager = WatchManager(mock_store, TOPIC, factory, mock_reporter)

    result = manager.unwatch("user-1", None, None)

    assert result.status == UnwatchStatus.FAILED
    mock_store.update_subscription_expiration.assert_called_once_with("user-1", None)


def test_unwatch_is_idempotent(manager, mock_store, mock_gmail_client):
    mock_gmail_client.post.return_value = {}

    first = manager.unwatch("user-1", "access", "refresh")
    second = manager.unwatch("user-1", "access", "refresh")

    assert first.status == second.status == UnwatchStatus.CANCELLED
    assert mock_store.update_subscription_expiration.call_count == 2
    for call in mock_store.update_subscription_expiration.call_args_list:
        assert call.args == ("user-1", None)


def test_unwatch_persist_failure_reported(manager, mock_store, mock_gmail_client, mock_reporter):
    mock_gmail_client.post.return_value = {}
    mock_store.update_subscription_expiration.side_effect = DatabaseError("db down")

    result = manager.unwatch("user-1", "access", "refresh")

    assert result.status == UnwatchStatus.FAILED
    mock_reporter.report_error.assert_called_once()


def test_is_authorization_revoked():
    assert is_authorization_revoked(AuthorizationRevoked("revoked"))
    assert is_authorization_revoked(Exception("invalid_grant"))
    assert not is_authorization_revoked(GmailAPIError("Backend Error"))
