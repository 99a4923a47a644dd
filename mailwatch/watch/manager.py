"""
Gmail Watch Subscription Manager.

Registers, renews and cancels the Gmail push-notification subscription
("watch") for a mailbox and keeps the persisted expiration in step:

- watch: subscribe the INBOX to the Pub/Sub topic, persist the expiration
- renew: re-issue watch when the stored expiration is missing or close
- unwatch: stop the subscription and always clear the stored expiration

Errors are classified and reported here, never raised to the scheduler that
drives these calls.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..core.exceptions import AmbiguousSubscriptionState, AuthorizationRevoked
from ..core.observability import ErrorReporter
from ..gmail.client import INVALID_GRANT, GmailAPIClient

logger = logging.getLogger(__name__)

INBOX_LABEL = "INBOX"

# Renew when less than this many hours remain (Gmail watches last 7 days)
RENEW_THRESHOLD_HOURS = 24


class WatchStatus(Enum):
    """Outcome of a watch or renew call."""
    WATCHED = "watched"        # Subscribed, expiration persisted
    AMBIGUOUS = "ambiguous"    # Provider accepted but sent no expiration; nothing persisted
    FAILED = "failed"          # Subscribe call failed; reported
    SKIPPED = "skipped"        # Renew not needed yet


class UnwatchStatus(Enum):
    """Outcome of an unwatch call. Stored state is cleared for all of them."""
    CANCELLED = "cancelled"
    AUTHORIZATION_REVOKED = "authorization_revoked"
    FAILED = "failed"


_UNWATCH_EVENTS = {
    UnwatchStatus.CANCELLED: "unwatched",
    UnwatchStatus.AUTHORIZATION_REVOKED: "revoked",
    UnwatchStatus.FAILED: "failed",
}


@dataclass
class WatchResult:
    status: WatchStatus
    expires_at: Optional[datetime] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status in (WatchStatus.WATCHED, WatchStatus.SKIPPED)


@dataclass
class UnwatchResult:
    status: UnwatchStatus
    error: Optional[Exception] = None


def expiration_from_millis(value) -> datetime:
    """Gmail returns the expiration as epoch milliseconds in a string."""
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def is_authorization_revoked(error: Exception) -> bool:
    """Recognize the revoked / invalid grant signature."""
    return isinstance(error, AuthorizationRevoked) or INVALID_GRANT in str(error)


class WatchManager:
    """
    Manages Gmail watch subscriptions per mailbox owner.

    Usage:
        manager = WatchManager(db, config.gmail_api.pubsub_topic_name, client_factory, reporter)
        result = manager.watch(user_id, gmail_client)
        manager.unwatch(user_id, access_token, refresh_token)
    """

    def __init__(
        self,
        store,
        topic_name: str,
        client_factory: Callable[[Optional[str], Optional[str]], GmailAPIClient],
        error_reporter: Optional[ErrorReporter] = None,
        renew_threshold_hours: int = RENEW_THRESHOLD_HOURS,
    ):
        """
        Initialize watch manager.

        Args:
            store: Persistence with update_subscription_expiration(user_id, expires_at);
                   log_subscription_event is used when present
            topic_name: Pub/Sub topic that receives mailbox notifications
            client_factory: Builds a GmailAPIClient from (access_token, refresh_token)
            error_reporter: Receives unexpected failures
            renew_threshold_hours: Renewal window used by renew()
        """
        self.store = store
        self.topic_name = topic_name
        self.client_factory = client_factory
        self.error_reporter = error_reporter or ErrorReporter()
        self.renew_threshold_hours = renew_threshold_hours

    # =========================================================================
    # EVENT LOGGING
    # =========================================================================

    def _log_event(self, user_id: str, event_type: str, expires_at=None, error: Optional[Exception] = None):
        log_event = getattr(self.store, "log_subscription_event", None)
        if log_event is None:
            return
        log_event(
            user_id,
            event_type,
            expires_at=expires_at,
            error_message=str(error) if error else None,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def watch(self, user_id: str, gmail_client: GmailAPIClient, event_type: str = "watched") -> WatchResult:
        """
        Subscribe the user's INBOX to push notifications.

        Args:
            user_id: Mailbox owner
            gmail_client: Client authenticated as the owner
            event_type: Event name recorded on success ('watched' or 'renewed')

        Returns:
            WatchResult (WATCHED with expires_at, AMBIGUOUS, or FAILED)
        """
        request_body = {
            "labelIds": [INBOX_LABEL],
            "labelFilterBehavior": "include",
            "topicName": self.topic_name,
        }

        try:
            response = gmail_client.post("/users/me/watch", json=request_body)
        except Exception as e:
            logger.error(f"Failed to watch inbox for {user_id}: {e}")
            self.error_reporter.report_error("watch", e, {"user_id": user_id})
            self._log_event(user_id, "failed", error=e)
            return WatchResult(WatchStatus.FAILED, error=e)

        expiration = response.get("expiration")
        if not expiration:
            error = AmbiguousSubscriptionState(f"Watch response has no expiration: {response}")
            logger.error(f"Error watching inbox for {user_id}: {error}")
            self._log_event(user_id, "ambiguous", error=error)
            return WatchResult(WatchStatus.AMBIGUOUS, error=error)

        try:
            expires_at = expiration_from_millis(expiration)
            self.store.update_subscription_expiration(user_id, expires_at)
        except Exception as e:
            logger.error(f"Watch succeeded but saving expiration for {user_id} failed: {e}")
            self.error_reporter.report_error("watch.persist", e, {"user_id": user_id})
            return WatchResult(WatchStatus.FAILED, error=e)

        logger.info(f"✅ Watching inbox for {user_id} (expires: {expires_at.isoformat()})")
        self._log_event(user_id, event_type, expires_at=expires_at)
        return WatchResult(WatchStatus.WATCHED, expires_at=expires_at)

    def renew(
        self,
        user_id: str,
        gmail_client: GmailAPIClient,
        current_expiration: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> WatchResult:
        """
        Re-issue the watch if it is missing or expires within the threshold.

        Returns:
            SKIPPED with the current expiration if still valid, else the watch result
        """
        now = now or datetime.now(timezone.utc)
        if current_expiration is not None:
            if current_expiration.tzinfo is None:
                current_expiration = current_expiration.replace(tzinfo=timezone.utc)
            threshold = now + timedelta(hours=self.renew_threshold_hours)
            if current_expiration > threshold:
                hours_remaining = (current_expiration - now).total_seconds() / 3600
                logger.debug(f"Watch for {user_id} still valid ({hours_remaining:.1f}h remaining)")
                return WatchResult(WatchStatus.SKIPPED, expires_at=current_expiration)
            logger.info(f"Watch for {user_id} expiring soon, renewing...")
        else:
            logger.info(f"No watch for {user_id}, creating one...")

        return self.watch(user_id, gmail_client, event_type="renewed")

    def unwatch(self, user_id: str, access_token: Optional[str], refresh_token: Optional[str]) -> UnwatchResult:
        """
        Cancel the watch and clear the stored expiration.

        The stored expiration is cleared whatever the provider says, so a
        later watch is never blocked by a stale "still watched" record.
        """
        status = UnwatchStatus.CANCELLED
        error: Optional[Exception] = None

        try:
            gmail_client = self.client_factory(access_token, refresh_token)
            logger.info(f"Unwatching emails for {user_id}")
            gmail_client.post("/users/me/stop")
        except Exception as e:
            error = e
            if is_authorization_revoked(e):
                logger.error(f"Error unwatching emails for {user_id}, invalid grant")
                status = UnwatchStatus.AUTHORIZATION_REVOKED
            else:
                logger.error(f"Error unwatching emails for {user_id}: {e}")
                self.error_reporter.report_error("unwatch", e, {"user_id": user_id})
                status = UnwatchStatus.FAILED

        try:
            self.store.update_subscription_expiration(user_id, None)
        except Exception as e:
            logger.error(f"Failed to clear watch expiration for {user_id}: {e}")
            self.error_reporter.report_error("unwatch.persist", e, {"user_id": user_id})
            return UnwatchResult(UnwatchStatus.FAILED, error=e)

        self._log_event(user_id, _UNWATCH_EVENTS[status], error=error)
        return UnwatchResult(status, error=error)
