"""
Message Retrieval

Reads messages from a user's Gmail mailbox: single fetches, batched fetches
through the Gmail batch endpoint, searches, and the "has this sender mailed
me before" lookup.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Sequence, Union

from ..core.exceptions import ItemFailure, TooManyIds
from .batch import MAX_BATCH_SIZE, BatchTransport
from .client import GmailAPIClient
from .parser import NormalizedMessage, normalize_message


logger = logging.getLogger(__name__)

# Only the existence of one unrelated earlier thread matters
PREVIOUS_SENDER_LOOKUP_LIMIT = 2


@dataclass(frozen=True)
class MessageStub:
    """Search hit: ids only, no body."""

    id: str
    thread_id: str


@dataclass
class BatchRetrieval:
    """Batched fetch with per-item failures kept."""

    messages: List[NormalizedMessage] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)


def _to_datetime(value: Union[datetime, str]) -> datetime:
    """Accept a datetime, an RFC 2822 Date header, or an ISO-8601 string. Naive values are UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MessageService:
    """
    Gmail message retrieval for one mailbox owner.

    Usage:
        client = GmailAPIClient.from_tokens(config.gmail_api, access_token, refresh_token)
        transport = BatchTransport(config.gmail_api.batch_url)
        service = MessageService(client, transport, config.gmail_api.messages_path)
        messages = service.query_batch_messages("from:x@y.com", max_results=10)
    """

    def __init__(self, client: GmailAPIClient, transport: BatchTransport, messages_path: str):
        """
        Args:
            client: Authenticated Gmail API client
            transport: Batch transport for bulk fetches
            messages_path: Resource root for batched GETs ('/gmail/v1/users/me/messages')
        """
        self.client = client
        self.transport = transport
        self.messages_path = messages_path

    def get_message(self, message_id: str, format: str = "full") -> NormalizedMessage:
        """
        Fetch and parse a single message.

        Raises:
            MessageNotFoundError: Message id does not exist
            GmailAuthenticationError: Token rejected
        """
        raw = self.client.get(f"/users/me/messages/{message_id}", params={"format": format})
        return normalize_message(raw)

    def get_messages_batch_with_failures(
        self, message_ids: Sequence[str], access_token: Optional[str] = None
    ) -> BatchRetrieval:
        """
        Fetch up to MAX_BATCH_SIZE messages in one round trip, keeping failures.

        Raises:
            TooManyIds: More than MAX_BATCH_SIZE ids (no network call)
            TransportFailure: The batch call itself failed
        """
        if len(message_ids) > MAX_BATCH_SIZE:
            raise TooManyIds(len(message_ids), MAX_BATCH_SIZE)

        retrieval = BatchRetrieval()
        if not message_ids:
            return retrieval

        token = access_token or self.client.access_token
        for result in self.transport.get_batch(message_ids, self.messages_path, token):
            if result.ok:
                retrieval.messages.append(normalize_message(result.message))
            else:
                retrieval.failures.append(result.error)
        return retrieval

    def get_messages_batch(
        self, message_ids: Sequence[str], access_token: Optional[str] = None
    ) -> List[NormalizedMessage]:
        """
        Fetch up to MAX_BATCH_SIZE messages in one round trip.

        Messages that failed individually are dropped from the result (and
        logged); use get_messages_batch_with_failures to see them.

        Raises:
            TooManyIds: More than MAX_BATCH_SIZE ids (no network call)
            TransportFailure: The batch call itself failed
        """
        retrieval = self.get_messages_batch_with_failures(message_ids, access_token)
        if retrieval.failures:
            logger.warning(
                f"Dropped {len(retrieval.failures)} of {len(message_ids)} messages from batch: "
                + ", ".join(f"{f.identifier} ({f})" for f in retrieval.failures)
            )
        return retrieval.messages

    def list_messages(self, query: Optional[str] = None, max_results: Optional[int] = None) -> List[MessageStub]:
        """Search the mailbox. Returns ids only."""
        params = {}
        if query:
            params["q"] = query
        if max_results is not None:
            params["maxResults"] = max_results

        response = self.client.get("/users/me/messages", params=params)
        stubs = [
            MessageStub(id=m["id"], thread_id=m.get("threadId", ""))
            for m in response.get("messages", []) or []
            if m.get("id")
        ]
        logger.debug(f"Search {query!r} returned {len(stubs)} messages")
        return stubs

    def query_batch_messages(
        self,
        query: Optional[str] = None,
        max_results: Optional[int] = None,
        access_token: Optional[str] = None,
    ) -> List[NormalizedMessage]:
        """Search, then batch-fetch the hits. Empty list when nothing matches."""
        stubs = self.list_messages(query=query, max_results=max_results)
        if not stubs:
            return []
        return self.get_messages_batch([s.id for s in stubs], access_token)

    def has_previous_email_from_sender(
        self,
        sender: str,
        before: Union[datetime, str],
        excluding_thread_id: str,
    ) -> bool:
        """
        True if sender mailed this mailbox before `before` in a thread other
        than excluding_thread_id.

        Args:
            sender: Sender address
            before: Cut-off (datetime, RFC 2822 date or ISO-8601 string)
            excluding_thread_id: Thread of the message being triaged
        """
        before_seconds = int(_to_datetime(before).timestamp())
        previous = self.list_messages(
            query=f"from:{sender} before:{before_seconds}",
            max_results=PREVIOUS_SENDER_LOOKUP_LIMIT,
        )
        return any(stub.thread_id != excluding_thread_id for stub in previous)
