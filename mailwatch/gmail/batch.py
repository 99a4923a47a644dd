"""
Gmail Batch Transport

Combines up to MAX_BATCH_SIZE independent GET requests into one
multipart/mixed HTTP call against the Gmail batch endpoint and splits the
multipart response back into one result per request.

The codec (encode_batch_request / decode_batch_response) is pure and has no
network dependency; BatchTransport adds the single HTTP round trip.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from ..core.exceptions import (
    BatchProtocolError,
    BatchTooLarge,
    DuplicateCorrelationIndex,
    ItemFailure,
    TransportFailure,
)


logger = logging.getLogger(__name__)

# Gmail rejects batches with more than 100 sub-requests
MAX_BATCH_SIZE = 100

_BOUNDARY_RE = re.compile(r'boundary="?([^";]+)"?', re.IGNORECASE)
_CONTENT_ID_RE = re.compile(r"<(?:response-)?item-(\d+)>")


@dataclass(frozen=True)
class BatchItem:
    """One sub-request of a batch. correlation_index is echoed back in the response Content-ID."""

    identifier: str
    resource_path: str
    correlation_index: int

    @property
    def content_id(self) -> str:
        return f"<item-{self.correlation_index}>"


@dataclass
class BatchResult:
    """Outcome of one batch item: either a decoded JSON body or an ItemFailure."""

    identifier: str
    status: Optional[int] = None
    message: Optional[Dict[str, Any]] = None
    error: Optional[ItemFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_batch_items(identifiers: Sequence[str], base_path: str) -> List[BatchItem]:
    """
    Turn resource identifiers into batch items under base_path.

    Args:
        identifiers: Resource ids (e.g. Gmail message ids)
        base_path: Resource root (e.g. '/gmail/v1/users/me/messages')
    """
    base_path = base_path.rstrip("/")
    return [
        BatchItem(identifier=identifier, resource_path=f"{base_path}/{identifier}", correlation_index=index)
        for index, identifier in enumerate(identifiers)
    ]


def encode_batch_request(items: Sequence[BatchItem], boundary: str) -> str:
    """
    Build the multipart/mixed request body.

    Each part is an application/http GET for the item's resource path,
    tagged with the item's Content-ID.
    """
    lines = []
    for item in items:
        lines.extend([
            f"--{boundary}",
            "Content-Type: application/http",
            f"Content-ID: {item.content_id}",
            "",
            f"GET {item.resource_path}",
            "",
        ])
    lines.append(f"--{boundary}--")
    lines.append("")
    return "\r\n".join(lines)


def _split_head(text: str) -> Tuple[Dict[str, str], str]:
    """Split 'headers<blank line>body' into (lower-cased header dict, body)."""
    lines = text.split("\n")
    headers = {}
    for position, line in enumerate(lines):
        if not line.strip():
            return headers, "\n".join(lines[position + 1:])
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    return headers, ""


def _index_items(items: Sequence[BatchItem]) -> Dict[int, BatchItem]:
    """Map correlation index to item. Indexes must be unique or responses would be misattributed."""
    by_index: Dict[int, BatchItem] = {}
    for item in items:
        if item.correlation_index in by_index:
            raise DuplicateCorrelationIndex(item.correlation_index)
        by_index[item.correlation_index] = item
    return by_index


def _parse_part(part: str) -> Tuple[Optional[int], Optional[int], str]:
    """
    Parse one multipart part.

    Returns:
        (correlation_index, http_status, body). Either of the first two may be
        None when the part is missing a Content-ID or a status line.
    """
    # The rest of the delimiter line may carry transport padding
    _, _, part = part.partition("\n")
    part_headers, inner = _split_head(part)

    correlation_index = None
    match = _CONTENT_ID_RE.search(part_headers.get("content-id", ""))
    if match:
        correlation_index = int(match.group(1))

    inner = inner.lstrip("\n")
    status_line, _, rest = inner.partition("\n")
    status = None
    fields = status_line.split()
    if len(fields) >= 2 and fields[0].upper().startswith("HTTP/") and fields[1].isdigit():
        status = int(fields[1])

    _, body = _split_head(rest)
    return correlation_index, status, body.strip()


def _failure_message(body: str, status: Optional[int]) -> str:
    try:
        error = json.loads(body).get("error", {})
        if isinstance(error, dict) and error.get("message"):
            return f"{status} - {error['message']}"
    except (ValueError, AttributeError):
        pass
    return f"{status} - {body[:200]}" if body else f"{status}"


def decode_batch_response(body: str, content_type: str, items: Sequence[BatchItem]) -> List[BatchResult]:
    """
    Demultiplex a multipart/mixed batch response.

    Parts are matched to items by correlation index, so the order the server
    returns them in does not matter. Results come back in item order.

    Raises:
        DuplicateCorrelationIndex: Two items share a correlation index
        BatchProtocolError: No boundary in content_type or no parts in body
    """
    by_index = _index_items(items)

    match = _BOUNDARY_RE.search(content_type or "")
    if not match:
        raise BatchProtocolError(f"Batch response has no multipart boundary (Content-Type: {content_type!r})")
    boundary = match.group(1)

    normalized = body.replace("\r\n", "\n")
    chunks = normalized.split(f"--{boundary}")
    if len(chunks) < 2:
        raise BatchProtocolError("Batch response contains no parts")

    decoded: Dict[int, BatchResult] = {}

    for chunk in chunks[1:]:
        if chunk.startswith("--"):
            # closing delimiter
            break
        if not chunk.strip():
            continue

        correlation_index, status, part_body = _parse_part(chunk)
        item = by_index.get(correlation_index)
        if item is None:
            logger.warning(f"Ignoring batch part with unknown Content-ID (index={correlation_index})")
            continue

        if status is None:
            decoded[correlation_index] = BatchResult(
                identifier=item.identifier,
                error=ItemFailure(item.identifier, "Malformed batch part: missing HTTP status line"),
            )
        elif 200 <= status < 300:
            try:
                message = json.loads(part_body) if part_body else {}
                decoded[correlation_index] = BatchResult(identifier=item.identifier, status=status, message=message)
            except ValueError as e:
                decoded[correlation_index] = BatchResult(
                    identifier=item.identifier,
                    status=status,
                    error=ItemFailure(item.identifier, f"Invalid JSON in batch part: {e}", status_code=status),
                )
        else:
            decoded[correlation_index] = BatchResult(
                identifier=item.identifier,
                status=status,
                error=ItemFailure(item.identifier, _failure_message(part_body, status), status_code=status),
            )

    if not decoded and items:
        raise BatchProtocolError("Batch response contains no recognizable parts")

    results = []
    for item in items:
        result = decoded.get(item.correlation_index)
        if result is None:
            logger.warning(f"No response part for batch item {item.identifier}")
            result = BatchResult(
                identifier=item.identifier,
                error=ItemFailure(item.identifier, "No response part in batch"),
            )
        results.append(result)
    return results


class BatchTransport:
    """
    Sends batches to the Gmail batch endpoint.

    One HTTP call per execute_batch; no splitting and no retries. Callers chunk
    to MAX_BATCH_SIZE and own retry policy for TransportFailure.

    Usage:
        transport = BatchTransport(config.gmail_api.batch_url)
        results = transport.get_batch(ids, '/gmail/v1/users/me/messages', access_token)
        for result in results:
            if result.ok:
                handle(result.message)
    """

    def __init__(self, batch_url: str, timeout: int = 30, max_batch_size: int = MAX_BATCH_SIZE):
        self.batch_url = batch_url
        self.timeout = timeout
        self.max_batch_size = max_batch_size

    def execute_batch(self, items: Sequence[BatchItem], access_token: str) -> List[BatchResult]:
        """
        Execute batch items in one round trip.

        Args:
            items: Batch items (at most max_batch_size)
            access_token: Bearer token for the mailbox owner

        Returns:
            One BatchResult per item, in input order

        Raises:
            BatchTooLarge: More items than max_batch_size (no network call)
            DuplicateCorrelationIndex: Two items share a correlation index (no network call)
            TransportFailure: Outer call failed or response could not be parsed
        """
        if len(items) > self.max_batch_size:
            raise BatchTooLarge(len(items), self.max_batch_size)
        _index_items(items)
        if not items:
            return []

        boundary = f"batch_{uuid.uuid4().hex}"
        payload = encode_batch_request(items, boundary)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": f"multipart/mixed; boundary={boundary}",
        }

        logger.debug(f"Executing batch request with {len(items)} items")
        try:
            response = requests.post(
                self.batch_url,
                data=payload.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Batch request failed: {e}")
            raise TransportFailure(f"Batch request failed: {e}")

        if not 200 <= response.status_code < 300:
            logger.error(f"Batch request failed: {response.status_code} {response.text[:200]}")
            raise TransportFailure(
                f"Batch request failed: {response.status_code}",
                status_code=response.status_code,
            )

        results = decode_batch_response(response.text, response.headers.get("Content-Type", ""), items)
        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Batch complete: {len(results) - failed} succeeded, {failed} failed")
        return results

    def get_batch(self, identifiers: Sequence[str], base_path: str, access_token: str) -> List[BatchResult]:
        """Build items for identifiers under base_path and execute them."""
        return self.execute_batch(build_batch_items(identifiers, base_path), access_token)
