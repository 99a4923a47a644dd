"""
Gmail Message Parser

Turns a raw Gmail message resource into a NormalizedMessage: the untouched
raw payload plus ParsedContent (headers, plain-text and HTML bodies,
attachments). Parsing is a pure function of the raw message.
"""

import base64
import binascii
import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    """Attachment metadata; content is fetched separately by attachment_id."""

    filename: str
    mime_type: str
    size: int
    attachment_id: str


@dataclass(frozen=True)
class ParsedContent:
    """Derived view of a Gmail message. Unhashable: headers is a dict."""

    __hash__ = None

    headers: Dict[str, str] = field(default_factory=dict)
    text_plain: str = ""
    text_html: str = ""
    attachments: Tuple[Attachment, ...] = ()
    labels: Tuple[str, ...] = ()

    @property
    def subject(self) -> str:
        return self.headers.get("subject", "")

    @property
    def sender(self) -> str:
        return self.headers.get("from", "")

    @property
    def to(self) -> str:
        return self.headers.get("to", "")

    @property
    def cc(self) -> str:
        return self.headers.get("cc", "")

    @property
    def date(self) -> str:
        return self.headers.get("date", "")

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())

    @property
    def text(self) -> str:
        """Plain-text body, falling back to the HTML body with tags stripped."""
        if self.text_plain:
            return self.text_plain
        return html_to_text(self.text_html)


@dataclass(frozen=True)
class NormalizedMessage:
    """
    A fetched message and its parsed content.

    raw is a private copy and is never mutated. Compared by value, not hashable.
    """

    __hash__ = None

    raw: Dict[str, Any]
    parsed: ParsedContent

    @property
    def id(self) -> str:
        return self.raw.get("id", "")

    @property
    def thread_id(self) -> str:
        return self.raw.get("threadId", "")

    @property
    def snippet(self) -> str:
        return self.raw.get("snippet", "")


def html_to_text(content: str) -> str:
    """Strip HTML to plain text."""
    if not content:
        return ""
    # Remove script and style elements
    content = re.sub(r'<(script|style)[^>]*>.*?</\1>', '', content, flags=re.DOTALL | re.IGNORECASE)
    content = re.sub(r'<br\s*/?>', '\n', content, flags=re.IGNORECASE)
    content = re.sub(r'<[^>]+>', ' ', content)
    content = re.sub(r'[ \t]+', ' ', content)
    return re.sub(r'\s*\n\s*', '\n', content).strip()


def _decode_body(data: str) -> str:
    """Decode Gmail's base64url body data (padding is often stripped)."""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Could not decode body data: {e}")
        return ""


def _walk_parts(part: Dict[str, Any], found: Dict[str, Any]):
    mime_type = part.get("mimeType", "")
    body = part.get("body", {}) or {}
    filename = part.get("filename", "")

    if filename and body.get("attachmentId"):
        found["attachments"].append(
            Attachment(
                filename=filename,
                mime_type=mime_type,
                size=body.get("size", 0),
                attachment_id=body["attachmentId"],
            )
        )
        return

    # First text/plain and first text/html win
    if body.get("data"):
        if mime_type.startswith("text/plain") and not found["text_plain"]:
            found["text_plain"] = _decode_body(body["data"])
        elif mime_type.startswith("text/html") and not found["text_html"]:
            found["text_html"] = _decode_body(body["data"])

    for child in part.get("parts", []) or []:
        _walk_parts(child, found)


def parse_message(raw: Dict[str, Any]) -> ParsedContent:
    """
    Parse a Gmail message resource (format=full).

    Header names are lower-cased; the first occurrence of a header wins.
    """
    payload = raw.get("payload", {}) or {}

    headers: Dict[str, str] = {}
    for header in payload.get("headers", []) or []:
        name = header.get("name", "").lower()
        if name and name not in headers:
            headers[name] = header.get("value", "")

    found = {"text_plain": "", "text_html": "", "attachments": []}
    _walk_parts(payload, found)

    return ParsedContent(
        headers=headers,
        text_plain=found["text_plain"],
        text_html=found["text_html"],
        attachments=tuple(found["attachments"]),
        labels=tuple(raw.get("labelIds", []) or []),
    )


def normalize_message(raw: Dict[str, Any]) -> NormalizedMessage:
    """Copy the raw message and attach its parsed content."""
    raw_copy = copy.deepcopy(raw)
    return NormalizedMessage(raw=raw_copy, parsed=parse_message(raw_copy))
