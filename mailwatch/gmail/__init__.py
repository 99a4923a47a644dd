"""
Gmail Access Module

Authenticated REST client, the multipart batch transport, message parsing,
and message retrieval built on top of them.
"""

from .batch import MAX_BATCH_SIZE, BatchItem, BatchResult, BatchTransport
from .client import GmailAPIClient
from .messages import MessageService, MessageStub
from .parser import NormalizedMessage, ParsedContent

__all__ = [
    "MAX_BATCH_SIZE",
    "BatchItem",
    "BatchResult",
    "BatchTransport",
    "GmailAPIClient",
    "MessageService",
    "MessageStub",
    "NormalizedMessage",
    "ParsedContent",
]
