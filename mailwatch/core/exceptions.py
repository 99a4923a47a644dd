"""
Custom exceptions for Mailwatch.
"""


class MailwatchException(Exception):
    """Base exception for all custom exceptions."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(MailwatchException):
    """Configuration is invalid or missing."""

    pass


# ============================================================================
# Gmail API Exceptions
# ============================================================================


class GmailAPIError(MailwatchException):
    """Error communicating with the Gmail API."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class GmailAuthenticationError(GmailAPIError):
    """Access token rejected or could not be refreshed."""

    pass


class AuthorizationRevoked(GmailAuthenticationError):
    """The grant behind the credentials is invalid or was revoked (invalid_grant)."""

    pass


class GmailRateLimitError(GmailAPIError):
    """Gmail API rate limit exceeded."""

    pass


class MessageNotFoundError(GmailAPIError):
    """Message does not exist in the mailbox."""

    pass


class TransportFailure(GmailAPIError):
    """The outer batch HTTP call failed. Fatal to the whole batch, retryable by the caller."""

    pass


class BatchProtocolError(TransportFailure):
    """Batch response could not be demultiplexed (bad boundary, no parts)."""

    pass


class ItemFailure(GmailAPIError):
    """
    A single part of a batch failed.

    Never raised by the transport; carried on the BatchResult for that item.
    """

    def __init__(self, identifier: str, message: str, status_code: int = None):
        super().__init__(message, status_code=status_code)
        self.identifier = identifier


# ============================================================================
# Caller Contract Exceptions
# ============================================================================


class BatchTooLarge(MailwatchException, ValueError):
    """More items than the batch endpoint accepts in one call."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Batch of {size} items exceeds the maximum of {limit}")
        self.size = size
        self.limit = limit


class TooManyIds(BatchTooLarge):
    """Too many message ids for a single batch retrieval."""

    def __init__(self, size: int, limit: int):
        super().__init__(size, limit)
        self.args = (f"Too many messages ({size}). Max {limit}",)


class DuplicateCorrelationIndex(MailwatchException, ValueError):
    """Two batch items share a correlation index, so their responses cannot be told apart."""

    def __init__(self, correlation_index: int):
        super().__init__(f"Duplicate batch correlation index: {correlation_index}")
        self.correlation_index = correlation_index


# ============================================================================
# Watch Subscription Exceptions
# ============================================================================


class WatchError(MailwatchException):
    """Push-notification subscription operation failed."""

    pass


class AmbiguousSubscriptionState(WatchError):
    """Watch call succeeded but the response carried no expiration."""

    pass


# ============================================================================
# LLM API Exceptions
# ============================================================================


class LLMAPIError(MailwatchException):
    """Error communicating with a language-model provider."""

    pass


class LLMRateLimitError(LLMAPIError):
    """Language-model provider rate limit exceeded."""

    pass


# ============================================================================
# Database Exceptions
# ============================================================================


class DatabaseError(MailwatchException):
    """Database operation failed."""

    pass


class UserNotFoundError(DatabaseError):
    """User not found in database."""

    pass
