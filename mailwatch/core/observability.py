"""
Error reporting for failures that are handled but still worth surfacing.
"""

import logging
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)


class ErrorReporter:
    """
    Fire-and-forget error reporter.

    Logs the error with its traceback and keeps the most recent reports in
    memory for diagnostics. report_error never raises and never changes the
    caller's control flow.
    """

    def __init__(self, max_recent: int = 100):
        self.max_recent = max_recent
        self.recent: List[Dict[str, Any]] = []

    def report_error(self, context: str, error: BaseException, extra: Optional[Dict[str, Any]] = None):
        try:
            logger.error(
                f"[{context}] {type(error).__name__}: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )
            self.recent.append({"context": context, "error": error, "extra": extra or {}})
            if len(self.recent) > self.max_recent:
                del self.recent[: len(self.recent) - self.max_recent]
        except Exception as e:  # pragma: no cover - reporting must not break callers
            logger.debug(f"Error reporter failed: {e}")
