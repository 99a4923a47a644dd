"""Gmail push-notification (watch) subscription lifecycle."""

from .manager import UnwatchStatus, WatchManager, WatchStatus

__all__ = ["UnwatchStatus", "WatchManager", "WatchStatus"]
