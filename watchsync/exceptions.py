"""Errors raised by remote progress stores.

The synchronizer catches all of these and exposes them as a readable
message; they never reach the caller of a tick.
"""

from typing import Optional


class ProgressStoreError(Exception):
    """Base class for remote progress store failures."""

    default_message = "Remote progress store request failed"

    def __init__(self, content_id: str, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message or self.default_message)
        self.content_id = content_id
        self.status_code = status_code


class LoadFailure(ProgressStoreError):
    default_message = "Failed to load progress"


class SaveFailure(ProgressStoreError):
    default_message = "Failed to save progress"


class MarkCompleteFailure(ProgressStoreError):
    default_message = "Failed to mark as completed"
