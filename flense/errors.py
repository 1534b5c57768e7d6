from __future__ import annotations

from typing import Optional


class FlenseError(Exception):
    """Base error for all Flense SDK exceptions."""


class ConfigurationError(FlenseError):
    """Raised when the client cannot be configured (e.g. missing API key)."""


class FlenseAPIError(FlenseError):
    """
    Raised for any non-2xx response. Carries the HTTP status code and the raw
    response body text.
    """

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Flense API error {status_code}: {body}")


class PayloadError(FlenseError, ValueError):
    """Raised when a response or event payload has an unexpected shape."""


class EventDecodeError(FlenseError):
    """Raised when a stream event payload cannot be deserialized."""

    def __init__(self, event: str, detail: str):
        self.event = event
        self.detail = detail
        super().__init__(f"Failed to parse '{event}' event: {detail}")


class StreamClosedError(FlenseError):
    """Raised when the event stream ends before a terminal event arrives."""


class JobFailedError(FlenseError):
    """Raised when a job reaches the failed state."""

    def __init__(self, job_id: str, message: Optional[str] = None):
        self.job_id = job_id
        self.message = message or "Unknown error"
        super().__init__(f"Job {job_id} failed: {self.message}")


class JobCancelledError(FlenseError):
    """Raised when a job is cancelled while the client waits on it."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")
