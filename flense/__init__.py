"""
Flense client SDK.

Creates asynchronous parse jobs on the Flense document-parsing service from
URLs or local files and consumes them by awaiting the job id, polling until
the job finishes, or subscribing to its live event stream.
"""

from .client import Flense
from .config import SDK_VERSION as __version__
from .config import ClientConfig
from .errors import (
    ConfigurationError,
    EventDecodeError,
    FlenseAPIError,
    FlenseError,
    JobCancelledError,
    JobFailedError,
    PayloadError,
    StreamClosedError,
)
from .events import Subscription, SubscriptionCallbacks, SubscriptionState
from .job import ParseJob
from .models import (
    ContentChunk,
    JobCreated,
    JobOutput,
    JobResult,
    JobState,
    JobStatus,
    ParseOptions,
    ParseResult,
    ProgressUpdate,
    assemble_content,
)
from .tracker import ParseJobTracker

__all__ = [
    "ClientConfig",
    "ConfigurationError",
    "ContentChunk",
    "EventDecodeError",
    "Flense",
    "FlenseAPIError",
    "FlenseError",
    "JobCancelledError",
    "JobCreated",
    "JobFailedError",
    "JobOutput",
    "JobResult",
    "JobState",
    "JobStatus",
    "ParseJob",
    "ParseJobTracker",
    "ParseOptions",
    "ParseResult",
    "PayloadError",
    "ProgressUpdate",
    "StreamClosedError",
    "Subscription",
    "SubscriptionCallbacks",
    "SubscriptionState",
    "__version__",
    "assemble_content",
]
