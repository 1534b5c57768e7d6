from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, List, Optional

from .client import Flense
from .errors import JobFailedError
from .events import Subscription, SubscriptionCallbacks
from .files import UploadSource
from .job import ParseJob
from .models import ContentChunk, JobStatus, ProgressUpdate, TERMINAL_STATES, assemble_content

logger = logging.getLogger(__name__)


class ParseJobTracker:
    """
    Mirrors the events of one job into plain attributes for presentation
    layers (progress bars, live previews).

    Starting a new job replaces the previous subscription and clears state.
    """

    def __init__(
        self,
        client: Flense,
        *,
        on_progress: Optional[Callable[[ProgressUpdate], Any]] = None,
        on_content: Optional[Callable[[ContentChunk], Any]] = None,
        on_complete: Optional[Callable[[JobStatus], Any]] = None,
        on_failed: Optional[Callable[[JobStatus], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ):
        self.client = client
        self.on_progress = on_progress
        self.on_content = on_content
        self.on_complete = on_complete
        self.on_failed = on_failed
        self.on_error = on_error

        self.status: Optional[JobStatus] = None
        self.progress: Optional[ProgressUpdate] = None
        self.content_chunks: List[ContentChunk] = []
        self.error: Optional[Exception] = None
        self.job: Optional[ParseJob] = None
        self._subscription: Optional[Subscription] = None

    @property
    def is_processing(self) -> bool:
        return self.status is not None and self.status.state not in TERMINAL_STATES

    @property
    def is_complete(self) -> bool:
        return self.status is not None and self.status.state in TERMINAL_STATES

    @property
    def content(self) -> Optional[str]:
        """Final output when available, else the streamed pages in page order."""
        output = self.status.output if self.status else None
        if output is not None and output.content:
            return output.content
        if output is not None and output.markdown:
            return output.markdown
        if self.content_chunks:
            return assemble_content(self.content_chunks)
        return None

    def parse_file(self, source: UploadSource, filename: Optional[str] = None, **features: Optional[bool]) -> ParseJob:
        return self._track(self.client.parse_file(source, filename), features)

    def parse_url(self, url: str, **features: Optional[bool]) -> ParseJob:
        return self._track(self.client.parse_url(url), features)

    def reset(self) -> None:
        self._unsubscribe()
        self._clear()
        self.job = None

    def close(self) -> None:
        self._unsubscribe()

    async def wait_closed(self) -> None:
        if self._subscription is not None:
            await self._subscription.wait_closed()

    def _track(self, job: ParseJob, features: dict) -> ParseJob:
        for feature, enabled in features.items():
            if enabled is None:
                continue
            # Caching is on by default; only an explicit False changes it.
            if feature == "caching" and enabled:
                continue
            job.configure(feature, enabled)

        self._clear()
        self._unsubscribe()
        self.job = job
        self._subscription = job.subscribe(
            SubscriptionCallbacks(
                on_status=self._handle_status,
                on_progress=self._handle_progress,
                on_content=self._handle_content,
                on_complete=self._handle_complete,
                on_failed=self._handle_failed,
                on_error=self._handle_error,
            )
        )
        return job

    def _clear(self) -> None:
        self.status = None
        self.progress = None
        self.content_chunks = []
        self.error = None

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _handle_status(self, status: JobStatus) -> None:
        self.status = status

    async def _handle_progress(self, progress: ProgressUpdate) -> None:
        self.progress = progress
        await _call(self.on_progress, progress)

    async def _handle_content(self, chunk: ContentChunk) -> None:
        self.content_chunks.append(chunk)
        await _call(self.on_content, chunk)

    async def _handle_complete(self, status: JobStatus) -> None:
        self.status = status
        await _call(self.on_complete, status)

    async def _handle_failed(self, status: JobStatus) -> None:
        self.status = status
        self.error = JobFailedError(status.id, status.error or "Job failed")
        await _call(self.on_failed, status)

    async def _handle_error(self, error: Exception) -> None:
        self.error = error
        logger.debug("Tracked job reported an error: %s", error)
        await _call(self.on_error, error)


async def _call(hook: Optional[Callable[..., Any]], *args: Any) -> None:
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result
