from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generator, Optional

from .events import Subscription, SubscriptionCallbacks
from .models import JobCreated, JobResult, ParseOptions

if TYPE_CHECKING:
    from .client import Flense

logger = logging.getLogger(__name__)

JobFactory = Callable[[ParseOptions], Awaitable[JobCreated]]

FEATURES = {
    "ocr": "ocr",
    "tables": "tables",
    "images": "images",
    "page_streaming": "page_streaming",
    "pageStreaming": "page_streaming",
    "caching": "caching",
}


class ParseJob:
    """
    Local handle for a parse job that may not exist on the server yet.

    The creation request fires on the first of ``await job``, ``resolve()``,
    ``wait()`` or ``subscribe()`` and is shared by every later consumer, so a
    handle creates at most one server-side job. Options are captured at that
    moment; configuration calls made afterwards are ignored.

    The creation task belongs to the event loop that triggered it.
    """

    def __init__(self, client: "Flense", create: JobFactory):
        self._client = client
        self._create = create
        self._options = ParseOptions()
        self._creation: Optional[asyncio.Task] = None
        self._created: Optional[JobCreated] = None

    @property
    def triggered(self) -> bool:
        return self._creation is not None

    @property
    def options(self) -> ParseOptions:
        return replace(self._options)

    @property
    def job_id(self) -> Optional[str]:
        return self._created.job_id if self._created else None

    def configure(self, feature: str, enabled: bool = True) -> "ParseJob":
        attribute = FEATURES.get(feature)
        if attribute is None:
            raise ValueError(f"Unknown feature {feature!r}; expected one of {sorted(set(FEATURES.values()))}")
        if self.triggered:
            logger.debug("Ignoring %s=%s: job creation already started", feature, enabled)
            return self
        setattr(self._options, attribute, bool(enabled))
        return self

    def with_ocr(self, enabled: bool = True) -> "ParseJob":
        return self.configure("ocr", enabled)

    def with_tables(self, enabled: bool = True) -> "ParseJob":
        return self.configure("tables", enabled)

    def with_images(self, enabled: bool = True) -> "ParseJob":
        return self.configure("images", enabled)

    def with_page_streaming(self, enabled: bool = True) -> "ParseJob":
        return self.configure("page_streaming", enabled)

    def disable_caching(self) -> "ParseJob":
        return self.configure("caching", False)

    async def resolve(self) -> JobCreated:
        # Shielded so that a cancelled consumer never cancels the shared request.
        return await asyncio.shield(self._trigger())

    def __await__(self) -> Generator[Any, None, JobCreated]:
        return self.resolve().__await__()

    async def wait(self, *, poll_interval: Optional[float] = None, stop_on_cancelled: bool = True) -> JobResult:
        job_id = await self._resolve_id()
        return await self._client.wait_for_job(
            job_id,
            poll_interval=poll_interval,
            stop_on_cancelled=stop_on_cancelled,
        )

    def subscribe(self, callbacks: Optional[SubscriptionCallbacks] = None, **handlers: Any) -> Subscription:
        """
        Start streaming events for this job and return the subscription.

        Pass a ``SubscriptionCallbacks`` instance or the hooks as keyword
        arguments (``on_progress=...``). Calling the returned object
        unsubscribes; if the job id is still pending at that point the stream
        is never opened.
        """
        if callbacks is not None and handlers:
            raise TypeError("Pass either a SubscriptionCallbacks instance or keyword handlers, not both")
        if callbacks is None:
            callbacks = SubscriptionCallbacks(**handlers)
        self._trigger()
        return Subscription(self._client, self._resolve_id, callbacks).start()

    def _trigger(self) -> asyncio.Task:
        if self._creation is None:
            options = replace(self._options)
            self._creation = asyncio.ensure_future(self._run_creation(options))
            self._creation.add_done_callback(self._log_creation_failure)
        return self._creation

    async def _run_creation(self, options: ParseOptions) -> JobCreated:
        created = await self._create(options)
        self._created = created
        return created

    async def _resolve_id(self) -> str:
        created = await self.resolve()
        return created.job_id

    @staticmethod
    def _log_creation_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Job creation failed: %s", exc)

    def __repr__(self) -> str:
        return f"ParseJob(job_id={self.job_id!r}, triggered={self.triggered}, options={self._options!r})"
