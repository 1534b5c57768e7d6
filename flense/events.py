"""
Event-stream adapter.

Turns the server-sent event stream of one job into calls on a small set of
callbacks and owns the lifecycle of the underlying connection.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from .errors import EventDecodeError, FlenseError, PayloadError, StreamClosedError
from .models import ContentChunk, JobState, JobStatus, ProgressUpdate

if TYPE_CHECKING:
    from .client import Flense

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_BY_TERMINAL_EVENT = "closed_by_terminal_event"
    CLOSED_BY_TIMEOUT = "closed_by_timeout"
    CLOSED_BY_CONSUMER = "closed_by_consumer"
    CLOSED_BY_ERROR = "closed_by_error"


CLOSED_STATES = frozenset(
    {
        SubscriptionState.CLOSED_BY_TERMINAL_EVENT,
        SubscriptionState.CLOSED_BY_TIMEOUT,
        SubscriptionState.CLOSED_BY_CONSUMER,
        SubscriptionState.CLOSED_BY_ERROR,
    }
)


@dataclass(frozen=True)
class StatusEvent:
    status: JobStatus


@dataclass(frozen=True)
class ProgressEvent:
    progress: ProgressUpdate


@dataclass(frozen=True)
class ContentEvent:
    chunk: ContentChunk


@dataclass(frozen=True)
class CompleteEvent:
    status: JobStatus


@dataclass(frozen=True)
class FailedEvent:
    status: JobStatus


@dataclass(frozen=True)
class CancelledEvent:
    status: JobStatus


@dataclass(frozen=True)
class TimeoutEvent:
    pass


StreamEvent = Union[
    StatusEvent, ProgressEvent, ContentEvent, CompleteEvent, FailedEvent, CancelledEvent, TimeoutEvent
]

TERMINAL_EVENTS = frozenset({"complete", "failed", "cancelled", "timeout"})

_DECODERS: Dict[str, Callable[[Any, Optional[str]], StreamEvent]] = {
    "status": lambda payload, job_id: StatusEvent(JobStatus.from_dict(payload, job_id)),
    "progress": lambda payload, job_id: ProgressEvent(ProgressUpdate.from_dict(payload)),
    "content": lambda payload, job_id: ContentEvent(ContentChunk.from_dict(payload)),
    "complete": lambda payload, job_id: CompleteEvent(JobStatus.from_dict(payload, job_id)),
    "failed": lambda payload, job_id: FailedEvent(JobStatus.from_dict(payload, job_id)),
    "cancelled": lambda payload, job_id: CancelledEvent(JobStatus.from_dict(payload, job_id)),
}


def decode_event(name: str, data: str, job_id: Optional[str] = None) -> Optional[StreamEvent]:
    """
    Decode one named event. Returns ``None`` for event names this client does
    not know about; raises ``EventDecodeError`` for malformed payloads.
    Status payloads without an ``id`` take ``job_id``.
    """
    if name == "timeout":
        return TimeoutEvent()
    decoder = _DECODERS.get(name)
    if decoder is None:
        return None
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise EventDecodeError(name, f"invalid JSON ({exc})") from exc
    try:
        return decoder(payload, job_id)
    except PayloadError as exc:
        raise EventDecodeError(name, str(exc)) from exc


Callback = Callable[..., Any]


@dataclass
class SubscriptionCallbacks:
    """
    Consumer hooks. Any hook may be a plain function or a coroutine function.
    """

    on_status: Optional[Callable[[JobStatus], Any]] = None
    on_progress: Optional[Callable[[ProgressUpdate], Any]] = None
    on_content: Optional[Callable[[ContentChunk], Any]] = None
    on_complete: Optional[Callable[[JobStatus], Any]] = None
    on_failed: Optional[Callable[[JobStatus], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None


class Subscription:
    """
    One event-stream subscription for one job.

    Waits for the job identifier, opens the stream, dispatches events until a
    terminal event, a transport error or ``close()``. Calling the object is the
    same as calling ``close()``.
    """

    def __init__(
        self,
        client: "Flense",
        resolve_job_id: Callable[[], Awaitable[str]],
        callbacks: SubscriptionCallbacks,
    ):
        self._client = client
        self._resolve_job_id = resolve_job_id
        self._callbacks = callbacks
        self._state = SubscriptionState.CONNECTING
        self._task: Optional[asyncio.Task] = None
        self.job_id: Optional[str] = None

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state in CLOSED_STATES

    def start(self) -> "Subscription":
        if self._task is None and not self.closed:
            self._task = asyncio.ensure_future(self._run())
        return self

    def close(self) -> None:
        if self.closed:
            return
        self._state = SubscriptionState.CLOSED_BY_CONSUMER
        logger.debug("Subscription for job %s closed by consumer", self.job_id or "<pending>")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __call__(self) -> None:
        self.close()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _run(self) -> None:
        try:
            job_id = await self._resolve_job_id()
        except Exception as exc:  # noqa: BLE001
            await self._fail(exc)
            return
        if self.closed:
            return
        self.job_id = job_id

        try:
            async with self._client.event_stream(job_id) as source:
                if self.closed:
                    return
                self._state = SubscriptionState.OPEN
                logger.debug("Event stream opened for job %s", job_id)
                async for sse in source.aiter_sse():
                    reason = await self._dispatch(sse.event, sse.data)
                    if self.closed:
                        return
                    if reason is not None:
                        self._state = reason
                        logger.debug("Event stream for job %s closed: %s", job_id, reason.value)
                        return
            raise StreamClosedError(f"Event stream for job {job_id} ended before a terminal event")
        except (httpx.HTTPError, FlenseError) as exc:
            await self._fail(exc)

    async def _fail(self, exc: Exception) -> None:
        if self.closed:
            return
        self._state = SubscriptionState.CLOSED_BY_ERROR
        logger.warning("Subscription for job %s failed: %s", self.job_id or "<pending>", exc)
        await self._invoke("on_error", exc, force=True)

    async def _dispatch(self, name: str, data: str) -> Optional[SubscriptionState]:
        """Handle one event; returns the closing state when the stream must close."""
        try:
            event = decode_event(name, data, self.job_id)
        except EventDecodeError as exc:
            logger.warning("%s", exc)
            await self._invoke("on_error", exc)
            if name in TERMINAL_EVENTS:
                return SubscriptionState.CLOSED_BY_ERROR
            return None

        if event is None:
            logger.debug("Ignoring unknown event %r", name)
            return None

        if isinstance(event, StatusEvent):
            await self._invoke("on_status", event.status)
            if event.status.state == JobState.COMPLETED:
                await self._invoke("on_complete", event.status)
            elif event.status.state == JobState.FAILED:
                await self._invoke("on_failed", event.status)
        elif isinstance(event, ProgressEvent):
            await self._invoke("on_progress", event.progress)
        elif isinstance(event, ContentEvent):
            await self._invoke("on_content", event.chunk)
        elif isinstance(event, CompleteEvent):
            await self._invoke("on_status", event.status)
            await self._invoke("on_complete", event.status)
            return SubscriptionState.CLOSED_BY_TERMINAL_EVENT
        elif isinstance(event, FailedEvent):
            await self._invoke("on_status", event.status)
            await self._invoke("on_failed", event.status)
            return SubscriptionState.CLOSED_BY_TERMINAL_EVENT
        elif isinstance(event, CancelledEvent):
            await self._invoke("on_status", event.status)
            return SubscriptionState.CLOSED_BY_TERMINAL_EVENT
        elif isinstance(event, TimeoutEvent):
            return SubscriptionState.CLOSED_BY_TIMEOUT
        return None

    async def _invoke(self, name: str, *args: Any, force: bool = False) -> None:
        # A consumer close stops delivery, even mid-dispatch.
        if self._state is SubscriptionState.CLOSED_BY_CONSUMER:
            return
        if self.closed and not force:
            return
        callback: Optional[Callback] = getattr(self._callbacks, name)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            logger.exception("Subscription callback %s raised", name)
