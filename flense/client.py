from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx
from httpx_sse import EventSource, aconnect_sse

from .config import SDK_VERSION, ClientConfig
from .errors import FlenseAPIError, FlenseError, JobCancelledError, JobFailedError, PayloadError
from .events import Subscription, SubscriptionCallbacks
from .files import UploadSource, filename_from_url, generate_document_id, mime_type_for, read_upload
from .job import ParseJob
from .models import JobCreated, JobResult, JobState, JobStatus, ParseOptions, ParseResult

logger = logging.getLogger(__name__)

JOBS_PATH = "/v1/queue/jobs"
UPLOAD_PATH = "/v1/queue/parse"
INLINE_PARSE_PATH = "/v1/flense/"


class Flense:
    """
    Async client for the Flense document-parsing API.

    Job-creating methods return a ``ParseJob`` immediately; nothing is sent
    until the job is awaited, waited on or subscribed to.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = ClientConfig.from_env(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            poll_interval=poll_interval,
        )
        self._owns_http = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=self.config.timeout)
        self._http = http_client

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def __aenter__(self) -> "Flense":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # Job creation ---------------------------------------------------------------

    def parse_url(self, url: str) -> ParseJob:
        filename = filename_from_url(url)
        document = {
            "documentUrl": url,
            "filename": filename,
            "mimeType": mime_type_for(filename),
            "documentId": generate_document_id(),
        }

        async def create(options: ParseOptions) -> JobCreated:
            payload = dict(document, options=options.to_payload())
            data = await self._request("POST", JOBS_PATH, json=payload)
            return self._job_created(data)

        return ParseJob(self, create)

    def parse_file(self, source: UploadSource, filename: Optional[str] = None) -> ParseJob:
        async def create(options: ParseOptions) -> JobCreated:
            name, content = read_upload(source, filename)
            data = await self._request(
                "POST",
                UPLOAD_PATH,
                files={"file": (name, content, mime_type_for(name))},
                data={"options": json.dumps(options.to_payload())},
            )
            return self._job_created(data)

        return ParseJob(self, create)

    async def parse_inline(self, source: UploadSource, filename: Optional[str] = None) -> ParseResult:
        """
        Parse a file in a single request, bypassing the job queue. No progress
        is reported and no job identifier is assigned.
        """
        name, content = read_upload(source, filename)
        data = await self._request("POST", INLINE_PARSE_PATH, files={"file": (name, content, mime_type_for(name))})
        return ParseResult.from_dict(data)

    # Consumption ----------------------------------------------------------------

    async def get_job(self, job_id: str) -> JobStatus:
        data = await self._request("GET", self._job_path(job_id))
        return JobStatus.from_dict(data)

    async def wait_for_job(
        self,
        job_id: str,
        *,
        poll_interval: Optional[float] = None,
        stop_on_cancelled: bool = True,
    ) -> JobResult:
        """
        Poll the job until it completes or fails.

        There is no attempt limit and no overall timeout; wrap the call in
        ``asyncio.wait_for`` to bound it. Transport errors abort the loop.
        """
        interval = self.config.poll_interval if poll_interval is None else poll_interval
        attempt = 0
        while True:
            attempt += 1
            status = await self.get_job(job_id)
            logger.debug("Poll %d for job %s: %s", attempt, job_id, status.state.value)
            if status.state == JobState.COMPLETED:
                markdown = status.output.text if status.output else None
                return JobResult(job_id=job_id, success=True, markdown=markdown, state=status.state)
            if status.state == JobState.FAILED:
                raise JobFailedError(job_id, status.error)
            if status.state == JobState.CANCELLED and stop_on_cancelled:
                raise JobCancelledError(job_id)
            await asyncio.sleep(interval)

    def subscribe_to_job(self, job_id: str, callbacks: Optional[SubscriptionCallbacks] = None) -> Subscription:
        async def known_id() -> str:
            return job_id

        return Subscription(self, known_id, callbacks or SubscriptionCallbacks()).start()

    @asynccontextmanager
    async def event_stream(self, job_id: str) -> AsyncIterator[EventSource]:
        url = self._url(f"{self._job_path(job_id)}/subscribe")
        # The server bounds the stream and announces it with a timeout event.
        timeout = httpx.Timeout(self.config.timeout, read=None)
        async with aconnect_sse(self._http, "GET", url, headers=self._headers(), timeout=timeout) as source:
            response = source.response
            if not response.is_success:
                await response.aread()
                raise FlenseAPIError(response.status_code, response.text)
            yield source

    # Request plumbing -----------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    def _job_path(self, job_id: str) -> str:
        return f"{JOBS_PATH}/{quote(job_id, safe='')}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "User-Agent": f"flense-python/{SDK_VERSION}",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = self._url(path)
        logger.debug("%s %s", method, url)
        response = await self._http.request(method, url, headers=self._headers(), **kwargs)
        logger.debug("%s %s -> %d", method, url, response.status_code)
        if not response.is_success:
            raise FlenseAPIError(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise PayloadError(f"Response from {method} {path} is not valid JSON") from exc

    def _job_created(self, data: Any) -> JobCreated:
        if isinstance(data, dict) and data.get("success") is False:
            raise FlenseError(data.get("message") or "Job creation was rejected")
        created = JobCreated.from_dict(data)
        logger.info("Created job %s", created.job_id)
        return created
