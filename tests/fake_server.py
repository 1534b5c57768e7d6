"""
In-process stand-in for the Flense API used by the test-suite.

Job status sequences and event streams are scripted per job id; every
endpoint counts its calls so tests can assert on network behaviour.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from fastapi import APIRouter, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from flense import Flense

API_KEY = "test-key"
BASE_URL = "http://flense.test"

ScriptedStatus = Union[Dict[str, Any], int]
ScriptedEvent = Tuple[str, Any]


def status(job_id: str, state: str, **fields: Any) -> Dict[str, Any]:
    return {"id": job_id, "state": state, **fields}


class FakeFlenseServer:
    def __init__(self) -> None:
        self.statuses: Dict[str, List[ScriptedStatus]] = {}
        self.streams: Dict[str, List[ScriptedEvent]] = {}
        self.created: List[Dict[str, Any]] = []
        self.uploads: List[Dict[str, Any]] = []
        self.authorizations: List[Optional[str]] = []
        self.poll_calls: Dict[str, int] = defaultdict(int)
        self.subscribe_calls: Dict[str, int] = defaultdict(int)
        self.inline_calls = 0
        self.inline_response: Dict[str, Any] = {"success": True, "markdown": "# Inline"}
        self.creation_gate: Optional[asyncio.Event] = None
        self.reject_creation: Optional[Dict[str, Any]] = None
        self._next_id = 0

    @property
    def creation_calls(self) -> int:
        return len(self.created) + len(self.uploads)

    def check_auth(self, authorization: Optional[str]) -> None:
        self.authorizations.append(authorization)
        if authorization != f"Bearer {API_KEY}":
            raise HTTPException(status_code=401, detail="invalid api key")

    async def create_job(self) -> Dict[str, Any]:
        if self.creation_gate is not None:
            await self.creation_gate.wait()
        if self.reject_creation is not None:
            return self.reject_creation
        self._next_id += 1
        job_id = f"job-{self._next_id}"
        return {"success": True, "jobId": job_id, "documentId": f"doc-{self._next_id}", "remaining": 99}

    def next_status(self, job_id: str) -> Dict[str, Any]:
        script = self.statuses.get(job_id)
        if not script:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        self.poll_calls[job_id] += 1
        entry = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(entry, int):
            raise HTTPException(status_code=entry, detail="upstream failure")
        return entry


def _format_event(name: str, data: Any) -> str:
    payload = data if isinstance(data, str) else json.dumps(data)
    return f"event: {name}\ndata: {payload}\n\n"


def create_app(server: FakeFlenseServer) -> FastAPI:
    app = FastAPI(title="Fake Flense API", version="0.1.0")
    router = APIRouter(prefix="/v1/queue", tags=["jobs"])

    @router.post("/jobs")
    async def create_job(request: Request, authorization: Optional[str] = Header(None)):
        server.check_auth(authorization)
        server.created.append(await request.json())
        return await server.create_job()

    @router.post("/parse")
    async def upload_job(
        file: UploadFile = File(...),
        options: Optional[str] = Form(None),
        authorization: Optional[str] = Header(None),
    ):
        server.check_auth(authorization)
        server.uploads.append(
            {
                "filename": file.filename,
                "content": await file.read(),
                "content_type": file.content_type,
                "options": json.loads(options) if options else None,
            }
        )
        return await server.create_job()

    @router.get("/jobs/{job_id}")
    async def get_job(job_id: str, authorization: Optional[str] = Header(None)):
        server.check_auth(authorization)
        return server.next_status(job_id)

    @router.get("/jobs/{job_id}/subscribe")
    async def subscribe(job_id: str, authorization: Optional[str] = Header(None)):
        server.check_auth(authorization)
        if job_id not in server.streams:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        server.subscribe_calls[job_id] += 1
        events = list(server.streams[job_id])

        async def generate():
            for name, data in events:
                yield _format_event(name, data)

        return StreamingResponse(generate(), media_type="text/event-stream")

    @app.post("/v1/flense/")
    async def parse_inline(file: UploadFile = File(...), authorization: Optional[str] = Header(None)):
        server.check_auth(authorization)
        server.inline_calls += 1
        await file.read()
        return server.inline_response

    app.include_router(router)
    return app


def http_client(server: FakeFlenseServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(server)))


def make_client(server: FakeFlenseServer, api_key: str = API_KEY, **kwargs: Any) -> Flense:
    kwargs.setdefault("poll_interval", 0)
    return Flense(api_key=api_key, base_url=BASE_URL, http_client=http_client(server), **kwargs)


@asynccontextmanager
async def connect(server: FakeFlenseServer, api_key: str = API_KEY, **kwargs: Any):
    async with http_client(server) as http:
        kwargs.setdefault("poll_interval", 0)
        yield Flense(api_key=api_key, base_url=BASE_URL, http_client=http, **kwargs)
