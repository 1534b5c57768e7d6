from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import PayloadError


class JobState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise PayloadError(f"Expected an object for {what}, got {type(data).__name__}")
    return data


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PayloadError(f"Field '{key}' must be a string")
    return value


def _optional_number(data: Mapping[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadError(f"Field '{key}' must be a number")
    return value


def _optional_int(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = _optional_number(data, key)
    if value is None:
        return None
    if isinstance(value, float) and not value.is_integer():
        raise PayloadError(f"Field '{key}' must be an integer")
    return int(value)


def _optional_bool(data: Mapping[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise PayloadError(f"Field '{key}' must be a boolean")
    return value


def _parse_timestamp(data: Mapping[str, Any], key: str) -> Optional[datetime]:
    """Accept ISO-8601 strings or epoch milliseconds."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise PayloadError(f"Field '{key}' must be a timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise PayloadError(f"Field '{key}' is not an ISO-8601 timestamp: {value!r}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise PayloadError(f"Field '{key}' must be a timestamp")


@dataclass(frozen=True)
class JobOutput:
    document_id: Optional[str] = None
    content: Optional[str] = None
    markdown: Optional[str] = None
    duration_ms: Optional[float] = None

    @property
    def text(self) -> Optional[str]:
        return self.markdown if self.markdown is not None else self.content

    @classmethod
    def from_dict(cls, data: Any) -> "JobOutput":
        data = _require_mapping(data, "job output")
        return cls(
            document_id=_optional_str(data, "documentId"),
            content=_optional_str(data, "content"),
            markdown=_optional_str(data, "markdown"),
            duration_ms=_optional_number(data, "durationMs"),
        )


@dataclass(frozen=True)
class JobStatus:
    """
    Read-only snapshot of a server-side job. The server owns every field.
    """

    id: str
    state: JobState
    output: Optional[JobOutput] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    attempts_made: Optional[int] = None
    max_attempts: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @classmethod
    def from_dict(cls, data: Any, default_id: Optional[str] = None) -> "JobStatus":
        """
        ``default_id`` stands in for a missing ``id``; event payloads omit it
        because the stream already belongs to one job.
        """
        data = _require_mapping(data, "job status")
        job_id = data.get("id") or default_id
        if not isinstance(job_id, str) or not job_id:
            raise PayloadError("Job status is missing 'id'")
        raw_state = data.get("state")
        try:
            state = JobState(raw_state)
        except ValueError as exc:
            raise PayloadError(f"Unknown job state: {raw_state!r}") from exc
        output = data.get("output")
        return cls(
            id=job_id,
            state=state,
            output=JobOutput.from_dict(output) if output is not None else None,
            error=_optional_str(data, "error"),
            created_at=_parse_timestamp(data, "createdAt"),
            started_at=_parse_timestamp(data, "startedAt"),
            completed_at=_parse_timestamp(data, "completedAt"),
            attempts_made=_optional_int(data, "attemptsMade"),
            max_attempts=_optional_int(data, "maxAttempts"),
        )


@dataclass(frozen=True)
class ProgressUpdate:
    progress: float
    stage: str
    current_page: Optional[int] = None
    total_pages: Optional[int] = None
    elapsed_ms: Optional[float] = None
    estimated_remaining_ms: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ProgressUpdate":
        data = _require_mapping(data, "progress update")
        progress = _optional_number(data, "progress")
        if progress is None:
            raise PayloadError("Progress update is missing 'progress'")
        return cls(
            progress=progress,
            stage=_optional_str(data, "stage") or "",
            current_page=_optional_int(data, "currentPage"),
            total_pages=_optional_int(data, "totalPages"),
            elapsed_ms=_optional_number(data, "elapsedMs"),
            estimated_remaining_ms=_optional_number(data, "estimatedRemainingMs"),
        )


@dataclass(frozen=True)
class ContentChunk:
    page: int
    content: str

    @classmethod
    def from_dict(cls, data: Any) -> "ContentChunk":
        data = _require_mapping(data, "content chunk")
        page = _optional_int(data, "page")
        if page is None:
            raise PayloadError("Content chunk is missing 'page'")
        return cls(page=page, content=_optional_str(data, "content") or "")


@dataclass(frozen=True)
class JobCreated:
    success: bool
    job_id: str
    document_id: Optional[str] = None
    remaining: Optional[int] = None
    unlimited: Optional[bool] = None
    message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "JobCreated":
        data = _require_mapping(data, "job creation response")
        job_id = data.get("jobId")
        if not isinstance(job_id, str) or not job_id:
            raise PayloadError("Job creation response is missing 'jobId'")
        return cls(
            success=bool(data.get("success", True)),
            job_id=job_id,
            document_id=_optional_str(data, "documentId"),
            remaining=_optional_int(data, "remaining"),
            unlimited=_optional_bool(data, "unlimited"),
            message=_optional_str(data, "message"),
        )


@dataclass(frozen=True)
class JobResult:
    job_id: str
    success: bool
    markdown: Optional[str]
    state: JobState


@dataclass(frozen=True)
class ParseResult:
    success: bool
    markdown: Optional[str]

    @classmethod
    def from_dict(cls, data: Any) -> "ParseResult":
        data = _require_mapping(data, "parse response")
        markdown = _optional_str(data, "markdown")
        if markdown is None:
            markdown = _optional_str(data, "content")
        return cls(success=bool(data.get("success", False)), markdown=markdown)


@dataclass
class ParseOptions:
    """
    Per-job feature toggles. Defaults are the fastest, cheapest settings.
    """

    ocr: bool = False
    tables: bool = False
    images: bool = False
    page_streaming: bool = False
    caching: bool = True

    def to_payload(self) -> Dict[str, bool]:
        return {
            "ocr": self.ocr,
            "tables": self.tables,
            "images": self.images,
            "pageStreaming": self.page_streaming,
            "caching": self.caching,
        }


def assemble_content(chunks: Iterable[ContentChunk]) -> str:
    ordered: List[ContentChunk] = sorted(chunks, key=lambda chunk: chunk.page)
    return "\n\n".join(chunk.content for chunk in ordered)
