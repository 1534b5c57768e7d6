"""
Command line entry point.

Usage:
    flense parse ./paper.pdf --ocr --tables --output paper.md
    flense parse https://example.com/report.pdf --stream
    flense status <job-id>
    flense convert ./notes.docx
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

import httpx

from .client import Flense
from .errors import FlenseError, JobFailedError
from .job import ParseJob
from .models import ContentChunk, JobState, JobStatus, ProgressUpdate, assemble_content

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flense", description="Parse documents with the Flense API")
    parser.add_argument("--api-key", default=None, help="API key (defaults to $FLENSE_API_KEY)")
    parser.add_argument("--base-url", default=None, help="API base URL (defaults to $FLENSE_BASE_URL)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    parse = commands.add_parser("parse", help="Create a parse job for a URL or local file")
    parse.add_argument("source", help="http(s) URL or path to a local file")
    parse.add_argument("--ocr", action="store_true", help="Enable OCR")
    parse.add_argument("--tables", action="store_true", help="Enable table detection")
    parse.add_argument("--images", action="store_true", help="Enable image extraction")
    parse.add_argument("--page-streaming", action="store_true", help="Stream content page by page")
    parse.add_argument("--no-cache", action="store_true", help="Bypass the server-side result cache")
    parse.add_argument("--stream", action="store_true", help="Follow live events instead of polling")
    parse.add_argument("--output", type=Path, default=None, help="Write the markdown here instead of stdout")

    status = commands.add_parser("status", help="Show the status of a job")
    status.add_argument("job_id")

    convert = commands.add_parser("convert", help="Parse a local file in a single request")
    convert.add_argument("path", type=Path)
    convert.add_argument("--output", type=Path, default=None, help="Write the markdown here instead of stdout")
    return parser


def build_client(args: argparse.Namespace) -> Flense:
    return Flense(api_key=args.api_key, base_url=args.base_url)


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _emit(text: Optional[str], output: Optional[Path]) -> None:
    text = text or ""
    if output is None:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")
        return
    output.write_text(text, encoding="utf-8")
    logger.info("Wrote %d characters to %s", len(text), output)


async def _stream(job: ParseJob) -> str:
    chunks: List[ContentChunk] = []
    final: List[JobStatus] = []
    errors: List[Exception] = []

    def on_progress(update: ProgressUpdate) -> None:
        pages = f" (page {update.current_page}/{update.total_pages})" if update.total_pages else ""
        print(f"[{update.progress:.0f}%] {update.stage}{pages}", file=sys.stderr)

    subscription = job.subscribe(
        on_progress=on_progress,
        on_content=chunks.append,
        on_complete=final.append,
        on_failed=final.append,
        on_status=lambda status: final.append(status) if status.state == JobState.CANCELLED else None,
        on_error=errors.append,
    )
    await subscription.wait_closed()

    if final:
        status = final[-1]
        if status.state == JobState.FAILED:
            raise JobFailedError(status.id, status.error)
        if status.state == JobState.COMPLETED:
            text = status.output.text if status.output else None
            return text if text is not None else assemble_content(chunks)
        raise FlenseError(f"Job {status.id} ended in state {status.state.value}")
    if errors:
        raise errors[-1]
    raise FlenseError(f"Event stream closed ({subscription.state.value}) before the job finished")


async def _parse(client: Flense, args: argparse.Namespace) -> None:
    if _is_url(args.source):
        job = client.parse_url(args.source)
    else:
        job = client.parse_file(Path(args.source))
    job.with_ocr(args.ocr).with_tables(args.tables).with_images(args.images).with_page_streaming(args.page_streaming)
    if args.no_cache:
        job.disable_caching()

    created = await job
    logger.info("Job %s submitted", created.job_id)
    if args.stream:
        text = await _stream(job)
    else:
        result = await job.wait()
        text = result.markdown
    _emit(text, args.output)


async def _status(client: Flense, args: argparse.Namespace) -> None:
    status = await client.get_job(args.job_id)
    print(json.dumps(asdict(status), indent=2, default=str))


async def _convert(client: Flense, args: argparse.Namespace) -> None:
    result = await client.parse_inline(args.path)
    if not result.success:
        raise FlenseError(f"Conversion of {args.path} failed")
    _emit(result.markdown, args.output)


COMMANDS = {"parse": _parse, "status": _status, "convert": _convert}


async def _run(args: argparse.Namespace) -> None:
    async with build_client(args) as client:
        await COMMANDS[args.command](client, args)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        asyncio.run(_run(args))
    except (FlenseError, httpx.HTTPError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0
