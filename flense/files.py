from __future__ import annotations

import mimetypes
import uuid
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional, Tuple, Union
from urllib.parse import unquote, urlparse

DEFAULT_FILENAME = "document"
DEFAULT_MIME_TYPE = "application/octet-stream"

UploadSource = Union[bytes, bytearray, str, Path, BinaryIO]

# Formats accepted by the parsing service. Checked before the system registry
# because the registry differs between platforms for office formats.
MIME_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".odt": "application/vnd.oasis.opendocument.text",
    ".rtf": "application/rtf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".html": "text/html",
    ".htm": "text/html",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".bmp": "image/bmp",
}


def filename_from_url(url: str) -> str:
    path = urlparse(url).path
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return DEFAULT_FILENAME
    return unquote(segments[-1]) or DEFAULT_FILENAME


def mime_type_for(filename: str) -> str:
    suffix = PurePosixPath(filename).suffix.lower()
    if suffix in MIME_TYPES:
        return MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_MIME_TYPE


def generate_document_id() -> str:
    return f"doc_{uuid.uuid4().hex}"


def read_upload(source: UploadSource, filename: Optional[str] = None) -> Tuple[str, bytes]:
    """
    Normalize an upload source into ``(filename, content)``.

    Accepts raw bytes, a filesystem path (``str`` or ``Path``) or a binary
    file object. An explicit ``filename`` always wins.
    """
    if isinstance(source, (bytes, bytearray)):
        return filename or DEFAULT_FILENAME, bytes(source)
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return filename or path.name, path.read_bytes()
    if hasattr(source, "read"):
        content = source.read()
        if isinstance(content, str):
            raise TypeError("File objects must be opened in binary mode")
        source_name = getattr(source, "name", None)
        if not isinstance(source_name, str) or not source_name:
            source_name = DEFAULT_FILENAME
        return filename or Path(source_name).name, content
    raise TypeError(f"Unsupported upload source: {type(source).__name__}")
