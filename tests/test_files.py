import io

import pytest

from flense.files import (
    DEFAULT_MIME_TYPE,
    filename_from_url,
    generate_document_id,
    mime_type_for,
    read_upload,
)


def test_filename_from_url_uses_last_segment():
    assert filename_from_url("https://example.com/papers/annual%20report.pdf?sig=abc#page=2") == "annual report.pdf"
    assert filename_from_url("https://example.com/papers/") == "papers"
    assert filename_from_url("https://example.com") == "document"


def test_mime_type_for_known_and_unknown_extensions():
    assert mime_type_for("report.PDF") == "application/pdf"
    assert mime_type_for("deck.pptx").endswith("presentationml.presentation")
    assert mime_type_for("scan.jpeg") == "image/jpeg"
    assert mime_type_for("blob.unknownext") == DEFAULT_MIME_TYPE
    assert mime_type_for("no-extension") == DEFAULT_MIME_TYPE


def test_generate_document_id_is_unique_and_prefixed():
    first, second = generate_document_id(), generate_document_id()
    assert first != second
    assert first.startswith("doc_") and len(first) == 36


def test_read_upload_accepts_bytes_paths_and_file_objects(tmp_path):
    assert read_upload(b"%PDF") == ("document", b"%PDF")
    assert read_upload(b"%PDF", "a.pdf") == ("a.pdf", b"%PDF")

    path = tmp_path / "paper.pdf"
    path.write_bytes(b"pdf-bytes")
    assert read_upload(path) == ("paper.pdf", b"pdf-bytes")
    assert read_upload(str(path), "renamed.pdf") == ("renamed.pdf", b"pdf-bytes")

    with path.open("rb") as handle:
        assert read_upload(handle) == ("paper.pdf", b"pdf-bytes")
    assert read_upload(io.BytesIO(b"raw")) == ("document", b"raw")


def test_read_upload_rejects_missing_files_and_text_streams(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_upload(tmp_path / "missing.pdf")
    with pytest.raises(TypeError):
        read_upload(io.StringIO("text"))
    with pytest.raises(TypeError):
        read_upload(42)
