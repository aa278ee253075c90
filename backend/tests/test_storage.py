"""Local file storage, upload validation and the file-serving route."""

import io
import os

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.errors import ValidationError
from app.services.storage import (
    LocalFileStorage, build_key, discard_file, read_upload, sanitize_filename, FileConstraints,
    IMAGE_MIME_TYPES,
)


def _upload(data, filename="a.png", content_type="image/png"):
    return UploadFile(file=io.BytesIO(data), filename=filename,
                      headers=Headers({"content-type": content_type}))


def test_sanitize_filename():
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("my receipt (1).PNG") == "my_receipt__1_.png"
    assert sanitize_filename("") == "file"


def test_build_key_shape():
    key = build_key("receipts", "bank slip.jpg")
    folder, name = key.split("/")
    assert folder == "receipts"
    stamp, rest = name.split("-", 1)
    assert stamp.isdigit()
    assert rest == "bank_slip.jpg"


def test_put_and_resolve(tmp_path):
    storage = LocalFileStorage(str(tmp_path))

    url = storage.put(b"hello", "receipts/1-a.png")

    assert url == "/api/uploads/receipts/1-a.png"
    path = storage.resolve(url)
    with open(path, "rb") as fh:
        assert fh.read() == b"hello"
    # Older rows stored /uploads/ URLs
    assert storage.resolve("/uploads/receipts/1-a.png") == path


@pytest.mark.parametrize("url", [
    "/api/uploads/../secret.txt",
    "/api/uploads/receipts/../../secret.txt",
    "/api/uploads/..",
    "",
])
def test_resolve_rejects_traversal(tmp_path, url):
    assert LocalFileStorage(str(tmp_path)).resolve(url) is None


def test_discard_file_swallows_errors(tmp_path):
    storage = LocalFileStorage(str(tmp_path))
    url = storage.put(b"x", "receipts/1-a.png")

    assert discard_file(storage, url) is True
    assert not os.path.exists(storage.resolve(url))
    assert discard_file(storage, url) is False
    assert discard_file(storage, None) is False


def test_read_upload_constraints():
    constraints = FileConstraints(max_bytes=10, allowed_types=IMAGE_MIME_TYPES)

    assert read_upload(_upload(b"12345"), constraints) == b"12345"
    with pytest.raises(ValidationError):
        read_upload(_upload(b"12345678901"), constraints)
    with pytest.raises(ValidationError):
        read_upload(_upload(b"123", content_type="text/plain"), constraints)
    with pytest.raises(ValidationError):
        read_upload(_upload(b""), constraints)
    with pytest.raises(ValidationError):
        read_upload(None, constraints)


def test_serve_upload(client, storage):
    url = storage.put(b"%PDF-1.4", "pastpapers/1-paper.pdf")

    resp = client.get(url)

    assert resp.status_code == 200
    assert resp.content == b"%PDF-1.4"
    assert resp.headers["content-type"] == "application/pdf"

    assert client.get("/api/uploads/pastpapers/missing.pdf").status_code == 404
