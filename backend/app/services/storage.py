"""
File storage for uploaded receipts, recordings, images and past papers.

Workflow code only talks to the Storage interface (put / delete / resolve),
so the same logic runs against local disk or an object store. The database
is the source of truth: callers that clean up files after a committed
database change use discard_file, which logs failures instead of raising.
"""

import os
import re
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import UploadFile

from app import config
from app.errors import ValidationError
from app.logging_config import get_logger, log_with_context

logger = get_logger("storage")

IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/webp")
VIDEO_MIME_TYPES = ("video/mp4", "video/webm")
PDF_MIME_TYPES = ("application/pdf",)

MB = 1024 * 1024


@dataclass(frozen=True)
class FileConstraints:
    max_bytes: int
    allowed_types: Tuple[str, ...]


RECEIPT_10MB = FileConstraints(10 * MB, IMAGE_MIME_TYPES + PDF_MIME_TYPES)
IMAGE_10MB = FileConstraints(10 * MB, IMAGE_MIME_TYPES)
VIDEO_500MB = FileConstraints(500 * MB, VIDEO_MIME_TYPES)
PAPER_20MB = FileConstraints(20 * MB, PDF_MIME_TYPES + IMAGE_MIME_TYPES)

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".pdf": "application/pdf",
}


def sanitize_filename(original: str) -> str:
    """Strip directories and keep only alphanumerics, dashes and underscores in the stem."""
    base = os.path.basename((original or "").replace("\\", "/")) or "file"
    stem, ext = os.path.splitext(base)
    safe_stem = re.sub(r"[^a-zA-Z0-9_-]", "_", stem)[:200] or "file"
    safe_ext = re.sub(r"[^a-zA-Z0-9.]", "", ext.lower())[:10]
    return f"{safe_stem}{safe_ext}"


def build_key(folder: str, original_name: str) -> str:
    """Storage key of the form <folder>/<epoch-millis>-<sanitized name>."""
    return f"{folder}/{int(time.time() * 1000)}-{sanitize_filename(original_name)}"


def content_type_for(path: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(path)[1].lower(), "application/octet-stream")


def read_upload(upload: Optional[UploadFile], constraints: FileConstraints, label: str = "file") -> bytes:
    """
    Validate an uploaded file against type and size constraints and return its bytes.

    Raises:
        ValidationError: file missing, empty, of a disallowed type or too large
    """
    if upload is None or not upload.filename:
        raise ValidationError(f"{label} is required.")
    if upload.content_type not in constraints.allowed_types:
        raise ValidationError(f"{label} type not allowed.")

    data = upload.file.read(constraints.max_bytes + 1)
    if not data:
        raise ValidationError(f"{label} is empty.")
    if len(data) > constraints.max_bytes:
        raise ValidationError(f"{label} is too large.")
    return data


class Storage:
    """Interface for binary file storage addressed by URL."""

    def put(self, data: bytes, key: str) -> str:
        """Store bytes under key and return the public URL."""
        raise NotImplementedError

    def delete(self, url: str) -> None:
        """Remove the file behind url. Raises OSError on failure."""
        raise NotImplementedError

    def resolve(self, url: str) -> Optional[str]:
        """Map a URL back to a readable local path, or None if it is not ours or unsafe."""
        raise NotImplementedError


class LocalFileStorage(Storage):
    """Stores files under a root directory, served back through /api/uploads/."""

    def __init__(self, root: str, url_prefix: str = config.UPLOADS_URL_PREFIX):
        self.root = os.path.abspath(root)
        self.url_prefix = url_prefix

    def put(self, data: bytes, key: str) -> str:
        path = self._path_for_key(key)
        if path is None:
            raise ValueError("Invalid storage key: {}".format(key))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)
        log_with_context(logger, "INFO", "Stored file {}".format(key),
                         extra_data={"bytes": len(data)})
        return self.url_prefix + key

    def delete(self, url: str) -> None:
        path = self.resolve(url)
        if path is None:
            raise FileNotFoundError("Not a managed upload: {}".format(url))
        os.remove(path)
        log_with_context(logger, "INFO", "Deleted file {}".format(url))

    def resolve(self, url: str) -> Optional[str]:
        if not url:
            return None
        key = url
        for prefix in (self.url_prefix, "/uploads/"):
            if key.startswith(prefix):
                key = key[len(prefix):]
                break
        return self._path_for_key(key)

    def _path_for_key(self, key: str) -> Optional[str]:
        segments = [s for s in key.replace("\\", "/").split("/") if s]
        if not segments or any(s in (".", "..") or ".." in s for s in segments):
            return None
        path = os.path.abspath(os.path.join(self.root, *segments))
        if not path.startswith(self.root + os.sep):
            return None
        return path


def discard_file(storage: Storage, url: Optional[str], context: dict = None) -> bool:
    """Best-effort delete; failures are logged and swallowed."""
    if not url:
        return False
    try:
        storage.delete(url)
        return True
    except Exception as e:
        log_with_context(logger, "ERROR", "Failed to delete stored file {}".format(url),
                         context=context, extra_data={"error": str(e)})
        return False


_default_storage = LocalFileStorage(config.UPLOADS_DIR)


def get_storage() -> Storage:
    """FastAPI dependency returning the configured storage backend."""
    return _default_storage
