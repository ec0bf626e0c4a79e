from __future__ import annotations

import uuid
from pathlib import Path

from .extraction import UploadIOError

_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff", ".webp"}

# Declared MIME type -> file extensions it may be stored under.
ALLOWED_MIME_TYPES = {
    "application/pdf": {".pdf"},
    "application/msword": {".doc"},
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": {".docx"},
    "text/plain": {".txt"},
    "image/jpeg": _IMAGE_EXTENSIONS,
    "image/jpg": _IMAGE_EXTENSIONS,
    "image/png": _IMAGE_EXTENSIONS,
    "image/gif": _IMAGE_EXTENSIONS,
    "image/bmp": _IMAGE_EXTENSIONS,
    "image/tiff": _IMAGE_EXTENSIONS,
    "image/tif": _IMAGE_EXTENSIONS,
    "image/webp": _IMAGE_EXTENSIONS,
}
ALLOWED_EXTENSIONS = {".pdf", ".doc", ".docx", ".txt"} | _IMAGE_EXTENSIONS
# Clients that cannot name the type send one of these; the extension decides.
GENERIC_MIME_TYPES = {"", "application/octet-stream"}
DEFAULT_MAX_UPLOAD_BYTES = 15 * 1024 * 1024


class UploadRejected(Exception):
    def __init__(self, code: str, detail: str) -> None:
        super().__init__(detail)
        self.code = code
        self.detail = detail


def normalize_upload_filename(file_name: str | None, fallback_name: str = "medical-report") -> str:
    cleaned = Path((file_name or "").strip().replace("\\", "/")).name
    return cleaned or fallback_name


def extension_from_filename(file_name: str) -> str:
    return Path(file_name).suffix.lower().strip()


def validate_upload(file_name: str, mime_type: str, size: int, *, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
    """Reject disallowed or oversized uploads before anything is stored."""
    normalized_mime = (mime_type or "").split(";", 1)[0].strip().lower()
    extension = extension_from_filename(file_name)
    if normalized_mime in GENERIC_MIME_TYPES:
        allowed = extension in ALLOWED_EXTENSIONS
    else:
        allowed = normalized_mime in ALLOWED_MIME_TYPES and (
            not extension or extension in ALLOWED_MIME_TYPES[normalized_mime]
        )
    if not allowed:
        raise UploadRejected(
            "unsupported_type",
            "Invalid file type. Only PDF, DOC, DOCX, TXT and image files (JPEG, PNG, GIF, BMP, TIFF, WebP) are allowed.",
        )
    if size > max_bytes:
        raise UploadRejected(
            "too_large",
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
        )
    if size <= 0:
        raise UploadRejected("empty", "Uploaded file is empty.")


def store_upload(upload_dir: Path, file_name: str, content: bytes) -> Path:
    extension = extension_from_filename(file_name)
    target = upload_dir / f"medical-report-{uuid.uuid4().hex}{extension}"
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    except OSError as exc:
        target.unlink(missing_ok=True)
        raise UploadIOError(f"Could not store uploaded file: {exc}") from exc
    return target
