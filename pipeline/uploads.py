"""
Upload acceptance checks applied before a file is queued.
"""
import mimetypes
from pathlib import Path
from typing import Optional

from models.job import UploadedFile

MAX_UPLOAD_BYTES = 10 * 1024 * 1024      # 10 MB

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/jpg",
    "text/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})


def check_upload(file: UploadedFile) -> Optional[str]:
    """Return a rejection reason, or None if the file may be queued."""
    if file.mime_type not in ALLOWED_MIME_TYPES:
        return (
            f"Invalid file type {file.mime_type!r}. "
            "Only PDF, images, CSV and Excel files are allowed."
        )
    if file.size > MAX_UPLOAD_BYTES:
        return "File too large. Maximum size is 10MB"
    return None


def file_from_path(path: str | Path) -> UploadedFile:
    """Describe a file on disk the way the upload transport would."""
    path = Path(path)
    mime, _ = mimetypes.guess_type(path.name)
    return UploadedFile(
        name=path.name,
        size=path.stat().st_size,
        mime_type=mime or "application/octet-stream",
        binary_ref=path,
    )
