"""On-disk storage for documents uploaded to record requests."""

from __future__ import annotations

import logging
import os
import shutil
import uuid

from storage.database import get_data_dir

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png", ".gif", ".doc", ".docx"}
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


def _uploads_root() -> str:
    root = os.getenv("UPLOADS_DIR") or os.path.join(get_data_dir(), "uploads")
    os.makedirs(root, exist_ok=True)
    return root


def save_document(request_id: str, filename: str, content: bytes) -> str:
    """Write an uploaded document under the request's folder and return its path.

    The stored name is random; the caller keeps the original filename.
    """
    ext = os.path.splitext(filename.lower())[1]
    folder = os.path.join(_uploads_root(), request_id)
    os.makedirs(folder, exist_ok=True)
    path = os.path.join(folder, f"{uuid.uuid4().hex}{ext}")
    with open(path, "wb") as f:
        f.write(content)
    return path


def _secure_delete(path: str) -> None:
    """Overwrite file contents before unlinking to prevent forensic recovery of PHI."""
    try:
        size = os.path.getsize(path)
        with open(path, "wb") as f:
            f.write(b"\x00" * size)
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        pass
    finally:
        try:
            os.unlink(path)
        except OSError:
            pass


def delete_request_documents(request_id: str) -> int:
    """Securely remove every stored document of a request. Returns files removed."""
    folder = os.path.join(_uploads_root(), request_id)
    if not os.path.isdir(folder):
        return 0
    removed = 0
    for name in os.listdir(folder):
        _secure_delete(os.path.join(folder, name))
        removed += 1
    shutil.rmtree(folder, ignore_errors=True)
    logger.info("Removed %d stored documents for request %s", removed, request_id)
    return removed
