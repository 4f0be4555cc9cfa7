"""Local blob store for submission files.

Files land under ``UPLOADS_DIR/<partner_id>/`` with a random name; callers
only ever see the opaque ``file_ref`` returned here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional
from uuid import uuid4

from partnerhub.core.errors import InvalidTransitionPayload, UpstreamTimeout
from partnerhub.core.settings import settings

logger = logging.getLogger("storage")

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredBlob:
    file_ref: str
    file_name: str
    size: int
    content_type: Optional[str] = None


def _partner_dir(partner_id: str) -> Path:
    base = settings.ensure_uploads_dir()
    if partner_id in ("", ".", "..") or Path(partner_id).name != partner_id:
        raise InvalidTransitionPayload("Invalid partner id", field="partner_id")
    path = base / partner_id
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_upload(
    *,
    partner_id: str,
    filename: Optional[str],
    stream: BinaryIO,
    content_type: Optional[str] = None,
) -> StoredBlob:
    # Strip any directory components to prevent path traversal
    safe_filename = Path(filename or "upload.bin").name
    suffix = Path(safe_filename).suffix
    stored_name = f"{uuid4().hex}{suffix}"
    target = _partner_dir(partner_id) / stored_name

    max_bytes = settings.max_upload_mb * 1024 * 1024
    size = 0
    try:
        with target.open("wb") as handle:
            while True:
                chunk = stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise InvalidTransitionPayload(
                        f"Upload exceeds {settings.max_upload_mb} MB",
                        field="file",
                    )
                handle.write(chunk)
    except InvalidTransitionPayload:
        target.unlink(missing_ok=True)
        raise
    except OSError as exc:
        target.unlink(missing_ok=True)
        logger.error("upload_write_failed", extra={"partner_id": partner_id}, exc_info=exc)
        raise UpstreamTimeout("Blob store unavailable, retry later") from exc

    if size == 0:
        target.unlink(missing_ok=True)
        raise InvalidTransitionPayload("Uploaded file is empty", field="file")

    file_ref = f"{partner_id}/{stored_name}"
    logger.info("upload_stored", extra={"partner_id": partner_id})
    return StoredBlob(file_ref=file_ref, file_name=safe_filename, size=size, content_type=content_type)


def resolve_ref(file_ref: str) -> Path:
    """Map an opaque ref back to its path, refusing anything outside the store."""
    base = settings.ensure_uploads_dir()
    path = (base / file_ref).resolve()
    if base not in path.parents:
        raise InvalidTransitionPayload("Invalid file reference", field="file_ref")
    return path


def resolve_partner_ref(file_ref: str, partner_id: str) -> Path:
    """Like ``resolve_ref`` but also requires the blob to sit in the partner's own folder."""
    path = resolve_ref(file_ref)
    if not file_ref.startswith(f"{partner_id}/") or path.parent != settings.ensure_uploads_dir() / partner_id:
        raise InvalidTransitionPayload("file_ref does not belong to this partner", field="file_ref")
    return path
