"""Local file storage for material uploads."""

import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from ..core.config import get_settings
from ..core.errors import ValidationError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1024 * 1024  # 1MB


def storage_root() -> Path:
    return Path(get_settings().UPLOAD_DIR)


def build_storage_path(course_id: int, assignment_id: Optional[int]) -> str:
    """Relative storage path: ``<course>/<assignment or "course">/<uuid>.pdf``."""
    segment = str(assignment_id) if assignment_id is not None else "course"
    return f"{course_id}/{segment}/{uuid.uuid4()}.pdf"


def resolve_path(storage_path: str) -> Path:
    root = storage_root().resolve()
    path = (root / storage_path).resolve()
    if root not in path.parents:
        raise ValidationError("Invalid storage path")
    return path


async def read_upload(file: UploadFile, max_size: int) -> bytes:
    """Read an upload in chunks, rejecting it once it exceeds ``max_size``."""
    data = bytearray()
    while True:
        chunk = await file.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > max_size:
            raise ValidationError(f"File exceeds maximum size of {max_size} bytes")
    return bytes(data)


def save_file(storage_path: str, data: bytes) -> Path:
    path = resolve_path(storage_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.info("Stored %s (%d bytes)", storage_path, len(data))
    return path


def remove_file(storage_path: str) -> None:
    path = resolve_path(storage_path)
    try:
        path.unlink()
    except FileNotFoundError:
        logger.warning("Material file already missing: %s", storage_path)
