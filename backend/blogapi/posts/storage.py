# backend/blogapi/posts/storage.py
"""Thumbnail files on local disk, served back under /uploads."""
import logging
import re
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from ..config import settings
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads/"
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
CHUNK_SIZE = 1024 * 1024

_unsafe_chars = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(filename: Optional[str]) -> str:
    name = Path(filename or "thumbnail").name
    return _unsafe_chars.sub("_", name)[-100:] or "thumbnail"


def local_path(public_path: str, upload_dir: Optional[str] = None) -> Optional[Path]:
    """Maps `/uploads/<file>` back to the file under UPLOAD_DIR; None for anything else."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX):
        return None
    name = Path(public_path[len(PUBLIC_PREFIX):]).name
    if not name:
        return None
    return Path(upload_dir or settings.UPLOAD_DIR) / name


async def save_thumbnail(
    upload: UploadFile,
    *,
    upload_dir: Optional[str] = None,
    max_size: Optional[int] = None,
) -> str:
    """
    Stream an uploaded image to UPLOAD_DIR and return its public path.
    Non-image uploads and files over the size limit are rejected with a 400;
    a partially written file is removed before raising.
    """
    if upload.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only image files are allowed (jpeg, png, gif, webp)")

    limit = max_size or settings.MAX_UPLOAD_SIZE
    target_dir = Path(upload_dir or settings.UPLOAD_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{uuid.uuid4().hex}_{_safe_name(upload.filename)}"
    target = target_dir / filename

    written = 0
    too_large = False
    async with aiofiles.open(target, "wb") as f:
        while chunk := await upload.read(CHUNK_SIZE):
            written += len(chunk)
            if written > limit:
                too_large = True
                break
            await f.write(chunk)

    if too_large:
        await aiofiles.os.remove(target)
        raise ValidationError(f"Thumbnail exceeds the maximum size of {limit} bytes")

    logger.info(f"Saved thumbnail {filename} ({written} bytes)")
    return f"{PUBLIC_PREFIX}{filename}"


async def delete_thumbnail(public_path: Optional[str], *, upload_dir: Optional[str] = None) -> None:
    """Best effort removal; failures are logged, never raised."""
    path = local_path(public_path, upload_dir) if public_path else None
    if path is None:
        return
    try:
        await aiofiles.os.remove(path)
        logger.info(f"Deleted thumbnail {path.name}")
    except FileNotFoundError:
        logger.warning(f"Thumbnail already missing: {path}")
    except OSError as e:
        logger.error(f"Thumbnail cleanup failed for {path}: {e}")
