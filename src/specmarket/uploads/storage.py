"""Local file storage for avatar uploads."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from pathlib import Path, PurePosixPath

import anyio.to_thread
import structlog

from specmarket.config import get_settings
from specmarket.errors import DomainValidationError, FieldError

logger = structlog.get_logger()

ALLOWED_PREFIX = "avatars"
AVATAR_CONTENT_TYPES = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
}
AVATAR_MAX_BYTES = 2 * 1024 * 1024

INVALID_PATH = "Недопустимый путь файла"


def validate_upload_path(path: str) -> PurePosixPath:
    """
    Check an upload path and return it as a relative POSIX path.

    Only paths below ``avatars/`` are accepted. Absolute paths, ``..`` and
    empty segments are rejected.

    Raises:
        DomainValidationError: If the path is not acceptable.
    """
    if not path or path.startswith("/") or "\\" in path:
        raise DomainValidationError(INVALID_PATH, details=[FieldError("path", INVALID_PATH)])

    parts = path.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise DomainValidationError(INVALID_PATH, details=[FieldError("path", INVALID_PATH)])
    if len(parts) < 2 or parts[0] != ALLOWED_PREFIX:
        raise DomainValidationError(INVALID_PATH, details=[FieldError("path", INVALID_PATH)])
    return PurePosixPath(*parts)


def upload_root() -> Path:
    return Path(get_settings().upload_dir).resolve()


def upload_target(path: str) -> tuple[PurePosixPath, Path]:
    """Validated relative path and the absolute file it maps to under the upload root."""
    relative = validate_upload_path(path)
    root = upload_root()
    target = (root / relative).resolve()
    if root not in target.parents:
        raise DomainValidationError(INVALID_PATH, details=[FieldError("path", INVALID_PATH)])
    return relative, target


def check_upload_size(size: int) -> None:
    """
    Raises:
        DomainValidationError: If ``size`` is over ``upload_max_bytes``.
    """
    max_bytes = get_settings().upload_max_bytes
    if size > max_bytes:
        msg = f"Размер файла не должен превышать {max_bytes} байт"
        raise DomainValidationError(msg, details=[FieldError("file", msg)])


def _write_file(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)


async def receive_upload(path: str, chunks: AsyncIterator[bytes], declared_size: int | None = None) -> Path:
    """
    Read an upload body chunk by chunk and store it at ``path``.

    The path and a declared ``Content-Length`` are checked before any body is
    read; the running size is checked after every chunk, so an oversized body
    is rejected without being buffered whole. The disk write runs in a worker
    thread.

    Raises:
        DomainValidationError: Invalid path or body over the size limit.
    """
    relative, target = upload_target(path)
    if declared_size is not None:
        check_upload_size(declared_size)

    buffer = bytearray()
    async for chunk in chunks:
        buffer += chunk
        check_upload_size(len(buffer))

    await anyio.to_thread.run_sync(_write_file, target, bytes(buffer))
    logger.info("file_uploaded", path=str(relative), size=len(buffer))
    return target


def avatar_object_key(user_id: str, content_type: str) -> str:
    """Fresh storage key for a user's avatar."""
    return f"{ALLOWED_PREFIX}/{user_id}/{uuid.uuid4().hex}.{AVATAR_CONTENT_TYPES[content_type]}"
