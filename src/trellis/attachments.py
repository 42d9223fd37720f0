"""Attachment storage for image references.

Images arrive as an http(s) URL, a local file path, or base64 data. The
bytes are written under ``<root>/<task_id>/<timestamp>_<uuid><ext>`` and
the caller records the returned relative path as a ``Reference``; the
database never holds the bytes.
"""

from __future__ import annotations

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import httpx

from trellis.errors import AttachmentError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"
DOWNLOAD_TIMEOUT = 30.0
MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024  # 20MB

_MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}
_EXTENSION_BY_MIME = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}


@dataclass(frozen=True)
class StoredAttachment:
    """Where an attachment landed and what it is."""

    relative_path: str
    original_filename: str
    mime_type: str
    size: int


def detect_mime_type(filename: str) -> str:
    """Map a filename's extension to an image MIME type (PNG when unknown)."""
    return _MIME_BY_EXTENSION.get(Path(filename).suffix.lower(), DEFAULT_MIME_TYPE)


def is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


async def _download(url: str) -> bytes:
    try:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
            resp = await client.get(url)
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        msg = f"Could not download image from {url}: {exc}"
        raise AttachmentError(msg) from exc
    return resp.content


def _decode_base64(source: str) -> bytes:
    data = source.strip()
    # Accept data URIs ("data:image/png;base64,....")
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "Could not process image source. Provide valid base64 data, a file path, or a URL."
        raise AttachmentError(msg) from exc


async def load_image_bytes(source: str, *, filename: str | None = None) -> tuple[bytes, str]:
    """Resolve *source* to ``(bytes, original_filename)``."""
    if is_url(source):
        content = await _download(source)
        if not filename:
            filename = PurePosixPath(urlparse(source).path).name or "downloaded_image.png"
        return content, filename

    local = Path(source).expanduser()
    # Long base64 payloads are not plausible paths
    if len(source) < 4096 and local.is_file():
        try:
            content = local.read_bytes()
        except OSError as exc:
            msg = f"Could not read image file {source}: {exc}"
            raise AttachmentError(msg) from exc
        return content, filename or local.name

    return _decode_base64(source), filename or "image.png"


async def store_image(
    source: str,
    root: Path,
    task_id: str,
    *,
    filename: str | None = None,
    mime_type: str | None = None,
) -> StoredAttachment:
    """Copy an image into the attachment tree for *task_id*.

    The returned ``relative_path`` is relative to ``root.parent`` so it
    stays valid if the project directory moves.
    """
    content, original_filename = await load_image_bytes(source, filename=filename)
    if not content:
        msg = "Image source is empty"
        raise AttachmentError(msg)
    if len(content) > MAX_ATTACHMENT_BYTES:
        msg = f"Image is {len(content)} bytes; the limit is {MAX_ATTACHMENT_BYTES}"
        raise AttachmentError(msg)

    detected = mime_type or detect_mime_type(original_filename)
    extension = Path(original_filename).suffix or _EXTENSION_BY_MIME.get(detected, ".png")

    task_dir = root / task_id
    task_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    target = task_dir / f"{stamp}_{uuid.uuid4().hex}{extension}"
    target.write_bytes(content)
    logger.info("Stored attachment %s (%d bytes)", target, len(content))

    return StoredAttachment(
        relative_path=target.relative_to(root.parent).as_posix(),
        original_filename=original_filename,
        mime_type=detected,
        size=len(content),
    )
