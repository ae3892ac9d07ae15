import asyncio
import base64
import binascii
import logging
import re
import uuid
from pathlib import Path

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,(?P<payload>.+)$", re.DOTALL)


def _media_root() -> Path:
    return Path(settings.MEDIA_ROOT)


def _public_url(folder: str, filename: str) -> str:
    return f"{settings.MEDIA_URL.rstrip('/')}/{folder}/{filename}"


def _write_image(target_dir: Path, filename: str, payload: bytes) -> None:
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / filename).write_bytes(payload)


def decode_data_uri(url: str) -> bytes | None:
    match = _DATA_URI_RE.match(url or "")
    if not match:
        return None
    try:
        return base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError):
        return None


async def _download(url: str) -> bytes:
    async with httpx.AsyncClient(timeout=settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS) as client:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.content


async def store_remote_image(url: str, folder: str) -> tuple[str, str]:
    """
    Copy a generated image into local media storage.

    Image service URLs expire, so the bytes are persisted under
    ``MEDIA_ROOT/{folder}``. Returns ``(url, "local")`` on success. On any
    failure the original URL is kept and ``(url, "original")`` is returned.
    """
    try:
        payload = decode_data_uri(url)
        if payload is None:
            payload = await _download(url)
        if not payload:
            raise ValueError("Image payload was empty")

        filename = f"{folder}_{uuid.uuid4()}.png"
        await asyncio.to_thread(_write_image, _media_root() / folder, filename, payload)
        logger.info("Stored %s image as %s", folder, filename)
        return _public_url(folder, filename), "local"
    except (httpx.HTTPError, OSError, ValueError) as exc:
        logger.warning("Falling back to original image URL for %s: %s", folder, exc)
        return url, "original"
