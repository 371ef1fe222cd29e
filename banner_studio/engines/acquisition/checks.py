"""
Response checks for fetched images.

Content-type and size gates, decode validation, and classification of
server-proxy failures from status code and body text.
"""

import io
import asyncio
from typing import Optional

from PIL import Image, UnidentifiedImageError

from banner_studio.engines.acquisition.schemas import ProxyFailureKind

DEFAULT_CONTENT_TYPE = "image/png"


def is_image_content_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.split(";", 1)[0].strip().lower().startswith("image/")


def coerce_content_type(content_type: Optional[str]) -> str:
    """Keep an image/* type (without parameters), otherwise fall back to PNG."""
    if not is_image_content_type(content_type):
        return DEFAULT_CONTENT_TYPE
    return content_type.split(";", 1)[0].strip().lower()


def classify_proxy_failure(status_code: Optional[int], body: str) -> ProxyFailureKind:
    """
    Map a failed proxy response to a failure kind.

    Body markers win over the status code because the proxy mirrors the
    upstream status, which says little when the upstream host was never
    reached.
    """
    text = (body or "").lower()

    if "enotfound" in text or "econnrefused" in text:
        return ProxyFailureKind.NETWORK_UNREACHABLE
    if status_code == 404 or "not found" in text:
        return ProxyFailureKind.NOT_FOUND
    if status_code == 403 or "forbidden" in text:
        return ProxyFailureKind.ACCESS_DENIED
    if status_code in (502, 503, 504):
        return ProxyFailureKind.NETWORK_UNREACHABLE
    return ProxyFailureKind.UNRECOGNIZED


def _verify_image(data: bytes) -> bool:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        return True
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False


async def decodes_as_image(data: bytes, timeout: float) -> bool:
    """Check the bytes decode as an image within the timeout."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(_verify_image, data), timeout)
    except asyncio.TimeoutError:
        return False
