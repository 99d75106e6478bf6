"""
Decoding and sanity-checking of uploaded base64 images.

The upstream model does the actual editing; here we only make sure the
payload is valid base64 and sniff its MIME type for the inline part.
"""

from __future__ import annotations

import base64
import binascii
from io import BytesIO
import logging
from typing import Tuple

from PIL import Image

logger = logging.getLogger(__name__)

_DEFAULT_MIME = "image/png"


def _strip_data_url(value: str) -> str:
    """Drop a `data:image/...;base64,` header if the client sent one."""
    value = value.strip()
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def decode_image_b64(value: str, field: str = "image") -> Tuple[bytes, str]:
    """
    Decode a base64 image and return `(raw_bytes, mime_type)`.

    Raises:
        ValueError: when the value is empty or not valid base64.

    Formats Pillow cannot identify (HEIC, AVIF on older builds, ...) are passed
    through as `image/png`; the upstream model decides whether it can read them.
    """
    try:
        raw = base64.b64decode(_strip_data_url(value), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{field} is not valid base64") from exc
    if not raw:
        raise ValueError(f"{field} is empty")

    try:
        with Image.open(BytesIO(raw)) as image:
            image.verify()
            mime = Image.MIME.get(image.format or "", _DEFAULT_MIME)
    except Exception as exc:  # noqa: BLE001
        logger.info("Could not identify %s format (%s); sending as %s", field, exc, _DEFAULT_MIME)
        mime = _DEFAULT_MIME
    return raw, mime


def encode_b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")
