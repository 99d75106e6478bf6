"""
High-level background replacement pipeline.

`replace_background` is the main entry point used by both the HTTP API and
the local CLI helper. It keeps orchestration simple:
base64 payloads in -> decode/verify -> CallRequest -> retrying invoker -> outcome out.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .imaging import decode_image_b64
from .invoker import MISSING_FIELDS, RetryingInvoker
from .models import CallOutcome, CallRequest, ErrorKind, Failure

logger = logging.getLogger(__name__)


def _validation_failure(message: str, start: float) -> Failure:
    return Failure(
        kind=ErrorKind.VALIDATION,
        http_status=400,
        message=message,
        total_elapsed_ms=int((time.monotonic() - start) * 1000),
    )


def replace_background(
    car_image_b64: Optional[str],
    background_image_b64: Optional[str],
    prompt: Optional[str],
    invoker: RetryingInvoker,
) -> CallOutcome:
    """
    Validate the boundary payload and run it through the invoker.

    Malformed input never reaches the upstream call.
    """
    start = time.monotonic()
    if not car_image_b64 or not prompt or not prompt.strip():
        return _validation_failure(MISSING_FIELDS, start)

    try:
        car_bytes, car_mime = decode_image_b64(car_image_b64, field="carImageB64")
        bg_bytes: Optional[bytes] = None
        bg_mime = "image/png"
        if background_image_b64:
            bg_bytes, bg_mime = decode_image_b64(background_image_b64, field="backgroundImageB64")
    except ValueError as ve:
        logger.info("Rejected request payload: %s", ve)
        return _validation_failure(str(ve), start)

    request = CallRequest(
        car_image=car_bytes,
        prompt=prompt,
        background_image=bg_bytes,
        car_mime_type=car_mime,
        background_mime_type=bg_mime,
    )
    logger.info(
        "Starting background replacement (car=%d bytes, reference=%s)",
        len(car_bytes),
        "yes" if bg_bytes else "no",
    )
    return invoker.invoke(request)
