"""
FastAPI layer exposing car background replacement.

Endpoints:
 - GET /health
 - POST /replace-background
"""

from __future__ import annotations

from functools import lru_cache
import logging
import threading
import time

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from . import config
from .gemini_client import GeminiImageClient
from .invoker import RetryingInvoker
from .models import ErrorKind, Failure, ReplaceBackgroundRequest, RetryPolicy
from .pipeline import replace_background as run_replacement
from .responses import ResponseMapper

# A missing GEMINI_API_KEY fails here, at startup, not per request.
settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Car Background Replacement Service", version="0.1.0")

# Timed-out attempts leave worker threads behind; cap in-flight invocations.
_IN_FLIGHT = threading.BoundedSemaphore(settings.max_concurrent_requests)


@lru_cache()
def get_invoker() -> RetryingInvoker:
    """One upstream client (and HTTP connection pool) per process."""
    policy = RetryPolicy.from_settings(settings)
    return RetryingInvoker(GeminiImageClient.from_settings(settings), policy=policy)


def get_mapper() -> ResponseMapper:
    return ResponseMapper(per_attempt_timeout_ms=settings.per_attempt_timeout_ms)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/replace-background")
def replace_background(
    body: ReplaceBackgroundRequest,
    invoker: RetryingInvoker = Depends(get_invoker),
    mapper: ResponseMapper = Depends(get_mapper),
):
    start = time.monotonic()
    logger.info("Starting background replacement request")

    if not _IN_FLIGHT.acquire(blocking=False):
        logger.warning("Rejecting request: %d invocations already in flight", settings.max_concurrent_requests)
        outcome = Failure(
            kind=ErrorKind.SERVICE_UNAVAILABLE,
            http_status=503,
            message="Too many concurrent requests. Please try again shortly.",
            total_elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        status, payload = mapper.to_response(outcome)
        return JSONResponse(status_code=status, content=payload)

    try:
        outcome = run_replacement(body.carImageB64, body.backgroundImageB64, body.prompt, invoker)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Background replacement failed unexpectedly: %s", exc)
        outcome = Failure(
            kind=ErrorKind.PROCESSING_ERROR,
            http_status=500,
            message=str(exc) or exc.__class__.__name__,
            total_elapsed_ms=int((time.monotonic() - start) * 1000),
        )
    finally:
        _IN_FLIGHT.release()

    status, payload = mapper.to_response(outcome)
    if status == 200:
        logger.info("Background replacement completed in %dms", payload["metadata"]["processingTime"])
    else:
        logger.error(
            "Background replacement failed after %dms: %s (%s)",
            payload["processingTime"],
            payload["code"],
            getattr(outcome, "message", ""),
        )
    return JSONResponse(status_code=status, content=payload)
