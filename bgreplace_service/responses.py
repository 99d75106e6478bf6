"""
Maps a terminal `CallOutcome` onto the boundary JSON contract.

Pure functions only; the HTTP layer decides how to send the result.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from .models import (
    CallOutcome,
    ErrorKind,
    ErrorResponse,
    Failure,
    ReplaceBackgroundResponse,
    ResponseMetadata,
    Success,
)

STATUS_BY_KIND = {
    ErrorKind.TIMEOUT_ERROR: 408,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.AUTH_ERROR: 401,
    ErrorKind.RATE_LIMIT_ERROR: 429,
    ErrorKind.PROCESSING_ERROR: 500,
    ErrorKind.VALIDATION: 400,
}


class ResponseMapper:
    def __init__(self, per_attempt_timeout_ms: int = 60000):
        self.per_attempt_timeout_ms = per_attempt_timeout_ms

    def error_message(self, failure: Failure) -> str:
        kind = failure.kind
        if kind is ErrorKind.TIMEOUT_ERROR:
            seconds = self.per_attempt_timeout_ms / 1000
            return (
                f"Request timed out after {seconds:g} seconds. "
                "The image processing is taking longer than expected."
            )
        if kind is ErrorKind.SERVICE_UNAVAILABLE:
            if failure.attempts == 0:
                # Refused locally; the upstream was never called.
                return failure.message
            return "Gemini API is temporarily overloaded. Please try again in a few minutes."
        if kind is ErrorKind.AUTH_ERROR:
            return "Invalid API key. Please check your GEMINI_API_KEY configuration."
        if kind is ErrorKind.RATE_LIMIT_ERROR:
            return "Rate limit exceeded. Please wait before making another request."
        if kind is ErrorKind.VALIDATION:
            return failure.message
        return f"Failed to replace background: {failure.message}"

    def to_response(self, outcome: CallOutcome) -> Tuple[int, Dict[str, Any]]:
        """Return `(http_status, json_body)` for the outcome."""
        if isinstance(outcome, Success):
            body = ReplaceBackgroundResponse(
                image=outcome.image_b64,
                metadata=ResponseMetadata(
                    processingTime=outcome.total_elapsed_ms,
                    timestamp=outcome.finished_at.isoformat().replace("+00:00", "Z"),
                ),
            )
            return 200, body.model_dump()

        body = ErrorResponse(
            error=self.error_message(outcome),
            code=outcome.kind,
            processingTime=outcome.total_elapsed_ms,
        )
        return STATUS_BY_KIND.get(outcome.kind, outcome.http_status), body.model_dump(mode="json")
