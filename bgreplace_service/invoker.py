"""
Bounded-retry orchestration of the upstream image call.

`RetryingInvoker.invoke` is the single entry point: one `CallRequest` in,
exactly one `Success` or `Failure` out. Attempts run strictly one after the
other; between failed attempts the invoker asks the classifier whether to
continue and the scheduler how long to wait.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import time
from typing import Any, Callable, Dict, Optional

from .backoff import BackoffScheduler
from .deadline import DeadlineGuard
from .errors import ErrorClassifier, NoImageError, message_of
from .gemini_client import ImageGenerator
from .models import (
    AttemptOutcome,
    AttemptRecord,
    CallOutcome,
    CallRequest,
    ErrorKind,
    Failure,
    RetryPolicy,
    Success,
)
from .prompting import build_parts

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float, now: float) -> int:
    return int((now - start) * 1000)


MISSING_FIELDS = "Missing required fields: carImageB64 and prompt are required"


def validation_error(request: Optional[CallRequest]) -> Optional[str]:
    """Return a message when the request cannot be sent upstream at all."""
    if request is None or not request.car_image or not (request.prompt or "").strip():
        return MISSING_FIELDS
    return None


def extract_image(response: Dict[str, Any]) -> str:
    """
    Pull the first inline image payload out of a generateContent response.

    Raises:
        NoImageError: when the structure is missing or holds no image part.
    """
    candidates = response.get("candidates") or []
    content = candidates[0].get("content") if candidates and isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts:
        raise NoImageError("Invalid response structure from Gemini API")

    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and inline.get("data"):
            return inline["data"]
    raise NoImageError("No image was generated in the response")


class RetryingInvoker:
    def __init__(
        self,
        client: ImageGenerator,
        policy: Optional[RetryPolicy] = None,
        classifier: Optional[ErrorClassifier] = None,
        scheduler: Optional[BackoffScheduler] = None,
        guard: Optional[DeadlineGuard] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or ErrorClassifier()
        self.scheduler = scheduler or BackoffScheduler.from_policy(self.policy)
        self.guard = guard or DeadlineGuard()
        self._sleep = sleep
        self._clock = clock

    def invoke(self, request: CallRequest) -> CallOutcome:
        start = self._clock()
        problem = validation_error(request)
        if problem:
            return Failure(
                kind=ErrorKind.VALIDATION,
                http_status=400,
                message=problem,
                total_elapsed_ms=_elapsed_ms(start, self._clock()),
            )

        parts = build_parts(request)
        max_attempts = self.policy.max_attempts
        attempt = 1
        while True:
            logger.info("Generating content - attempt %d/%d", attempt, max_attempts)
            record = AttemptRecord(index=attempt, started_at=self._clock())
            try:
                response = self.guard.guard(
                    lambda: self.client.generate_content(parts),
                    self.policy.per_attempt_timeout_ms,
                )
                image_b64 = extract_image(response)
            except Exception as exc:  # noqa: BLE001
                verdict = self.classifier.classify(exc)
                record.outcome = AttemptOutcome.RETRYABLE if verdict.retryable else AttemptOutcome.FATAL
                record.elapsed_ms = _elapsed_ms(record.started_at, self._clock())
                self._log_failed_attempt(record, exc)

                if not verdict.retryable or attempt >= max_attempts:
                    if verdict.retryable:
                        logger.error("All %d attempts failed", max_attempts)
                    else:
                        logger.error("Non-retryable error (%s): %s", verdict.http_status, message_of(exc))
                    return Failure(
                        kind=verdict.kind,
                        http_status=verdict.http_status,
                        message=message_of(exc),
                        total_elapsed_ms=_elapsed_ms(start, self._clock()),
                        attempts=attempt,
                    )

                delay_ms = self.scheduler.delay_ms(attempt)
                logger.info("Waiting %dms before retry %d...", delay_ms, attempt + 1)
                self._sleep(delay_ms / 1000)
                attempt += 1
                continue

            record.outcome = AttemptOutcome.SUCCESS
            record.elapsed_ms = _elapsed_ms(record.started_at, self._clock())
            logger.info("Successfully generated content on attempt %d (%dms)", attempt, record.elapsed_ms)
            return Success(
                image_b64=image_b64,
                total_elapsed_ms=_elapsed_ms(start, self._clock()),
                attempts=attempt,
                finished_at=datetime.now(timezone.utc),
            )

    @staticmethod
    def _log_failed_attempt(record: AttemptRecord, exc: BaseException) -> None:
        logger.warning(
            "Attempt %d failed after %dms (%s): %s",
            record.index,
            record.elapsed_ms,
            record.outcome.value if record.outcome else "unknown",
            message_of(exc),
        )
        if isinstance(exc, NoImageError):
            # Possibly a content-policy refusal rather than a transient glitch.
            logger.warning("Model returned no image; counting it against the retry budget")
