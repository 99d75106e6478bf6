"""
Failure types raised around the upstream call and the classifier that
decides whether a failure is worth another attempt.

Classification is a set of pluggable predicates so an alternate upstream SDK
with a different error shape can supply its own rules without touching the
retry loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple, Type

from .models import ErrorKind

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})
RETRYABLE_MESSAGE_MARKERS = ("timeout", "network", "connection")


class UpstreamError(Exception):
    """A failure reported by (or while talking to) the upstream provider."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class NoImageError(UpstreamError):
    """The upstream answered, but the response carried no inline image."""


class CallTimeoutError(Exception):
    """Raised by the deadline guard when an attempt overruns its budget."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Request timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


@dataclass(frozen=True)
class Classification:
    retryable: bool
    kind: ErrorKind
    http_status: int


RetryPredicate = Callable[[BaseException], bool]


def status_of(exc: BaseException) -> Optional[int]:
    for attr in ("status", "status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def message_of(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def retryable_status(statuses: Iterable[int] = RETRYABLE_STATUSES) -> RetryPredicate:
    wanted = frozenset(statuses)

    def predicate(exc: BaseException) -> bool:
        return status_of(exc) in wanted

    return predicate


def message_contains(markers: Iterable[str] = RETRYABLE_MESSAGE_MARKERS) -> RetryPredicate:
    lowered = tuple(m.lower() for m in markers)

    def predicate(exc: BaseException) -> bool:
        message = message_of(exc).lower()
        return any(marker in message for marker in lowered)

    return predicate


def exception_type(*types: Type[BaseException]) -> RetryPredicate:
    def predicate(exc: BaseException) -> bool:
        return isinstance(exc, types)

    return predicate


DEFAULT_PREDICATES: Tuple[RetryPredicate, ...] = (
    retryable_status(),
    message_contains(),
    # "Request timed out" does not contain the "timeout" marker.
    exception_type(NoImageError, CallTimeoutError),
)


class ErrorClassifier:
    """Stateless retry/fatal verdict plus the (kind, status) to report."""

    def __init__(self, predicates: Optional[Iterable[RetryPredicate]] = None):
        self.predicates: Tuple[RetryPredicate, ...] = (
            tuple(predicates) if predicates is not None else DEFAULT_PREDICATES
        )

    def is_retryable(self, exc: BaseException) -> bool:
        return any(predicate(exc) for predicate in self.predicates)

    def classify(self, exc: BaseException) -> Classification:
        kind, http_status = self.report_as(exc)
        return Classification(retryable=self.is_retryable(exc), kind=kind, http_status=http_status)

    @staticmethod
    def report_as(exc: BaseException) -> Tuple[ErrorKind, int]:
        if isinstance(exc, CallTimeoutError) or "timed out" in message_of(exc):
            return ErrorKind.TIMEOUT_ERROR, 408
        status = status_of(exc)
        if status == 503:
            return ErrorKind.SERVICE_UNAVAILABLE, 503
        if status == 401:
            return ErrorKind.AUTH_ERROR, 401
        if status == 429:
            return ErrorKind.RATE_LIMIT_ERROR, 429
        return ErrorKind.PROCESSING_ERROR, 500
