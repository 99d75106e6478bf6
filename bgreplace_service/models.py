"""
Value types shared by the invoker, the mapper and the HTTP layer.

Boundary (JSON) shapes are pydantic models; internal values are plain
dataclasses that live for a single invocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from .config import Settings


class ErrorKind(str, Enum):
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    VALIDATION = "VALIDATION"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable-failure"
    FATAL = "fatal-failure"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 5000
    max_delay_ms: int = 30000
    per_attempt_timeout_ms: int = 60000

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
            per_attempt_timeout_ms=settings.per_attempt_timeout_ms,
        )


@dataclass(frozen=True)
class CallRequest:
    car_image: bytes
    prompt: str
    background_image: Optional[bytes] = None
    car_mime_type: str = "image/png"
    background_mime_type: str = "image/png"


@dataclass
class AttemptRecord:
    index: int
    started_at: float  # monotonic seconds
    outcome: Optional[AttemptOutcome] = None
    elapsed_ms: int = 0


@dataclass(frozen=True)
class Success:
    image_b64: str
    total_elapsed_ms: int
    attempts: int
    finished_at: datetime


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    http_status: int
    message: str
    total_elapsed_ms: int
    attempts: int = 0


CallOutcome = Union[Success, Failure]


class ReplaceBackgroundRequest(BaseModel):
    # Optional at the schema level so missing fields surface as VALIDATION, not 422.
    carImageB64: Optional[str] = None
    backgroundImageB64: Optional[str] = None
    prompt: Optional[str] = None


class ResponseMetadata(BaseModel):
    processingTime: int
    timestamp: str


class ReplaceBackgroundResponse(BaseModel):
    image: str
    metadata: ResponseMetadata


class ErrorResponse(BaseModel):
    error: str
    code: ErrorKind
    processingTime: int
