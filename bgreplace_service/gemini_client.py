"""
Thin REST client for the Gemini `generateContent` endpoint.

The client is an explicitly constructed capability handed to the retrying
invoker, so tests can swap in a fake that replays any sequence of failures
and successes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import requests

from .config import Settings
from .errors import UpstreamError

logger = logging.getLogger(__name__)

Part = Dict[str, Any]


class ImageGenerator(Protocol):
    def generate_content(self, parts: List[Part]) -> Dict[str, Any]:
        ...


def _error_message(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"HTTP {resp.status_code} {resp.reason or ''}".strip()


class GeminiImageClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-image-preview",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        session: Optional[requests.Session] = None,
        http_timeout: Optional[float] = None,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.http_timeout = http_timeout
        self._session = session or requests.Session()
        self._session.headers.update({"x-goog-api-key": api_key})

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiImageClient":
        # Socket timeout slightly above the attempt deadline so the worker
        # thread abandoned by the deadline guard eventually exits.
        read_timeout = settings.per_attempt_timeout_ms / 1000 + 5
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_api_base_url,
            http_timeout=read_timeout,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate_content(self, parts: List[Part]) -> Dict[str, Any]:
        body = {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
        }
        timeout = (5, self.http_timeout) if self.http_timeout else None
        try:
            resp = self._session.post(self.endpoint, json=body, timeout=timeout)
        except requests.Timeout as exc:
            raise UpstreamError(f"Upstream timeout: {exc}") from exc
        except requests.ConnectionError as exc:
            raise UpstreamError(f"Upstream connection error: {exc}") from exc

        if not resp.ok:
            message = _error_message(resp)
            logger.debug("Gemini returned HTTP %s: %s", resp.status_code, message)
            raise UpstreamError(message, status=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError("Gemini returned a non-JSON response", status=502) from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Gemini returned an unexpected payload", status=502)
        return payload
