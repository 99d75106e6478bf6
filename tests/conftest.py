# tests/conftest.py
import base64
import os
from io import BytesIO

import pytest
from PIL import Image

# api.py reads settings at import time; the key must exist before that.
os.environ.setdefault("GEMINI_API_KEY", "test-key")

from bgreplace_service.models import CallRequest  # noqa: E402

from fakes import RecordingSleep  # noqa: E402


def _encode(image: Image.Image, fmt: str) -> bytes:
    buf = BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return _encode(Image.new("RGB", (8, 8), color="red"), "PNG")


@pytest.fixture
def png_b64(png_bytes) -> str:
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def jpeg_b64() -> str:
    return base64.b64encode(_encode(Image.new("RGB", (8, 8), color="blue"), "JPEG")).decode("ascii")


@pytest.fixture
def call_request(png_bytes) -> CallRequest:
    return CallRequest(car_image=png_bytes, prompt="a sunny mountain road")


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()
