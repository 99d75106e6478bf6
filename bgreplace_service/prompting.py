"""Builds the request parts sent to the image model."""

from __future__ import annotations

from typing import List

from .gemini_client import Part
from .imaging import encode_b64
from .models import CallRequest

_REFERENCE_LINE = (
    "Use the SECOND image as a direct reference and inspiration for the new "
    "background, blending its style and content seamlessly."
)


def build_instruction(prompt: str, has_background: bool) -> str:
    lines = [
        "You are an expert automotive photo editor.",
        "Your task is to replace ONLY the background of the primary car image.",
    ]
    if has_background:
        lines.append(_REFERENCE_LINE)
    lines.extend(
        [
            f'The new background must match this description: "{prompt.strip()}".',
            "Crucially, the car in the foreground must remain completely untouched and unchanged. "
            "Preserve all original details, lighting, reflections on the car, and its physical form.",
            "Integrate the car into the new background by generating realistic, natural, and "
            "cinematic lighting, and ensure the ground shadows under the car are contextually "
            "appropriate for the new scene.",
            "Output only the final edited image. Do not output any text.",
        ]
    )
    return "\n".join(lines)


def _inline_part(raw: bytes, mime_type: str) -> Part:
    return {"inlineData": {"mimeType": mime_type, "data": encode_b64(raw)}}


def build_parts(request: CallRequest) -> List[Part]:
    """Car image first, optional reference background second, instruction last."""
    parts = [_inline_part(request.car_image, request.car_mime_type)]
    if request.background_image:
        parts.append(_inline_part(request.background_image, request.background_mime_type))
    parts.append({"text": build_instruction(request.prompt, bool(request.background_image))})
    return parts
