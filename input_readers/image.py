"""
DOCUMENT ENCODER
----------------
Convert image/PDF bytes to base64 payloads for multimodal API usage.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass


@dataclass(frozen=True)
class InlineMedia:
    mime_type: str
    data: str  # base64, no data-URL prefix

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


def to_inline_media(content: bytes, mime_type: str) -> InlineMedia:
    """
    Convert document bytes to an inline base64 payload.

    Args:
        content: Raw document bytes
        mime_type: MIME type of the document (image/png, application/pdf, ...)

    Returns:
        InlineMedia with the base64-encoded data
    """
    if not content:
        raise ValueError("Cannot encode an empty document")

    encoded = base64.b64encode(content).decode("utf-8")
    return InlineMedia(mime_type=mime_type or "image/png", data=encoded)
