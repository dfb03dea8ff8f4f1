"""google-genai SDK helpers shared by the pipeline clients."""
from __future__ import annotations

import base64
from typing import Any, Iterator, Optional

from google import genai
from google.genai import types

from studio.schemas import ImageReference
from studio.services.errors import MissingCredentialError

INVALID_CREDENTIAL_MARKERS = ("API key not valid", "API_KEY_INVALID")


def build_client(api_key: Optional[str]) -> genai.Client:
    """Return a client bound to *api_key*; every call site passes the key explicitly."""

    if not api_key or not api_key.strip():
        raise MissingCredentialError("An API key is required to generate images.")
    return genai.Client(api_key=api_key.strip())


def text_part(text: str) -> types.Part:
    return types.Part(text=text)


def image_part(image: ImageReference) -> types.Part:
    return types.Part(inline_data=types.Blob(data=image.data, mime_type=image.mime_type))


def response_text(response: Any) -> str:
    """Concatenate the text parts of a response, tolerating image-only replies."""

    chunks: list[str] = []
    for part in iter_parts(response):
        text = getattr(part, "text", None)
        if isinstance(text, str) and not getattr(part, "thought", False):
            chunks.append(text)
    if chunks:
        return "".join(chunks)

    text = getattr(response, "text", None)
    return text if isinstance(text, str) else ""


def iter_parts(response: Any) -> Iterator[Any]:
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            yield part


def first_inline_image(response: Any) -> tuple[bytes, str] | None:
    """Return ``(bytes, mime_type)`` of the first inline image part, if any."""

    for part in iter_parts(response):
        inline_data = getattr(part, "inline_data", None)
        if inline_data is None:
            continue
        data = getattr(inline_data, "data", None)
        if isinstance(data, str):
            data = base64.b64decode(data)
        if isinstance(data, (bytes, bytearray)) and data:
            mime_type = getattr(inline_data, "mime_type", None) or "image/png"
            return bytes(data), mime_type
    return None


def is_invalid_credential_error(error: BaseException | str | None) -> bool:
    if error is None:
        return False
    text = error if isinstance(error, str) else str(error)
    return any(marker in text for marker in INVALID_CREDENTIAL_MARKERS)


__all__ = [
    "INVALID_CREDENTIAL_MARKERS",
    "build_client",
    "first_inline_image",
    "image_part",
    "is_invalid_credential_error",
    "iter_parts",
    "response_text",
    "text_part",
]
