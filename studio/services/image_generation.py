from __future__ import annotations

import logging
from typing import Optional, Sequence

from google.genai import types

from studio.config import DEFAULT_IMAGE_MODEL
from studio.schemas import AspectRatio, ImageReference
from studio.services.errors import NoImageGeneratedError
from studio.services.genai_client import build_client, first_inline_image, image_part, text_part

logger = logging.getLogger(__name__)

RESULT_FILENAME = "shen_studio_image.png"


def _build_config(aspect_ratio: Optional[AspectRatio]) -> types.GenerateContentConfig:
    config_kwargs: dict[str, object] = {"response_modalities": ["IMAGE"]}
    if aspect_ratio is not None:
        config_kwargs["image_config"] = types.ImageConfig(aspect_ratio=aspect_ratio.value)
    return types.GenerateContentConfig(**config_kwargs)


async def generate_image(
    prompt: str,
    text_plates: Sequence[ImageReference],
    reference_images: Sequence[ImageReference],
    api_key: str | None,
    *,
    aspect_ratio: Optional[AspectRatio] = None,
    model: str = DEFAULT_IMAGE_MODEL,
) -> ImageReference:
    """Submit the final prompt with plates first, then references; return the first image."""

    client = build_client(api_key)
    attachments = [*text_plates, *reference_images]
    parts = [text_part(prompt)] + [image_part(image) for image in attachments]
    logger.info(
        "Generating image",
        extra={
            "model": model,
            "prompt_len": len(prompt),
            "attachments": [image.name for image in attachments],
            "aspect_ratio": aspect_ratio.value if aspect_ratio else None,
        },
    )

    response = await client.aio.models.generate_content(
        model=model,
        contents=[types.Content(role="user", parts=parts)],
        config=_build_config(aspect_ratio),
    )

    found = first_inline_image(response)
    if found is None:
        raise NoImageGeneratedError("No image was generated by the model.")

    data, mime_type = found
    logger.info("Image generated", extra={"bytes": len(data), "mime_type": mime_type})
    return ImageReference(name=RESULT_FILENAME, mime_type=mime_type, data=data)


__all__ = ["RESULT_FILENAME", "generate_image"]
