from __future__ import annotations

import logging

from google.genai import types

from studio.config import DEFAULT_IMAGE_MODEL
from studio.prompts import GROUNDING_PROMPT_TEMPLATE
from studio.schemas import ImageReference
from studio.services.errors import GroundingImageError
from studio.services.genai_client import build_client, first_inline_image, text_part

logger = logging.getLogger(__name__)

GROUNDING_FILENAME = "grounding_reference.png"


async def fetch_grounding_image(
    query: str,
    api_key: str | None,
    *,
    model: str = DEFAULT_IMAGE_MODEL,
) -> ImageReference:
    """Synthesize an isolated, neutral reference photo of the entity named by *query*."""

    client = build_client(api_key)
    response = await client.aio.models.generate_content(
        model=model,
        contents=[types.Content(role="user", parts=[text_part(GROUNDING_PROMPT_TEMPLATE.format(query=query))])],
        config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
    )

    found = first_inline_image(response)
    if found is None:
        logger.warning("Grounding model returned no image", extra={"query": query})
        raise GroundingImageError("Failed to generate grounding image.")

    data, mime_type = found
    logger.info("Grounding reference generated", extra={"query": query, "bytes": len(data)})
    return ImageReference(name=GROUNDING_FILENAME, mime_type=mime_type, data=data)


__all__ = ["GROUNDING_FILENAME", "fetch_grounding_image"]
