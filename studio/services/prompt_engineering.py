from __future__ import annotations

import json
import logging
import re
from typing import Sequence

from google.genai import types
from pydantic import ValidationError

from studio.config import DEFAULT_ENGINEER_MODEL
from studio.prompts import (
    ENGINEER_CLOSING_INSTRUCTION,
    ENGINEER_IMAGE_INSTRUCTION,
    ENGINEER_VIDEO_INSTRUCTION,
)
from studio.schemas import AspectRatio, EngineeredPrompt, GenerationTarget, ImageReference
from studio.services.errors import PromptEngineeringError
from studio.services.genai_client import build_client, image_part, response_text, text_part

logger = logging.getLogger(__name__)

_CODE_FENCE_RX = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def system_instruction_for(target: GenerationTarget) -> str:
    if target is GenerationTarget.VIDEO:
        return ENGINEER_VIDEO_INSTRUCTION
    return ENGINEER_IMAGE_INSTRUCTION


def build_engineering_parts(
    prompt: str,
    text_plates: Sequence[ImageReference],
    reference_images: Sequence[ImageReference],
    aspect_ratio: AspectRatio | str,
) -> list[types.Part]:
    """Lay out the request: prompt, labelled plates, labelled references, closing line."""

    ratio = aspect_ratio.value if isinstance(aspect_ratio, AspectRatio) else str(aspect_ratio)
    parts = [text_part(f"User's simple prompt: {prompt}\nDesired Aspect Ratio: {ratio}")]
    for index, plate in enumerate(text_plates, start=1):
        parts.append(text_part(f"Text Plate {index} ({plate.name}):"))
        parts.append(image_part(plate))
    for index, image in enumerate(reference_images, start=1):
        parts.append(text_part(f"User Reference Image {index} ({image.name}):"))
        parts.append(image_part(image))
    parts.append(text_part(ENGINEER_CLOSING_INSTRUCTION))
    return parts


def parse_engineered_prompt(raw: str, target: GenerationTarget) -> EngineeredPrompt:
    text = (raw or "").strip()
    fenced = _CODE_FENCE_RX.match(text)
    if fenced:
        text = fenced.group("body")

    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise PromptEngineeringError(
            "The AI returned an invalid response. Please try again. Raw response: " + str(raw),
            raw_response=str(raw),
        ) from exc

    if not isinstance(payload, dict):
        raise PromptEngineeringError(
            "The AI returned an invalid response. Please try again. Raw response: " + str(raw),
            raw_response=str(raw),
        )

    # The requested target wins over whatever the reply claims.
    payload["target_model"] = target.value
    try:
        return EngineeredPrompt.model_validate(payload)
    except ValidationError as exc:
        raise PromptEngineeringError(
            f"The AI response is missing required fields ({exc.error_count()} error(s)). "
            "Raw response: " + str(raw),
            raw_response=str(raw),
        ) from exc


async def engineer_prompt(
    prompt: str,
    target: GenerationTarget,
    text_plates: Sequence[ImageReference],
    reference_images: Sequence[ImageReference],
    aspect_ratio: AspectRatio | str,
    api_key: str | None,
    *,
    model: str = DEFAULT_ENGINEER_MODEL,
) -> EngineeredPrompt:
    """Turn the quoted prompt and its images into a structured generation prompt.

    One request, no retries. An unparseable reply raises
    :class:`PromptEngineeringError` carrying the raw text.
    """

    client = build_client(api_key)
    parts = build_engineering_parts(prompt, text_plates, reference_images, aspect_ratio)
    logger.info(
        "Engineering prompt",
        extra={
            "target": target.value,
            "prompt_len": len(prompt),
            "text_plates": len(text_plates),
            "reference_images": len(reference_images),
        },
    )

    response = await client.aio.models.generate_content(
        model=model,
        contents=[types.Content(role="user", parts=parts)],
        config=types.GenerateContentConfig(
            system_instruction=system_instruction_for(target),
            response_mime_type="application/json",
        ),
    )
    raw = response_text(response)
    try:
        engineered = parse_engineered_prompt(raw, target)
    except PromptEngineeringError:
        logger.error("Failed to parse prompt engineering response", extra={"raw_len": len(raw)})
        raise

    logger.info(
        "Prompt engineered",
        extra={
            "target": engineered.target_model.value,
            "grounding": engineered.grounding_search_query is not None,
            "prompt_len": len(engineered.professional_prompt),
        },
    )
    return engineered


__all__ = [
    "build_engineering_parts",
    "engineer_prompt",
    "parse_engineered_prompt",
    "system_instruction_for",
]
