from __future__ import annotations

import logging

from google.genai import types

from studio.config import DEFAULT_QUOTE_MODEL
from studio.prompts import QUOTE_ADDER_INSTRUCTION
from studio.services.genai_client import build_client, response_text, text_part

logger = logging.getLogger(__name__)


async def add_quotes(prompt: str, api_key: str | None, *, model: str = DEFAULT_QUOTE_MODEL) -> str:
    """Wrap literal on-image text in double quotes; never blocks the pipeline.

    Blank prompts are returned untouched without contacting the model. Any
    failure, or an empty reply, falls back to the original prompt.
    """

    if not prompt.strip():
        return prompt

    try:
        client = build_client(api_key)
        response = await client.aio.models.generate_content(
            model=model,
            contents=[types.Content(role="user", parts=[text_part(f"User Prompt: {prompt}")])],
            config=types.GenerateContentConfig(
                system_instruction=QUOTE_ADDER_INSTRUCTION,
                response_mime_type="text/plain",
                temperature=0,
            ),
        )
        quoted = response_text(response).strip()
    except Exception as exc:  # noqa: BLE001 - quoting is best effort
        logger.warning(
            "Quote-adding model failed, falling back to original prompt: %s",
            exc,
            extra={"prompt_len": len(prompt)},
        )
        return prompt

    if not quoted:
        logger.warning("Quote-adding model returned an empty reply, keeping original prompt")
        return prompt

    logger.info(
        "Prompt quoted",
        extra={"prompt_len": len(prompt), "quoted_len": len(quoted)},
    )
    return quoted


__all__ = ["add_quotes"]
