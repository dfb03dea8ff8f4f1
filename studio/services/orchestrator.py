"""Sequence the pipeline stages and hold the state the front-end renders."""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from studio.config import Settings, get_settings
from studio.schemas import (
    AspectRatio,
    CredentialStatus,
    EngineeredPrompt,
    GenerationConfig,
    GenerationTarget,
    ImageReference,
    PipelineState,
    StudioStateResponse,
)
from studio.services.credential_store import CredentialStore
from studio.services.errors import MissingCredentialError, PipelineBusyError
from studio.services.genai_client import is_invalid_credential_error
from studio.services.grounding import fetch_grounding_image
from studio.services.image_generation import generate_image
from studio.services.prompt_engineering import engineer_prompt
from studio.services.prompt_quoting import add_quotes
from studio.services.text_plates import build_text_plates

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "An API key is required to generate images."
INVALID_KEY_MESSAGE = "Your API key is invalid. Please enter a valid key."
EMPTY_PROMPT_MESSAGE = "Please enter a prompt to generate."
NOTHING_TO_RETRY_MESSAGE = "Nothing to retry yet. Generate an image first."
UNKNOWN_ERROR_DETAILS = "An unknown error occurred."


@dataclass
class PipelineServices:
    """The external collaborators of the pipeline; swapped for fakes in tests."""

    add_quotes: Callable[..., Awaitable[str]] = add_quotes
    render_plates: Callable[..., list[ImageReference]] = build_text_plates
    engineer: Callable[..., Awaitable[EngineeredPrompt]] = engineer_prompt
    fetch_grounding: Callable[..., Awaitable[ImageReference]] = fetch_grounding_image
    generate: Callable[..., Awaitable[ImageReference]] = generate_image


@dataclass
class EngineeringOutcome:
    quoted_prompt: str
    text_plates: list[ImageReference]
    engineered: EngineeredPrompt


class StudioOrchestrator:
    """Runs quoting → plates → engineering → grounding → image generation.

    State moves ``idle → loading → success | error``; :meth:`start_over`
    returns to idle. A rejected API key clears the stored credential and
    drops back to idle with :attr:`credential_error` set instead of showing
    an error.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        settings: Optional[Settings] = None,
        services: Optional[PipelineServices] = None,
    ) -> None:
        self.credentials = credentials
        self.settings = settings or get_settings()
        self.services = services or PipelineServices()

        self.state = PipelineState.IDLE
        self.result: Optional[ImageReference] = None
        self.error_message: Optional[str] = None
        self.credential_error: Optional[str] = None
        self.last_config: Optional[GenerationConfig] = None
        self.quoted_prompt: Optional[str] = None
        self.engineered: Optional[EngineeredPrompt] = None

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def credential_status(self) -> CredentialStatus:
        configured = self.credentials.is_configured
        return CredentialStatus(
            configured=configured,
            prompt_required=not configured or self.credential_error is not None,
            error=self.credential_error,
        )

    def save_credential(self, api_key: str) -> CredentialStatus:
        self.credentials.save(api_key)
        self.credential_error = None
        return self.credential_status()

    def clear_credential(self) -> CredentialStatus:
        self.credentials.clear()
        return self.credential_status()

    def _require_key(self) -> Optional[str]:
        api_key = self.credentials.api_key
        if not api_key:
            self.credential_error = MISSING_KEY_MESSAGE
            logger.info("Generation requested without an API key")
            return None
        return api_key

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        aspect_ratio: AspectRatio = AspectRatio.SQUARE,
        reference_images: Sequence[ImageReference] = (),
    ) -> PipelineState:
        """First generation: every stage runs, the config is kept for :meth:`retry`."""

        self._ensure_idle_pipeline()
        api_key = self._require_key()
        if api_key is None:
            return self.state
        if not prompt.strip():
            self._fail(EMPTY_PROMPT_MESSAGE)
            return self.state

        trace = self._begin()
        try:
            outcome = await self._engineer(
                prompt, GenerationTarget.IMAGE, aspect_ratio, reference_images, api_key
            )
            self.quoted_prompt = outcome.quoted_prompt
            self.engineered = outcome.engineered

            grounding = await self._ground(outcome.engineered, api_key)
            references = ([grounding] if grounding is not None else []) + list(reference_images)
            config = GenerationConfig(
                prompt=outcome.engineered.final_prompt(),
                text_plates=tuple(outcome.text_plates),
                reference_images=tuple(references),
                aspect_ratio=aspect_ratio,
                grounding_image=grounding,
            )
            self.last_config = config
            await self._run_generation(config, api_key, trace)
        except Exception as exc:  # noqa: BLE001 - every failure goes through one funnel
            self._handle_error("Generation failed", exc)
        return self.state

    async def retry(self) -> PipelineState:
        """Re-run only image generation with the last persisted config."""

        self._ensure_idle_pipeline()
        api_key = self._require_key()
        if api_key is None:
            return self.state
        config = self.last_config
        if config is None:
            self._fail(NOTHING_TO_RETRY_MESSAGE)
            return self.state

        trace = self._begin()
        try:
            await self._run_generation(config, api_key, trace)
        except Exception as exc:  # noqa: BLE001 - every failure goes through one funnel
            self._handle_error("Generation failed", exc)
        return self.state

    async def engineer_only(
        self,
        prompt: str,
        target: GenerationTarget = GenerationTarget.IMAGE,
        aspect_ratio: AspectRatio = AspectRatio.SQUARE,
        reference_images: Sequence[ImageReference] = (),
    ) -> EngineeringOutcome:
        """Quote, render plates and engineer without generating; leaves the state machine alone."""

        api_key = self.credentials.api_key
        if not api_key:
            self.credential_error = MISSING_KEY_MESSAGE
            raise MissingCredentialError(MISSING_KEY_MESSAGE)
        try:
            return await self._engineer(prompt, target, aspect_ratio, reference_images, api_key)
        except Exception as exc:
            if is_invalid_credential_error(exc):
                self._reject_credential()
            raise

    def start_over(self) -> PipelineState:
        self.state = PipelineState.IDLE
        self.result = None
        self.error_message = None
        self.last_config = None
        self.quoted_prompt = None
        self.engineered = None
        return self.state

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _engineer(
        self,
        prompt: str,
        target: GenerationTarget,
        aspect_ratio: AspectRatio,
        reference_images: Sequence[ImageReference],
        api_key: str,
    ) -> EngineeringOutcome:
        models = self.settings.models
        plate_cfg = self.settings.text_plate

        quoted = await self.services.add_quotes(prompt, api_key, model=models.quote_model)
        plates = self.services.render_plates(
            quoted,
            font_path=plate_cfg.font_path,
            font_size=plate_cfg.font_size,
            margin=plate_cfg.margin,
        )
        engineered = await self.services.engineer(
            quoted,
            target,
            plates,
            list(reference_images),
            aspect_ratio,
            api_key,
            model=models.engineer_model,
        )
        return EngineeringOutcome(quoted_prompt=quoted, text_plates=plates, engineered=engineered)

    async def _ground(self, engineered: EngineeredPrompt, api_key: str) -> Optional[ImageReference]:
        query = engineered.grounding_search_query
        if not query:
            return None
        try:
            return await self.services.fetch_grounding(
                query, api_key, model=self.settings.models.image_model
            )
        except Exception as exc:
            if self.settings.grounding_strict or is_invalid_credential_error(exc):
                raise
            logger.warning(
                "Grounding reference unavailable, continuing without it: %s",
                exc,
                extra={"query": query},
            )
            return None

    async def _run_generation(self, config: GenerationConfig, api_key: str, trace: str) -> None:
        start = time.time()
        result = await self.services.generate(
            config.prompt,
            list(config.text_plates),
            list(config.reference_images),
            api_key,
            aspect_ratio=config.aspect_ratio,
            model=self.settings.models.image_model,
        )
        self.result = result
        self.state = PipelineState.SUCCESS
        logger.info(
            "Generation succeeded",
            extra={
                "trace": trace,
                "elapsed_ms": round((time.time() - start) * 1000, 2),
                "bytes": len(result.data),
            },
        )

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _ensure_idle_pipeline(self) -> None:
        if self.state is PipelineState.LOADING:
            raise PipelineBusyError("A generation is already in progress.")

    def _begin(self) -> str:
        trace = uuid.uuid4().hex[:8]
        self.state = PipelineState.LOADING
        self.result = None
        self.error_message = None
        logger.info("Generation started", extra={"trace": trace})
        return trace

    def _fail(self, message: str) -> None:
        logger.warning("Generation rejected: %s", message)
        self.error_message = message
        self.state = PipelineState.ERROR

    def _reject_credential(self) -> None:
        logger.warning("API key rejected by the model service; clearing stored credential")
        self.credentials.clear()
        self.credential_error = INVALID_KEY_MESSAGE

    def _handle_error(self, message: str, error: Optional[BaseException]) -> None:
        details = str(error) if error is not None and str(error) else UNKNOWN_ERROR_DETAILS
        if is_invalid_credential_error(details):
            self._reject_credential()
            self.state = PipelineState.IDLE
            return

        logger.error("%s: %s", message, details, exc_info=error)
        self.error_message = f"{message}: {details}"
        self.state = PipelineState.ERROR

    def snapshot(self) -> StudioStateResponse:
        return StudioStateResponse(
            state=self.state,
            result_url=self.result.to_data_url() if self.result is not None else None,
            error=self.error_message,
            credentials=self.credential_status(),
            quoted_prompt=self.quoted_prompt,
            engineered_prompt=self.engineered,
            text_plates=[plate.name for plate in self.last_config.text_plates] if self.last_config else [],
            can_retry=self.last_config is not None and self.state is not PipelineState.LOADING,
            model=self.settings.models.image_model,
        )


__all__ = [
    "EngineeringOutcome",
    "PipelineServices",
    "StudioOrchestrator",
]
