"""Exceptions raised by the generation pipeline."""
from __future__ import annotations


class StudioError(RuntimeError):
    """Base class for pipeline failures surfaced to the user."""


class MissingCredentialError(StudioError):
    """No API key is available for a call that needs one."""


class PromptEngineeringError(StudioError):
    """The prompt engineering model returned something that is not a usable prompt."""

    def __init__(self, message: str, raw_response: str) -> None:
        super().__init__(message)
        self.raw_response = raw_response


class GroundingImageError(StudioError):
    """The grounding reference photo could not be produced."""


class NoImageGeneratedError(StudioError):
    """The image model answered without any image payload."""


class PipelineBusyError(StudioError):
    """A generation is already running."""


__all__ = [
    "GroundingImageError",
    "MissingCredentialError",
    "NoImageGeneratedError",
    "PipelineBusyError",
    "PromptEngineeringError",
    "StudioError",
]
