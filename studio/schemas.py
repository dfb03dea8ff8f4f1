from __future__ import annotations

import base64
import binascii
import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator, model_validator

DATA_URL_RX = re.compile(r"^data:(?P<mime>[^;,]+)?(?P<b64>;base64)?,", re.IGNORECASE)


class _CompatModel(BaseModel):
    """Base model configured to ignore unknown fields (Pydantic v2 only)."""

    model_config = ConfigDict(extra="ignore")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _strip_optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _strip_required(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def decode_data_url(data_url: str) -> tuple[bytes, str | None]:
    """Decode a base64 data URL into bytes and its declared media type."""

    match = DATA_URL_RX.match(data_url.strip())
    if not match:
        raise ValueError("Invalid data URL: expected data:<mime>;base64,<payload>")
    if not match.group("b64"):
        raise ValueError("Only base64-encoded data URLs are supported")
    encoded = data_url.strip()[match.end():]
    try:
        return base64.b64decode(encoded, validate=True), match.group("mime")
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Failed to decode data URL") from exc


# -----------------------------------------------------------------------------
# Pipeline data
# -----------------------------------------------------------------------------


class GenerationTarget(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class AspectRatio(str, Enum):
    SQUARE = "1:1"
    PORTRAIT = "9:16"
    LANDSCAPE = "16:9"


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ImageReference(BaseModel):
    """An image payload travelling between pipeline stages."""

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    name: constr(strip_whitespace=True, min_length=1)
    mime_type: str = "image/png"
    data: bytes

    @field_validator("data")
    @classmethod
    def _require_payload(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError("image payload is empty")
        return bytes(value)

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"

    @classmethod
    def from_data_url(cls, data_url: str, name: str) -> "ImageReference":
        data, mime_type = decode_data_url(data_url)
        return cls(name=name, mime_type=mime_type or "image/png", data=data)

    @classmethod
    def from_base64(cls, encoded: str, name: str, mime_type: str = "image/png") -> "ImageReference":
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"{name}: payload is not valid base64") from exc
        return cls(name=name, mime_type=mime_type, data=data)


class EngineeredPrompt(_CompatModel):
    """Structured prompt returned by the prompt engineering model."""

    analysis_notes: str = ""
    grounding_search_query: Optional[str] = None
    target_model: GenerationTarget = GenerationTarget.IMAGE
    professional_prompt: constr(strip_whitespace=True, min_length=1)
    text_replication_instruction: str = ""
    negative_prompt: str = ""

    @field_validator("analysis_notes", "text_replication_instruction", "negative_prompt", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _strip_required(value)

    @field_validator("grounding_search_query", mode="before")
    @classmethod
    def _blank_query_is_none(cls, value: Any) -> Optional[str]:
        text = _strip_optional(value)
        if text and text.lower() in {"null", "none"}:
            return None
        return text

    @field_validator("target_model", mode="before")
    @classmethod
    def _lower_target(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _grounding_only_for_images(self) -> "EngineeredPrompt":
        if self.target_model is GenerationTarget.VIDEO and self.grounding_search_query is not None:
            self.grounding_search_query = None
        return self

    def final_prompt(self) -> str:
        """Join the prompt sections into the text sent to image generation."""

        return (
            f"{self.professional_prompt}\n\n"
            f"{self.text_replication_instruction}\n\n"
            f"Negative Prompt: {self.negative_prompt}"
        )


class GenerationConfig(BaseModel):
    """Everything image generation needs, captured so a retry skips the earlier steps."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    text_plates: tuple[ImageReference, ...] = ()
    reference_images: tuple[ImageReference, ...] = ()
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    grounding_image: ImageReference | None = None


# -----------------------------------------------------------------------------
# HTTP payloads
# -----------------------------------------------------------------------------


class ReferenceImageUpload(_CompatModel):
    """A user reference image sent inline as base64 or as a data URL."""

    filename: constr(strip_whitespace=True, min_length=1)
    content_type: Optional[str] = None
    data: constr(strip_whitespace=True, min_length=1)

    def to_reference(self) -> ImageReference:
        if self.data.lower().startswith("data:"):
            reference = ImageReference.from_data_url(self.data, self.filename)
            if self.content_type and reference.mime_type != self.content_type:
                reference = reference.model_copy(update={"mime_type": self.content_type})
            return reference
        return ImageReference.from_base64(
            self.data, self.filename, self.content_type or "image/png"
        )


class GenerateRequest(_CompatModel):
    prompt: str = ""
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    reference_images: list[ReferenceImageUpload] = Field(default_factory=list)


class EngineerRequest(GenerateRequest):
    target: GenerationTarget = GenerationTarget.IMAGE

    @field_validator("prompt")
    @classmethod
    def _require_prompt(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value


class CredentialRequest(_CompatModel):
    api_key: constr(strip_whitespace=True, min_length=1)


class CredentialStatus(_CompatModel):
    configured: bool
    prompt_required: bool
    error: Optional[str] = None


class TextPlatePreview(_CompatModel):
    name: str
    text: str
    data_url: str


class StudioStateResponse(_CompatModel):
    state: PipelineState
    result_url: Optional[str] = Field(
        None, description="Generated image as a data URL, present in the success state."
    )
    error: Optional[str] = None
    credentials: CredentialStatus
    quoted_prompt: Optional[str] = None
    engineered_prompt: Optional[EngineeredPrompt] = None
    text_plates: list[str] = Field(default_factory=list, description="Names of the rendered text plates.")
    can_retry: bool = False
    model: str
