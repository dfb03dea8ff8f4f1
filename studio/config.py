from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse

DEFAULT_QUOTE_MODEL = "gemini-2.5-flash"
DEFAULT_ENGINEER_MODEL = "gemini-2.5-pro"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
DEFAULT_CREDENTIALS_PATH = Path.home() / ".shen-studio" / "credentials.json"


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value), minimum)
    except (TypeError, ValueError):
        return default


def _as_list(csv: str | None, fallback: List[str]) -> List[str]:
    """Split a CSV string to list with trimming and fallback."""
    if not csv:
        return fallback
    items = [x.strip() for x in csv.split(",") if x.strip()]
    return items or fallback


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value.rstrip("/")

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class ModelConfig:
    quote_model: str = DEFAULT_QUOTE_MODEL
    engineer_model: str = DEFAULT_ENGINEER_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL


@dataclass
class TextPlateConfig:
    font_path: str | None = None
    font_size: int = 96
    margin: int = 48


@dataclass
class GuardConfig:
    max_body_bytes: int
    allowed_mime: List[str] = field(default_factory=list)
    max_reference_images: int = 4

    @classmethod
    def from_env(cls) -> "GuardConfig":
        return cls(
            max_body_bytes=_as_int(os.getenv("MAX_BODY_BYTES"), 20 * 1024 * 1024),
            allowed_mime=_as_list(
                os.getenv("UPLOAD_ALLOWED_MIME"),
                ["image/png", "image/jpeg", "image/webp"],
            ),
            max_reference_images=_as_int(os.getenv("MAX_REFERENCE_IMAGES"), 4, minimum=1),
        )


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    models: ModelConfig
    text_plate: TextPlateConfig
    guard: GuardConfig
    credentials_path: Path
    grounding_strict: bool


@lru_cache()
def get_settings() -> Settings:
    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    models = ModelConfig(
        quote_model=_get("QUOTE_MODEL") or DEFAULT_QUOTE_MODEL,
        engineer_model=_get("ENGINEER_MODEL") or DEFAULT_ENGINEER_MODEL,
        image_model=_get("IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
    )

    text_plate = TextPlateConfig(
        font_path=_get("TEXT_PLATE_FONT") or None,
        font_size=_as_int(_get("TEXT_PLATE_FONT_SIZE"), 96, minimum=8),
        margin=_as_int(_get("TEXT_PLATE_MARGIN"), 48),
    )

    credentials_raw = _get("STUDIO_CREDENTIALS_PATH")
    credentials_path = Path(credentials_raw).expanduser() if credentials_raw else DEFAULT_CREDENTIALS_PATH

    return Settings(
        environment=_get("ENVIRONMENT", "development") or "development",
        allowed_origins=_parse_allowed_origins(_get("ALLOWED_ORIGINS", "*")),
        models=models,
        text_plate=text_plate,
        guard=GuardConfig.from_env(),
        credentials_path=credentials_path,
        grounding_strict=_as_bool(_get("GROUNDING_STRICT"), True),
    )
