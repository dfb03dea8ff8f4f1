from __future__ import annotations

import json
from io import BytesIO
from pathlib import Path
from typing import Any

import pytest
from google.genai import types
from PIL import Image

from studio.config import GuardConfig, ModelConfig, Settings, TextPlateConfig
from studio.schemas import ImageReference


def png_bytes(color: tuple[int, int, int] = (200, 30, 30), size: tuple[int, int] = (16, 16)) -> bytes:
    image = Image.new("RGB", size, color)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def make_reference(name: str = "ref.png", color: tuple[int, int, int] = (200, 30, 30)) -> ImageReference:
    return ImageReference(name=name, mime_type="image/png", data=png_bytes(color))


def text_response(text: str) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[types.Part(text=text)]))]
    )


def json_response(payload: dict[str, Any]) -> types.GenerateContentResponse:
    return text_response(json.dumps(payload))


def image_response(data: bytes, mime_type: str = "image/png") -> types.GenerateContentResponse:
    part = types.Part(inline_data=types.Blob(data=data, mime_type=mime_type))
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[part]))]
    )


def empty_response() -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[types.Part(text="I can't draw that.")]))]
    )


def make_settings(tmp_path: Path, *, grounding_strict: bool = True) -> Settings:
    return Settings(
        environment="test",
        allowed_origins=["*"],
        models=ModelConfig(quote_model="quote-m", engineer_model="engineer-m", image_model="image-m"),
        text_plate=TextPlateConfig(font_path=None, font_size=48, margin=24),
        guard=GuardConfig(max_body_bytes=1024 * 1024, allowed_mime=["image/png", "image/jpeg"]),
        credentials_path=tmp_path / "credentials.json",
        grounding_strict=grounding_strict,
    )


class FakeModels:
    """Stands in for ``client.aio.models``; replays queued responses in order."""

    def __init__(self) -> None:
        self.responses: list[Any] = []
        self.calls: list[dict[str, Any]] = []
        self.api_keys: list[str] = []

    def queue(self, *responses: Any) -> "FakeModels":
        self.responses.extend(responses)
        return self

    async def generate_content(self, *, model: str, contents: Any, config: Any = None) -> Any:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self.responses:
            raise AssertionError("unexpected generate_content call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeClient:
    def __init__(self, models: FakeModels) -> None:
        self.aio = type("Aio", (), {})()
        self.aio.models = models


@pytest.fixture
def fake_genai(monkeypatch) -> FakeModels:
    models = FakeModels()

    def _client(*, api_key: str) -> FakeClient:
        models.api_keys.append(api_key)
        return FakeClient(models)

    monkeypatch.setattr("studio.services.genai_client.genai.Client", _client)
    return models
