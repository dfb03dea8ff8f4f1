from __future__ import annotations

import base64

import pytest
from conftest import make_settings, png_bytes
from fastapi import FastAPI
from fastapi.testclient import TestClient

from studio import main
from studio.middlewares.body_guard import BodyGuardMiddleware
from studio.schemas import EngineeredPrompt, ImageReference
from studio.services.credential_store import CredentialStore
from studio.services.errors import PromptEngineeringError
from studio.services.orchestrator import INVALID_KEY_MESSAGE, PipelineServices, StudioOrchestrator

ENGINEERED = EngineeredPrompt(
    analysis_notes="Sign with text.",
    professional_prompt="A bakery storefront.",
    text_replication_instruction="Copy text_plate_1.png.",
    negative_prompt="blur",
)
RESULT = ImageReference(name="shen_studio_image.png", data=png_bytes((1, 2, 3)))


async def _quote(prompt, api_key, **kwargs):
    return prompt


async def _engineer(prompt, target, plates, refs, aspect_ratio, api_key, **kwargs):
    return ENGINEERED.model_copy(update={"target_model": target})


async def _ground(query, api_key, **kwargs):
    raise AssertionError("grounding not expected")


async def _generate(prompt, plates, refs, api_key, **kwargs):
    return RESULT


def _services(**overrides) -> PipelineServices:
    services = PipelineServices(
        add_quotes=_quote,
        engineer=_engineer,
        fetch_grounding=_ground,
        generate=_generate,
    )
    for name, value in overrides.items():
        setattr(services, name, value)
    return services


@pytest.fixture
def studio(tmp_path, monkeypatch) -> StudioOrchestrator:
    settings = make_settings(tmp_path)
    store = CredentialStore(settings.credentials_path, use_env=False)
    orchestrator = StudioOrchestrator(store, settings, _services())
    monkeypatch.setattr(main, "orchestrator", orchestrator)
    return orchestrator


@pytest.fixture
def client(studio) -> TestClient:
    return TestClient(main.app)


def _upload(content_type: str = "image/png") -> dict:
    return {
        "filename": "logo.png",
        "content_type": content_type,
        "data": "data:image/png;base64," + base64.b64encode(png_bytes()).decode("ascii"),
    }


def test_health_and_root(client) -> None:
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/").status_code == 200
    assert client.head("/").status_code == 200


def test_credentials_lifecycle(client, studio) -> None:
    status = client.get("/api/credentials").json()
    assert status == {"configured": False, "prompt_required": True, "error": None}

    saved = client.put("/api/credentials", json={"api_key": "abc"}).json()
    assert saved["configured"] is True
    assert studio.credentials.api_key == "abc"

    cleared = client.delete("/api/credentials").json()
    assert cleared["configured"] is False


def test_blank_key_is_rejected(client) -> None:
    assert client.put("/api/credentials", json={"api_key": "   "}).status_code == 422


def test_generate_without_key_asks_for_one(client) -> None:
    body = client.post("/api/generate", json={"prompt": "a cat"}).json()

    assert body["state"] == "idle"
    assert body["credentials"]["prompt_required"] is True
    assert body["credentials"]["error"]


def test_generate_and_download(client, studio) -> None:
    studio.save_credential("abc")

    response = client.post(
        "/api/generate",
        json={"prompt": 'A bakery sign "NAN"', "aspect_ratio": "16:9", "reference_images": [_upload()]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "success"
    assert body["result_url"].startswith("data:image/png;base64,")
    assert body["text_plates"] == ["text_plate_1.png"]
    assert body["engineered_prompt"]["professional_prompt"] == "A bakery storefront."
    assert studio.last_config.aspect_ratio.value == "16:9"
    assert [ref.name for ref in studio.last_config.reference_images] == ["logo.png"]

    download = client.get("/api/result")
    assert download.status_code == 200
    assert download.content == RESULT.data
    assert 'filename="shen_studio_image.png"' in download.headers["content-disposition"]

    again = client.post("/api/retry").json()
    assert again["state"] == "success"

    reset = client.post("/api/start-over").json()
    assert reset["state"] == "idle"
    assert client.get("/api/result").status_code == 404


def test_generate_rejects_disallowed_mime(client, studio) -> None:
    studio.save_credential("abc")
    upload = _upload("image/gif")

    response = client.post("/api/generate", json={"prompt": "x", "reference_images": [upload]})

    assert response.status_code == 415


def test_generate_rejects_bad_payload(client, studio) -> None:
    studio.save_credential("abc")
    upload = {"filename": "x.png", "data": "data:image/png;base64,@@@"}

    response = client.post("/api/generate", json={"prompt": "x", "reference_images": [upload]})

    assert response.status_code == 422


def test_generate_rejects_too_many_references(client, studio) -> None:
    studio.save_credential("abc")
    limit = main.settings.guard.max_reference_images

    response = client.post(
        "/api/generate",
        json={"prompt": "x", "reference_images": [_upload() for _ in range(limit + 1)]},
    )

    assert response.status_code == 422


def test_engineer_prompt_endpoint(client, studio) -> None:
    studio.save_credential("abc")

    response = client.post("/api/engineer-prompt", json={"prompt": "a drone shot", "target": "video"})

    assert response.status_code == 200
    assert response.json()["target_model"] == "video"
    assert studio.state.value == "idle"


def test_engineer_prompt_requires_key(client) -> None:
    assert client.post("/api/engineer-prompt", json={"prompt": "x"}).status_code == 401


def test_engineer_prompt_invalid_key(client, studio) -> None:
    studio.save_credential("abc")

    async def _reject(*args, **kwargs):
        raise RuntimeError("API key not valid. Please pass a valid API key.")

    studio.services.engineer = _reject

    response = client.post("/api/engineer-prompt", json={"prompt": "x"})

    assert response.status_code == 401
    assert response.json()["detail"] == INVALID_KEY_MESSAGE
    assert studio.credentials.api_key is None


def test_engineer_prompt_bad_model_reply(client, studio) -> None:
    studio.save_credential("abc")

    async def _garbled(*args, **kwargs):
        raise PromptEngineeringError("The AI returned an invalid response. Raw response: ???", "???")

    studio.services.engineer = _garbled

    response = client.post("/api/engineer-prompt", json={"prompt": "x"})

    assert response.status_code == 502
    assert "Raw response: ???" in response.json()["detail"]


def test_text_plate_preview(client) -> None:
    response = client.post("/api/text-plates", json={"prompt": 'Signs "OPEN" and "CLOSED"'})

    body = response.json()
    assert [item["text"] for item in body] == ["OPEN", "CLOSED"]
    assert body[0]["data_url"].startswith("data:image/png;base64,")


def test_debug_text_plate(client) -> None:
    response = client.get("/debug/text-plate", params={"text": "STOP"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")

    assert client.get("/debug/text-plate", params={"text": "  "}).status_code == 400


def test_body_guard_rejects_large_payloads() -> None:
    app = FastAPI()
    app.add_middleware(BodyGuardMiddleware, max_bytes=64)

    @app.post("/api/echo")
    async def echo(payload: dict) -> dict:
        return payload

    client = TestClient(app)

    assert client.post("/api/echo", json={"a": 1}).json() == {"a": 1}

    response = client.post("/api/echo", json={"blob": "x" * 200})
    assert response.status_code == 413
    assert response.json()["error"] == "REQUEST_BODY_TOO_LARGE"
