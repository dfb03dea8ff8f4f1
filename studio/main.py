from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from studio.config import get_settings
from studio.middlewares.body_guard import BodyGuardMiddleware
from studio.schemas import (
    CredentialRequest,
    CredentialStatus,
    EngineeredPrompt,
    EngineerRequest,
    GenerateRequest,
    ImageReference,
    ReferenceImageUpload,
    StudioStateResponse,
    TextPlatePreview,
)
from studio.services.credential_store import CredentialStore
from studio.services.errors import MissingCredentialError, PipelineBusyError
from studio.services.genai_client import is_invalid_credential_error
from studio.services.orchestrator import StudioOrchestrator
from studio.services.text_plates import build_text_plates, extract_quoted_spans, render_text_plate

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# align uvicorn loggers with the service level
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("shen-studio").setLevel(LOG_LEVEL)

logger = logging.getLogger("shen-studio")

settings = get_settings()

app = FastAPI(title="SHEN Studio API", version="1.0.0")

app.add_middleware(BodyGuardMiddleware, max_bytes=settings.guard.max_body_bytes)
logger.info("BodyGuardMiddleware ready", extra={"max_body_bytes": settings.guard.max_body_bytes})

allow_all = "*" in settings.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=not allow_all,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

credential_store = CredentialStore(settings.credentials_path)
credential_store.load()
orchestrator = StudioOrchestrator(credential_store, settings)


def get_orchestrator() -> StudioOrchestrator:
    return orchestrator


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "shen-studio", "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


def _decode_references(uploads: list[ReferenceImageUpload]) -> list[ImageReference]:
    guard = settings.guard
    if len(uploads) > guard.max_reference_images:
        raise HTTPException(
            status_code=422,
            detail=f"At most {guard.max_reference_images} reference images are allowed",
        )

    references: list[ImageReference] = []
    for upload in uploads:
        try:
            reference = upload.to_reference()
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        if guard.allowed_mime and reference.mime_type not in guard.allowed_mime:
            raise HTTPException(
                status_code=415,
                detail=f"content_type not allowed: {reference.mime_type}",
            )
        references.append(reference)
    return references


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@app.get("/api/credentials", response_model=CredentialStatus)
def credential_status() -> CredentialStatus:
    return get_orchestrator().credential_status()


@app.put("/api/credentials", response_model=CredentialStatus)
def save_credential(payload: CredentialRequest) -> CredentialStatus:
    try:
        return get_orchestrator().save_credential(payload.api_key)
    except OSError as exc:
        logger.exception("Failed to persist API key")
        raise HTTPException(status_code=500, detail="Unable to store the API key") from exc


@app.delete("/api/credentials", response_model=CredentialStatus)
def clear_credential() -> CredentialStatus:
    return get_orchestrator().clear_credential()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@app.get("/api/state", response_model=StudioStateResponse)
def studio_state() -> StudioStateResponse:
    return get_orchestrator().snapshot()


@app.post("/api/generate", response_model=StudioStateResponse)
async def api_generate(request: Request, payload: GenerateRequest) -> StudioStateResponse:
    references = _decode_references(payload.reference_images)
    studio = get_orchestrator()
    logger.info(
        "generate request received",
        extra={
            "rid": request.headers.get("X-Request-ID"),
            "prompt_len": len(payload.prompt),
            "aspect_ratio": payload.aspect_ratio.value,
            "reference_images": len(references),
        },
    )
    try:
        await studio.generate(payload.prompt, payload.aspect_ratio, references)
    except PipelineBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return studio.snapshot()


@app.post("/api/retry", response_model=StudioStateResponse)
async def api_retry() -> StudioStateResponse:
    studio = get_orchestrator()
    try:
        await studio.retry()
    except PipelineBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return studio.snapshot()


@app.post("/api/start-over", response_model=StudioStateResponse)
def api_start_over() -> StudioStateResponse:
    studio = get_orchestrator()
    studio.start_over()
    return studio.snapshot()


@app.get("/api/result")
def download_result() -> Response:
    result = get_orchestrator().result
    if result is None:
        raise HTTPException(status_code=404, detail="No generated image available")
    headers = {"Content-Disposition": f'attachment; filename="{result.name}"'}
    return Response(content=result.data, media_type=result.mime_type, headers=headers)


@app.post("/api/engineer-prompt", response_model=EngineeredPrompt)
async def api_engineer_prompt(payload: EngineerRequest) -> EngineeredPrompt:
    references = _decode_references(payload.reference_images)
    studio = get_orchestrator()
    try:
        outcome = await studio.engineer_only(
            payload.prompt, payload.target, payload.aspect_ratio, references
        )
    except MissingCredentialError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except Exception as exc:
        if is_invalid_credential_error(exc):
            raise HTTPException(status_code=401, detail=studio.credential_error) from exc
        logger.exception("Prompt engineering failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Prompt engineering failed: {exc}") from exc
    return outcome.engineered


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@app.post("/api/text-plates", response_model=list[TextPlatePreview])
def api_text_plates(payload: GenerateRequest) -> list[TextPlatePreview]:
    """Preview the plates the quoted spans of a prompt would produce."""

    plate_cfg = settings.text_plate
    spans = extract_quoted_spans(payload.prompt)
    plates = build_text_plates(
        payload.prompt,
        font_path=plate_cfg.font_path,
        font_size=plate_cfg.font_size,
        margin=plate_cfg.margin,
    )
    return [
        TextPlatePreview(name=plate.name, text=span, data_url=plate.to_data_url())
        for span, plate in zip(spans, plates)
    ]


@app.get("/debug/text-plate")
def debug_text_plate(text: str = Query(..., description="Text to render")) -> Response:
    """Render a single text plate exactly as the pipeline would."""

    plate_cfg = settings.text_plate
    plate = render_text_plate(
        text,
        font_path=plate_cfg.font_path,
        font_size=plate_cfg.font_size,
        margin=plate_cfg.margin,
    )
    if plate is None:
        raise HTTPException(status_code=400, detail="text must not be empty")
    return Response(content=plate.data, media_type=plate.mime_type)


__all__ = ["app"]
