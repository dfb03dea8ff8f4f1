import asyncio
import base64

import pytest
from conftest import empty_response, image_response, make_reference, png_bytes

from studio.schemas import AspectRatio
from studio.services.errors import GroundingImageError, MissingCredentialError, NoImageGeneratedError
from studio.services.genai_client import first_inline_image, is_invalid_credential_error
from studio.services.grounding import GROUNDING_FILENAME, fetch_grounding_image
from studio.services.image_generation import RESULT_FILENAME, generate_image


def test_fetch_grounding_image_builds_neutral_photo_prompt(fake_genai) -> None:
    photo = png_bytes((120, 90, 60))
    fake_genai.queue(image_response(photo))

    reference = asyncio.run(fetch_grounding_image("Azadi Tower, Tehran", "key-1", model="image-m"))

    assert reference.name == GROUNDING_FILENAME
    assert reference.data == photo
    call = fake_genai.calls[0]
    prompt = call["contents"][0].parts[0].text
    assert "photograph of Azadi Tower, Tehran" in prompt
    assert "No people, no text, no watermarks" in prompt
    assert call["config"].response_modalities == ["IMAGE"]


def test_fetch_grounding_image_without_image_fails(fake_genai) -> None:
    fake_genai.queue(empty_response())

    with pytest.raises(GroundingImageError, match="Failed to generate grounding image."):
        asyncio.run(fetch_grounding_image("Azadi Tower", "key-1"))


def test_generate_image_orders_plates_before_references(fake_genai) -> None:
    result_bytes = png_bytes((10, 200, 10))
    fake_genai.queue(image_response(result_bytes))
    plate = make_reference("text_plate_1.png", (255, 255, 255))
    grounding = make_reference(GROUNDING_FILENAME, (1, 2, 3))
    user_ref = make_reference("logo.png", (9, 9, 9))

    result = asyncio.run(
        generate_image(
            "final prompt",
            [plate],
            [grounding, user_ref],
            "key-1",
            aspect_ratio=AspectRatio.PORTRAIT,
            model="image-m",
        )
    )

    assert result.name == RESULT_FILENAME
    assert result.data == result_bytes
    call = fake_genai.calls[0]
    parts = call["contents"][0].parts
    assert parts[0].text == "final prompt"
    assert [part.inline_data.data for part in parts[1:]] == [plate.data, grounding.data, user_ref.data]
    assert call["config"].image_config.aspect_ratio == "9:16"
    assert call["config"].response_modalities == ["IMAGE"]


def test_generate_image_without_image_fails(fake_genai) -> None:
    fake_genai.queue(empty_response())

    with pytest.raises(NoImageGeneratedError, match="No image was generated by the model."):
        asyncio.run(generate_image("final prompt", [], [], "key-1"))


def test_generate_image_requires_key(fake_genai) -> None:
    with pytest.raises(MissingCredentialError):
        asyncio.run(generate_image("final prompt", [], [], "  "))
    assert fake_genai.calls == []


def test_first_inline_image_decodes_base64_strings() -> None:
    class _Blob:
        data = base64.b64encode(b"jpeg-bytes").decode("ascii")
        mime_type = "image/jpeg"

    class _Part:
        inline_data = _Blob()

    class _Content:
        parts = [_Part()]

    class _Candidate:
        content = _Content()

    class _Response:
        candidates = [_Candidate()]

    assert first_inline_image(_Response()) == (b"jpeg-bytes", "image/jpeg")


def test_is_invalid_credential_error_markers() -> None:
    assert is_invalid_credential_error(RuntimeError("400 API key not valid. Please pass a valid API key."))
    assert is_invalid_credential_error("reason: API_KEY_INVALID")
    assert not is_invalid_credential_error(RuntimeError("quota exceeded"))
    assert not is_invalid_credential_error(None)
