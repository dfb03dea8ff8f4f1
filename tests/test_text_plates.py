from io import BytesIO

from PIL import Image, ImageDraw

from studio.services.text_plates import (
    build_text_plates,
    extract_quoted_spans,
    is_rtl,
    plate_name,
    render_text_plate,
)


def _open(data: bytes) -> Image.Image:
    image = Image.open(BytesIO(data))
    image.load()
    return image


def test_extract_quoted_spans_in_order() -> None:
    prompt = 'A bakery sign reading "Fresh Bread" above a door marked "OPEN"'
    assert extract_quoted_spans(prompt) == ["Fresh Bread", "OPEN"]


def test_extract_quoted_spans_handles_typographic_quotes_and_blanks() -> None:
    prompt = "Poster with “Hello”, «سلام» and an empty \"  \" pair"
    assert extract_quoted_spans(prompt) == ["Hello", "سلام"]


def test_extract_quoted_spans_keeps_duplicates() -> None:
    assert extract_quoted_spans('"SALE" and again "SALE"') == ["SALE", "SALE"]


def test_extract_quoted_spans_without_quotes() -> None:
    assert extract_quoted_spans("a red balloon") == []
    assert extract_quoted_spans("") == []


def test_is_rtl_detects_persian_and_arabic() -> None:
    assert is_rtl("تهران")
    assert is_rtl("Shop مغازه")
    assert not is_rtl("STOP")


def test_render_text_plate_returns_png_with_margins() -> None:
    plate = render_text_plate("STOP", 1, font_size=48, margin=24)

    assert plate is not None
    assert plate.name == "text_plate_1.png"
    assert plate.mime_type == "image/png"
    assert plate.data.startswith(b"\x89PNG")

    image = _open(plate.data)
    assert image.mode == "RGB"
    width, height = image.size
    assert width > 2 * 24
    assert height > 2 * 24
    # background stays white at the margin, ink is dark in the middle
    assert image.getpixel((0, 0)) == (255, 255, 255)
    assert image.convert("L").getextrema()[0] < 128


def test_render_text_plate_is_deterministic() -> None:
    first = render_text_plate("STOP", font_size=40, margin=10)
    second = render_text_plate("STOP", font_size=40, margin=10)
    assert first is not None and second is not None
    assert first.data == second.data


def test_render_text_plate_blank_text_returns_none() -> None:
    assert render_text_plate("") is None
    assert render_text_plate("   \n\t ") is None


def test_render_text_plate_handles_persian_text() -> None:
    plate = render_text_plate("برج آزادی", 2, font_size=48, margin=24)

    assert plate is not None
    assert plate.name == plate_name(2)
    image = _open(plate.data)
    assert image.size[0] > 48


def test_build_text_plates_numbers_plates_per_span() -> None:
    plates = build_text_plates('A stop sign that says "STOP" next to a "SLOW" sign', font_size=32, margin=8)

    assert [plate.name for plate in plates] == ["text_plate_1.png", "text_plate_2.png"]
    assert all(plate.data.startswith(b"\x89PNG") for plate in plates)


def test_build_text_plates_without_quotes_is_empty() -> None:
    assert build_text_plates("a red balloon floating in the sky") == []


def _render_with_basic_layout(monkeypatch, text: str) -> list[str]:
    drawn: list[str] = []
    original = ImageDraw.ImageDraw.text

    def _spy(self, xy, content, *args, **kwargs):
        drawn.append(content)
        return original(self, xy, content, *args, **kwargs)

    monkeypatch.setattr("studio.services.text_plates._uses_raqm", lambda font: False)
    monkeypatch.setattr(ImageDraw.ImageDraw, "text", _spy)
    assert render_text_plate(text, font_size=32, margin=8) is not None
    return drawn


def test_basic_layout_keeps_numerals_in_reading_order(monkeypatch) -> None:
    drawn = _render_with_basic_layout(monkeypatch, "تخفیف ۲۴ درصد")

    assert len(drawn) == 1
    assert "۲۴" in drawn[0]
    assert "۴۲" not in drawn[0]


def test_basic_layout_keeps_embedded_latin_words(monkeypatch) -> None:
    drawn = _render_with_basic_layout(monkeypatch, "کافه Roya 2024")

    assert "Roya" in drawn[0]
    assert "2024" in drawn[0]


def test_basic_layout_joins_arabic_letters(monkeypatch) -> None:
    drawn = _render_with_basic_layout(monkeypatch, "سلام")

    # presentation forms replace the isolated logical letters
    assert drawn[0] != "سلام"[::-1]
    assert all(0xFB50 <= ord(char) <= 0xFEFF for char in drawn[0])
