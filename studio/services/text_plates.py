"""Render quoted prompt text into standalone reference images ("text plates")."""
from __future__ import annotations

import logging
import re
from functools import lru_cache
from io import BytesIO
from typing import Optional

import arabic_reshaper
from bidi.algorithm import get_display
from PIL import Image, ImageDraw, ImageFont, features

from studio.schemas import ImageReference

logger = logging.getLogger(__name__)

PLATE_BACKGROUND = (255, 255, 255)
PLATE_INK = (0, 0, 0)
PLATE_MEDIA_TYPE = "image/png"

RTL_RX = re.compile(
    "[\u0590-\u05FF\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]"
)
QUOTED_SPAN_RX = re.compile('"([^"]*)"|\u201c([^\u201d]*)\u201d|\u00ab([^\u00bb]*)\u00bb')

# Fonts with Arabic-script coverage first; the first one found wins.
FONT_CANDIDATES = (
    "Vazirmatn-Regular.ttf",
    "NotoSansArabic-Regular.ttf",
    "NotoNaskhArabic-Regular.ttf",
    "DejaVuSans.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/noto/NotoSansArabic-Regular.ttf",
    "Tahoma.ttf",
    "Arial.ttf",
)


def plate_name(index: int) -> str:
    return f"text_plate_{index}.png"


def is_rtl(text: str) -> bool:
    return bool(RTL_RX.search(text))


def extract_quoted_spans(prompt: str) -> list[str]:
    """Return the quoted substrings of *prompt* in order of appearance."""

    spans: list[str] = []
    for match in QUOTED_SPAN_RX.finditer(prompt or ""):
        span = next((group for group in match.groups() if group is not None), "")
        span = span.strip()
        if span:
            spans.append(span)
    return spans


@lru_cache(maxsize=1)
def _raqm_available() -> bool:
    available = bool(features.check_feature("raqm"))
    if not available:
        logger.warning(
            "Pillow was built without libraqm; shaping right-to-left plates with python-bidi"
        )
    return available


@lru_cache(maxsize=16)
def _load_font(size: int, font_path: Optional[str] = None) -> ImageFont.FreeTypeFont:
    """Load the configured font, then known Arabic-capable fonts, then Pillow's default."""

    layout_engine = ImageFont.Layout.RAQM if _raqm_available() else ImageFont.Layout.BASIC
    candidates = ((font_path,) if font_path else ()) + FONT_CANDIDATES
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size=size, layout_engine=layout_engine)
        except OSError:
            if candidate == font_path:
                logger.warning("Text plate font %s could not be loaded", font_path)
            continue
    logger.warning("No text plate font found, using Pillow's default font")
    return ImageFont.load_default(size=size)


def _uses_raqm(font: ImageFont.FreeTypeFont) -> bool:
    return getattr(font, "layout_engine", None) == ImageFont.Layout.RAQM


def render_text_plate(
    text: str,
    index: int = 1,
    *,
    font_path: Optional[str] = None,
    font_size: int = 96,
    margin: int = 48,
) -> ImageReference | None:
    """Draw *text* black on white, sized to the text plus *margin*; ``None`` for blank text."""

    cleaned = " ".join((text or "").split())
    if not cleaned:
        return None

    font = _load_font(font_size, font_path)
    draw_text = cleaned
    draw_kwargs: dict[str, str] = {}
    if is_rtl(cleaned):
        if _uses_raqm(font):
            draw_kwargs["direction"] = "rtl"
        else:
            # Basic layout neither joins letters nor reorders runs.
            draw_text = get_display(arabic_reshaper.reshape(cleaned))

    probe = ImageDraw.Draw(Image.new("RGB", (1, 1), PLATE_BACKGROUND))
    left, top, right, bottom = probe.textbbox((0, 0), draw_text, font=font, **draw_kwargs)
    width = max(int(right - left), 1) + 2 * margin
    height = max(int(bottom - top), 1) + 2 * margin

    canvas = Image.new("RGB", (width, height), PLATE_BACKGROUND)
    draw = ImageDraw.Draw(canvas)
    draw.text((margin - left, margin - top), draw_text, font=font, fill=PLATE_INK, **draw_kwargs)

    buffer = BytesIO()
    canvas.save(buffer, format="PNG")
    return ImageReference(name=plate_name(index), mime_type=PLATE_MEDIA_TYPE, data=buffer.getvalue())


def build_text_plates(
    prompt: str,
    *,
    font_path: Optional[str] = None,
    font_size: int = 96,
    margin: int = 48,
) -> list[ImageReference]:
    """Render one plate per quoted span of *prompt*, numbered from 1."""

    plates: list[ImageReference] = []
    for span in extract_quoted_spans(prompt):
        plate = render_text_plate(
            span,
            len(plates) + 1,
            font_path=font_path,
            font_size=font_size,
            margin=margin,
        )
        if plate is not None:
            plates.append(plate)

    logger.debug("Rendered %d text plate(s)", len(plates))
    return plates


__all__ = [
    "build_text_plates",
    "extract_quoted_spans",
    "is_rtl",
    "plate_name",
    "render_text_plate",
]
