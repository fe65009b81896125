"""Drawing of a single escape path on top of a rendered image."""

from __future__ import annotations

from pathlib import Path

import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont

from .engine import EscapeRecord
from .viewport import Viewport

LIGHTGRAY = (200, 200, 200)
RED = (230, 41, 55)
ORANGE = (255, 161, 0)
SKYBLUE = (102, 191, 255)

_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
)


def _age(index: int, length: int) -> float:
    return min(max(1.0 - index / length, 0.3), 1.0)


def _dot_color(index: int) -> tuple[int, int, int]:
    if index == 0:
        return LIGHTGRAY
    if index == 1:
        return RED
    return ORANGE


def draw_orbit(image: PIL.Image.Image, record: EscapeRecord, viewport: Viewport) -> PIL.Image.Image:
    """Return a copy of ``image`` with the escape path of ``record`` drawn over it.

    Older points fade and shrink. The first point (the origin) is light gray,
    ``c`` is red and later iterates are orange.
    """

    base = image.convert("RGBA")
    layer = PIL.Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = PIL.ImageDraw.Draw(layer)

    points = [viewport.complex_to_screen(complex(z)) for z in record.path]
    length = len(points)
    for i in range(length - 1):
        age = _age(i, length)
        alpha = int(round(age * 255))
        size = 3.0 * age
        start = points[i]
        end = points[i + 1]
        draw.line([start, end], fill=SKYBLUE + (alpha,), width=max(1, int(round(size / 3.0))))
        draw.ellipse(
            [(start[0] - size, start[1] - size), (start[0] + size, start[1] + size)],
            fill=_dot_color(i) + (alpha,),
        )

    return PIL.Image.alpha_composite(base, layer)


def _load_label_font(image: PIL.Image.Image) -> PIL.ImageFont.ImageFont:
    target_size = max(12, int(round(max(min(image.size), 1) * 0.028)))
    for path in _FONT_CANDIDATES:
        font_path = Path(path)
        if font_path.exists():
            try:
                return PIL.ImageFont.truetype(str(font_path), target_size)
            except OSError:
                continue
    return PIL.ImageFont.load_default()


def label_orbit(image: PIL.Image.Image, record: EscapeRecord) -> PIL.Image.Image:
    """Write ``c: <value>`` in the top left corner of a copy of ``image``."""

    c = record.c
    if c is None:
        return image.copy()

    labelled = image.convert("RGBA")
    draw = PIL.ImageDraw.Draw(labelled)
    font = _load_label_font(labelled)
    text = f"c: {c.real:.6g}{c.imag:+.6g}i"
    if record.escape_time is not None:
        text += f"  escapes at {record.escape_time}"
    margin = 6
    draw.text((margin + 1, margin + 1), text, font=font, fill=(0, 0, 0, 160))
    draw.text((margin, margin), text, font=font, fill=(235, 240, 255, 255))
    return labelled
