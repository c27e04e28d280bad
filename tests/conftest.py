import io
import os
import sys

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from PIL import Image

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from visionboard.fonts import FontSet, VectorFont


def make_jpeg(size=(400, 300), color=(200, 40, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, "JPEG", quality=90)
    return buffer.getvalue()


def make_png(size=(200, 100), color=(255, 0, 0, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, "PNG")
    return buffer.getvalue()


def _rect(pen, x0, y0, x1, y1, clockwise=True):
    points = [(x0, y0), (x0, y1), (x1, y1), (x1, y0)]
    if not clockwise:
        points.reverse()
    pen.moveTo(points[0])
    for point in points[1:]:
        pen.lineTo(point)
    pen.closePath()


def build_box_font(path) -> str:
    """1000 upem face: 'O' is a 400x700 box with a 200x500 hole, advance 600"""
    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder([".notdef", "space", "O"])
    fb.setupCharacterMap({32: "space", ord("O"): "O"})

    notdef = TTGlyphPen(None)
    _rect(notdef, 50, 0, 450, 700)
    ring = TTGlyphPen(None)
    _rect(ring, 100, 0, 500, 700)
    _rect(ring, 200, 100, 400, 600, clockwise=False)

    fb.setupGlyf({
        ".notdef": notdef.glyph(),
        "space": TTGlyphPen(None).glyph(),
        "O": ring.glyph(),
    })
    fb.setupHorizontalMetrics({".notdef": (500, 50), "space": (250, 0), "O": (600, 100)})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": "BoxTest", "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupPost()
    fb.save(str(path))
    return str(path)


@pytest.fixture
def no_fonts() -> FontSet:
    """Metric-estimate mode, independent of installed system fonts"""
    return FontSet()


@pytest.fixture
def box_font(tmp_path) -> VectorFont:
    return VectorFont(build_box_font(tmp_path / "box.ttf"))
