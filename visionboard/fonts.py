"""
Vector font access

Faces are read with fontTools: advances come from hmtx in font units, the
vertical metrics from hhea, and glyph outlines are flattened into polygons
so the renderer can fill them itself.
"""
import os
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from fontTools.pens.basePen import BasePen
from fontTools.ttLib import TTFont
from loguru import logger

from visionboard.errors import FontLoadFailure
from visionboard.settings import settings

Point = Tuple[float, float]
Polygon = List[Point]

FONT_CANDIDATES: Dict[str, List[str]] = {
    "regular": [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
        "/Library/Fonts/Arial.ttf",
        "C:/Windows/Fonts/arial.ttf",
    ],
    "bold": [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
        "/Library/Fonts/Arial Bold.ttf",
        "C:/Windows/Fonts/arialbd.ttf",
    ],
}

CURVE_STEPS = 8


class FlatteningPen(BasePen):
    """Collects closed polygons, approximating curves with line segments"""

    def __init__(self, glyph_set, steps: int = CURVE_STEPS):
        super().__init__(glyph_set)
        self.steps = steps
        self.contours: List[Polygon] = []
        self._current: Polygon = []

    def flush(self):
        if len(self._current) >= 3:
            self.contours.append(self._current)
        self._current = []

    def _moveTo(self, pt):
        self.flush()
        self._current = [pt]

    def _lineTo(self, pt):
        self._current.append(pt)

    def _curveToOne(self, pt1, pt2, pt3):
        x0, y0 = self._getCurrentPoint()
        for i in range(1, self.steps + 1):
            t = i / self.steps
            mt = 1 - t
            x = mt ** 3 * x0 + 3 * mt ** 2 * t * pt1[0] + 3 * mt * t ** 2 * pt2[0] + t ** 3 * pt3[0]
            y = mt ** 3 * y0 + 3 * mt ** 2 * t * pt1[1] + 3 * mt * t ** 2 * pt2[1] + t ** 3 * pt3[1]
            self._current.append((x, y))

    def _qCurveToOne(self, pt1, pt2):
        x0, y0 = self._getCurrentPoint()
        for i in range(1, self.steps + 1):
            t = i / self.steps
            mt = 1 - t
            x = mt ** 2 * x0 + 2 * mt * t * pt1[0] + t ** 2 * pt2[0]
            y = mt ** 2 * y0 + 2 * mt * t * pt1[1] + t ** 2 * pt2[1]
            self._current.append((x, y))

    def _closePath(self):
        self.flush()

    def _endPath(self):
        self.flush()


class VectorFont:
    """One TrueType/OpenType face"""

    def __init__(self, path: str, font_number: Optional[int] = None):
        self.path = path
        if font_number is None:
            self.tt = TTFont(path, lazy=True)
        else:
            self.tt = TTFont(path, fontNumber=font_number, lazy=True)
        self.cmap = self.tt.getBestCmap() or {}
        self.glyph_set = self.tt.getGlyphSet()
        self.units_per_em = self.tt["head"].unitsPerEm
        hhea = self.tt["hhea"]
        self._ascent = hhea.ascent
        self._descent = abs(hhea.descent)
        self._hmtx = self.tt["hmtx"]
        self._outlines: Dict[str, List[Polygon]] = {}
        # lazy glyf expansion in fontTools is not thread-safe
        self._lock = threading.Lock()

    def __repr__(self):
        return f"VectorFont({os.path.basename(self.path)!r})"

    def _scale(self, size: float) -> float:
        return size / self.units_per_em

    def glyph_name(self, ch: str) -> str:
        return self.cmap.get(ord(ch), ".notdef")

    def _advance_units(self, name: str) -> int:
        try:
            return self._hmtx[name][0]
        except KeyError:
            return self.units_per_em // 2

    def advance(self, text: str, size: float) -> float:
        """Total advance width of ``text`` in pixels"""
        units = sum(self._advance_units(self.glyph_name(ch)) for ch in text)
        return units * self._scale(size)

    def ascent(self, size: float) -> float:
        return self._ascent * self._scale(size)

    def descent(self, size: float) -> float:
        return self._descent * self._scale(size)

    def _outline(self, name: str) -> List[Polygon]:
        with self._lock:
            if name not in self._outlines:
                pen = FlatteningPen(self.glyph_set)
                try:
                    self.glyph_set[name].draw(pen)
                except KeyError:
                    pass
                pen.flush()
                self._outlines[name] = pen.contours
            return self._outlines[name]

    def glyph_polygons(self, text: str, size: float, origin_x: float, baseline_y: float) -> List[Polygon]:
        """Flattened outlines of ``text`` in pixel space, y pointing down"""
        scale = self._scale(size)
        polygons: List[Polygon] = []
        pen_x = 0
        for ch in text:
            name = self.glyph_name(ch)
            for contour in self._outline(name):
                polygons.append([
                    (origin_x + (pen_x + fx) * scale, baseline_y - fy * scale)
                    for fx, fy in contour
                ])
            pen_x += self._advance_units(name)
        return polygons


def open_font(path: str) -> Optional[VectorFont]:
    """Open a face; collections are probed on their first faces"""
    if not path or not os.path.exists(path):
        return None
    if path.lower().endswith(".ttc"):
        for idx in (0, 1, 2, 3):
            try:
                return VectorFont(path, font_number=idx)
            except Exception:
                continue
        return None
    try:
        return VectorFont(path)
    except Exception as e:
        logger.warning(f"Font {path} could not be parsed: {e}")
        return None


def _discover(preferred: Optional[str], weight: str) -> Optional[VectorFont]:
    paths = ([preferred] if preferred else []) + FONT_CANDIDATES[weight]
    for path in paths:
        font = open_font(path)
        if font is not None:
            return font
    return None


@dataclass
class FontSet:
    regular: Optional[VectorFont] = None
    bold: Optional[VectorFont] = None

    @property
    def available(self) -> bool:
        return self.regular is not None or self.bold is not None

    def face(self, tone: str = "soft") -> Optional[VectorFont]:
        if tone == "bold" and self.bold is not None:
            return self.bold
        return self.regular or self.bold


def load_fonts(font_path: Optional[str] = None, bold_font_path: Optional[str] = None) -> FontSet:
    """Configured paths first, then known system locations"""
    fonts = FontSet(
        regular=_discover(font_path, "regular"),
        bold=_discover(bold_font_path, "bold"),
    )
    if not fonts.available:
        failure = FontLoadFailure("no vector font found; using metric estimates")
        logger.warning(f"{failure.code}: {failure.message}")
    else:
        logger.info(f"Fonts loaded: regular={fonts.regular}, bold={fonts.bold}")
    return fonts


_fonts: Optional[FontSet] = None


def get_fonts() -> FontSet:
    global _fonts
    if _fonts is None:
        _fonts = load_fonts(settings.font_path, settings.bold_font_path)
    return _fonts
