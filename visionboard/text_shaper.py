"""
Text shaper - sentence casing, greedy wrapping and card sizing

Widths come from real glyph advances when a vector font is loaded, otherwise
from fixed ratios of the font size.
"""
import math
import re
from typing import List, Optional, Tuple

from loguru import logger

from visionboard.errors import NoRenderableContent
from visionboard.fonts import FontSet, VectorFont, get_fonts
from visionboard.models import ShapedText
from visionboard.settings import settings

# Metric estimates when no face is available
FALLBACK_ASCENT = 0.8
FALLBACK_DESCENT = 0.2
FALLBACK_ADVANCE = 0.55
FALLBACK_SPACE = 0.3

LINE_SPACING = 1.1
SHORT_MAX_CHARS = 22
SHORT_MAX_WORDS = 4
SHORT_CARD_MIN_WIDTH = 160
SHRINK_RATIO = 0.8

_STANDALONE_I = re.compile(r"\bi\b")


def sentence_case(text: str) -> str:
    """Collapse whitespace, lowercase, capitalize the first letter, keep "I" upper"""
    s = " ".join(text.split()).lower()
    for idx, ch in enumerate(s):
        if ch.isalpha():
            s = s[:idx] + ch.title() + s[idx + 1:]
            break
    return _STANDALONE_I.sub("I", s)


def is_short_text(text: str) -> bool:
    return len(text) <= SHORT_MAX_CHARS and len(text.split()) <= SHORT_MAX_WORDS


class TextShaper:
    """Measures and wraps affirmation text into tight cards"""

    def __init__(self, fonts: Optional[FontSet] = None):
        self.fonts = fonts if fonts is not None else get_fonts()

    def face(self, tone: str = "soft") -> Optional[VectorFont]:
        return self.fonts.face(tone)

    def measure(self, text: str, size: float, tone: str = "soft") -> float:
        face = self.face(tone)
        if face is not None:
            return face.advance(text, size)
        return sum((FALLBACK_SPACE if ch == " " else FALLBACK_ADVANCE) * size for ch in text)

    def vertical_metrics(self, size: float, tone: str = "soft") -> Tuple[float, float]:
        face = self.face(tone)
        if face is not None:
            return face.ascent(size), face.descent(size)
        return FALLBACK_ASCENT * size, FALLBACK_DESCENT * size

    def base_size(self, short: bool, tone: str, role: Optional[str]) -> int:
        size = settings.short_font_size if short else settings.long_font_size
        if short and tone == "bold":
            size = round(size * 1.15)
        if role == "secondary":
            size = round(size * 0.85)
        return max(settings.min_font_size, size)

    @staticmethod
    def padding(size: int) -> Tuple[int, int]:
        return round(size * 0.6), round(size * 0.45)

    def _fit_word(self, word: str, size: float, tone: str, max_width: float) -> str:
        while len(word) > 1 and self.measure(word, size, tone) > max_width:
            word = word[:-1]
        return word

    def wrap(self, text: str, size: float, tone: str, max_width: float) -> List[str]:
        """Greedy word wrap; over-long words are truncated to fit"""
        lines: List[str] = []
        current = ""
        for word in text.split():
            word = self._fit_word(word, size, tone, max_width)
            candidate = f"{current} {word}" if current else word
            if self.measure(candidate, size, tone) <= max_width:
                current = candidate
            else:
                if current:
                    lines.append(current)
                current = word
        if current:
            lines.append(current)
        return lines

    def _layout(self, text: str, size: int, tone: str, short: bool, card_width: int) -> ShapedText:
        pad_x, pad_y = self.padding(size)
        if short:
            lines = [text]
        else:
            lines = self.wrap(text, size, tone, card_width - 2 * pad_x)

        if not lines or any(not line.strip() for line in lines):
            raise NoRenderableContent(f"no renderable line for {text!r}")

        widths = [self.measure(line, size, tone) for line in lines]
        content_width = max(widths)
        if short:
            card_width = max(SHORT_CARD_MIN_WIDTH, math.ceil(content_width) + 2 * pad_x)

        ascent, descent = self.vertical_metrics(size, tone)
        line_height = (ascent + descent) * LINE_SPACING
        content_height = ascent + (len(lines) - 1) * line_height + descent

        return ShapedText(
            lines=tuple(lines),
            font_size=size,
            content_width=content_width,
            content_height=content_height,
            card_width=card_width,
            card_height=math.ceil(content_height + 2 * pad_y),
            ascent=ascent,
            descent=descent,
            line_height=line_height,
            padding_x=pad_x,
            padding_y=pad_y,
            tone=tone,
            is_short=short,
        )

    def shape(
        self,
        text: str,
        tone: str = "soft",
        max_width_hint: Optional[float] = None,
        role: Optional[str] = None,
    ) -> ShapedText:
        clean = sentence_case(text)
        if not clean:
            raise NoRenderableContent("text is empty")

        short = is_short_text(clean)
        size = self.base_size(short, tone, role)

        hint = max_width_hint if max_width_hint is not None else settings.long_card_max_width
        card_width = int(min(settings.long_card_max_width, max(settings.long_card_min_width, hint)))

        shaped = self._layout(clean, size, tone, short, card_width)
        if shaped.card_height > settings.max_card_height:
            smaller = max(settings.min_font_size, int(size * SHRINK_RATIO))
            logger.debug(
                f"Card height {shaped.card_height} over cap, shrinking font {size} -> {smaller}"
            )
            shaped = self._layout(clean, smaller, tone, short, card_width)
        return shaped
