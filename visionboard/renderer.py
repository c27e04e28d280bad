"""
Element renderer - turns one placement plus content into a positioned RGBA patch

Photos are cover-cropped from the center, optionally zoomed, framed and
rotated with transparent expansion. Text cards are filled from flattened
glyph outlines with even-odd filling at 4x supersampling.
"""
import io
import math
import random
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger
from PIL import Image, ImageChops, ImageDraw, ImageFilter, ImageFont, ImageOps

from visionboard.errors import AssetFetchFailure
from visionboard.fonts import FontSet, get_fonts
from visionboard.models import Placement, RenderedPatch, ShapedText
from visionboard.settings import settings

PALETTES: Dict[str, Dict] = {
    "soft": {
        "fill": (255, 255, 255, 236),
        "text": (44, 44, 44, 255),
        "radius": 22,
    },
    "bold": {
        "fill": (24, 24, 24, 236),
        "text": (255, 255, 255, 255),
        "radius": 22,
    },
}

TEXT_PATCH_PADDING = 0.2

# Polaroid card, sized against a 620px wide reference card
POLAROID_REFERENCE_WIDTH = 620
POLAROID_BORDER = 0.06
POLAROID_CORNER_RADIUS = 10
POLAROID_SHADOW_OFFSET = 8
POLAROID_SHADOW_BLUR = 12
POLAROID_SHADOW_OPACITY = 0.15
POLAROID_MAX_STRIP = 0.4
CAPTION_INK = (17, 17, 17, 255)


def choose_zoomed(count: int, fraction: float, seed: Optional[int] = None) -> Set[int]:
    """Seeded pick of which item indices get the zoom pass"""
    k = int(round(count * fraction))
    if k <= 0:
        return set()
    return set(random.Random(seed).sample(range(count), min(k, count)))


class ElementRenderer:
    """Pure rendering of photos and text cards; fetching belongs to the caller"""

    def __init__(self, fonts: Optional[FontSet] = None, supersample: int = 4):
        self.fonts = fonts if fonts is not None else get_fonts()
        self.supersample = supersample

    # ---- photos -------------------------------------------------------

    @staticmethod
    def decode_photo(data: bytes, item_index: Optional[int] = None) -> Image.Image:
        """Decode bytes to RGB, honoring EXIF orientation"""
        try:
            img = Image.open(io.BytesIO(data))
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")
            return img
        except Exception as e:
            raise AssetFetchFailure(f"could not decode photo: {e}", item_index=item_index) from e

    @staticmethod
    def cover_crop(img: Image.Image, target_size: Tuple[int, int]) -> Image.Image:
        """Scale to cover the target, then crop from the center"""
        target_width, target_height = target_size
        img_width, img_height = img.size

        scale = max(target_width / img_width, target_height / img_height)
        new_width = max(target_width, math.ceil(img_width * scale))
        new_height = max(target_height, math.ceil(img_height * scale))
        img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

        left = (new_width - target_width) // 2
        top = (new_height - target_height) // 2
        return img.crop((left, top, left + target_width, top + target_height))

    @staticmethod
    def zoom(img: Image.Image, factor: float) -> Image.Image:
        """Enlarge by ``factor`` and crop back to the original size"""
        if factor <= 1.0:
            return img
        width, height = img.size
        enlarged = img.resize(
            (math.ceil(width * factor), math.ceil(height * factor)), Image.Resampling.LANCZOS
        )
        left = (enlarged.width - width) // 2
        top = (enlarged.height - height) // 2
        return enlarged.crop((left, top, left + width, top + height))

    @staticmethod
    def polaroid_frame(photo: Image.Image, size: Tuple[int, int], border: int) -> Image.Image:
        """White instant-photo card; the photo sits ``border`` in from the top and sides"""
        frame = Image.new("RGBA", size, (255, 255, 255, 255))
        frame.paste(photo, (border, border))
        return frame

    @staticmethod
    def rounded_corners(img: Image.Image, radius: int) -> Image.Image:
        mask = Image.new("L", img.size, 0)
        draw = ImageDraw.Draw(mask)
        draw.rounded_rectangle([0, 0, img.size[0] - 1, img.size[1] - 1], radius, fill=255)

        img = img.convert("RGBA")
        img.putalpha(ImageChops.multiply(img.getchannel("A"), mask))
        return img

    @staticmethod
    def drop_shadow(img: Image.Image, offset: int, blur: int, radius: int,
                    opacity: float = POLAROID_SHADOW_OPACITY) -> Image.Image:
        """Blurred shadow down and to the right, on a margin equal on every side"""
        margin = offset + 2 * blur
        size = (img.width + 2 * margin, img.height + 2 * margin)
        shadow = Image.new("RGBA", size, (0, 0, 0, 0))
        left = top = margin + offset
        ImageDraw.Draw(shadow).rounded_rectangle(
            [left, top, left + img.width - 1, top + img.height - 1],
            radius,
            fill=(0, 0, 0, round(255 * opacity)),
        )
        shadow = shadow.filter(ImageFilter.GaussianBlur(blur))
        shadow.alpha_composite(img, (margin, margin))
        return shadow

    def _draw_caption(self, card: Image.Image, caption: ShapedText, top: int, strip: int):
        """Caption lines centered in the white strip under the photo"""
        ox = round((card.width - caption.card_width) / 2)
        oy = round(top + (strip - caption.content_height) / 2 - caption.padding_y)
        mask = self.text_mask(caption, card.size, (ox, oy))
        card.paste(Image.new("RGBA", card.size, CAPTION_INK), (0, 0), mask)

    def polaroid_card(
        self,
        image: Image.Image,
        size: Tuple[int, int],
        zoom: bool = False,
        caption: Optional[ShapedText] = None,
    ) -> Image.Image:
        """Framed photo with the caption in the bottom strip, rounded and shadowed"""
        w, h = size
        scale = w / POLAROID_REFERENCE_WIDTH
        border = max(6, round(w * POLAROID_BORDER))
        strip = 3 * border
        if caption is not None:
            strip = max(strip, math.ceil(caption.content_height) + 2 * round(0.6 * border))
        strip = min(strip, max(1, int(h * POLAROID_MAX_STRIP)))

        inner = (max(1, w - 2 * border), max(1, h - border - strip))
        photo = self.cover_crop(image, inner)
        if zoom:
            photo = self.zoom(photo, settings.zoom_factor)
        card = self.polaroid_frame(photo, size, border)
        if caption is not None:
            photo_bottom = border + inner[1]
            self._draw_caption(card, caption, photo_bottom, h - photo_bottom)

        radius = max(2, round(POLAROID_CORNER_RADIUS * scale))
        card = self.rounded_corners(card, radius)
        return self.drop_shadow(
            card,
            offset=max(2, round(POLAROID_SHADOW_OFFSET * scale)),
            blur=max(2, round(POLAROID_SHADOW_BLUR * scale)),
            radius=radius,
        )

    @staticmethod
    def _rotate(patch: Image.Image, rotation: float) -> Image.Image:
        if not rotation:
            return patch
        # PIL rotates counter-clockwise; placements are clockwise-positive
        return patch.rotate(
            -rotation, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=(0, 0, 0, 0)
        )

    @staticmethod
    def _centered(patch: Image.Image, placement: Placement) -> RenderedPatch:
        x, y, w, h = placement.snapped()
        left = int(round(x + w / 2 - patch.width / 2))
        top = int(round(y + h / 2 - patch.height / 2))
        return RenderedPatch(image=patch, left=left, top=top, placement=placement)

    def render_image(
        self,
        image: Image.Image,
        placement: Placement,
        zoom: bool = False,
        polaroid: bool = False,
        caption: Optional[ShapedText] = None,
    ) -> RenderedPatch:
        _, _, w, h = placement.snapped()

        if polaroid:
            patch = self.polaroid_card(image, (w, h), zoom=zoom, caption=caption)
        else:
            photo = self.cover_crop(image, (w, h))
            if zoom:
                photo = self.zoom(photo, settings.zoom_factor)
            patch = photo.convert("RGBA")

        patch = self._rotate(patch, placement.rotation)
        return self._centered(patch, placement)

    # ---- text ---------------------------------------------------------

    @staticmethod
    def _xor_polygon(mask: Image.Image, polygon: List[Tuple[float, float]]):
        """Toggle the pixels inside ``polygon`` (even-odd union across contours)"""
        xs = [p[0] for p in polygon]
        ys = [p[1] for p in polygon]
        x0 = max(0, int(math.floor(min(xs))))
        y0 = max(0, int(math.floor(min(ys))))
        x1 = min(mask.width, int(math.ceil(max(xs))) + 1)
        y1 = min(mask.height, int(math.ceil(max(ys))) + 1)
        if x1 <= x0 or y1 <= y0:
            return

        layer = Image.new("1", (x1 - x0, y1 - y0), 0)
        ImageDraw.Draw(layer).polygon([(px - x0, py - y0) for px, py in polygon], fill=1)
        region = mask.crop((x0, y0, x1, y1))
        mask.paste(ImageChops.logical_xor(region, layer), (x0, y0))

    def _line_origins(self, shaped: ShapedText, offset: Tuple[int, int], widths: List[float]) -> List[Tuple[float, float]]:
        ox, oy = offset
        inner_width = shaped.card_width - 2 * shaped.padding_x
        return [
            (
                ox + shaped.padding_x + (inner_width - line_width) / 2,
                oy + shaped.padding_y + shaped.ascent + i * shaped.line_height,
            )
            for i, line_width in enumerate(widths)
        ]

    def text_mask(self, shaped: ShapedText, size: Tuple[int, int], offset: Tuple[int, int]) -> Image.Image:
        face = self.fonts.face(shaped.tone)
        if face is None:
            return self._fallback_text_mask(shaped, size, offset)

        widths = [face.advance(line, shaped.font_size) for line in shaped.lines]
        origins = self._line_origins(shaped, offset, widths)
        return self._vector_mask(face, shaped.font_size, size, list(zip(shaped.lines, origins)))

    def _vector_mask(self, face, font_size: float, size: Tuple[int, int], runs) -> Image.Image:
        """Fill (text, (x, baseline)) runs into an L mask via supersampling"""
        ss = self.supersample
        big = Image.new("1", (size[0] * ss, size[1] * ss), 0)
        for text, (x, baseline) in runs:
            for polygon in face.glyph_polygons(text, font_size, x, baseline):
                self._xor_polygon(big, [(px * ss, py * ss) for px, py in polygon])
        return big.convert("L").resize(size, Image.Resampling.BOX)

    def _fallback_text_mask(self, shaped: ShapedText, size: Tuple[int, int], offset: Tuple[int, int]) -> Image.Image:
        font = ImageFont.load_default(size=shaped.font_size)
        mask = Image.new("L", size, 0)
        draw = ImageDraw.Draw(mask)
        widths = [draw.textlength(line, font=font) for line in shaped.lines]
        for line, (x, baseline) in zip(shaped.lines, self._line_origins(shaped, offset, widths)):
            draw.text((x, baseline - shaped.ascent), line, fill=255, font=font)
        return mask

    def render_text(self, shaped: ShapedText, placement: Placement, palette: Optional[Dict] = None) -> RenderedPatch:
        palette = palette or PALETTES.get(shaped.tone, PALETTES["soft"])
        card_w, card_h = shaped.card_width, shaped.card_height
        pad = round(max(card_w, card_h) * TEXT_PATCH_PADDING)
        size = (card_w + 2 * pad, card_h + 2 * pad)

        patch = Image.new("RGBA", size, (0, 0, 0, 0))
        ImageDraw.Draw(patch).rounded_rectangle(
            [pad, pad, pad + card_w - 1, pad + card_h - 1],
            palette["radius"],
            fill=palette["fill"],
        )

        mask = self.text_mask(shaped, size, (pad, pad))
        ink = Image.new("RGBA", size, (0, 0, 0, 0))
        ink.paste(Image.new("RGBA", size, palette["text"]), (0, 0), mask)
        patch = Image.alpha_composite(patch, ink)

        patch = self._rotate(patch, placement.rotation)
        logger.debug(f"text card {card_w}x{card_h} ({len(shaped.lines)} lines) -> patch {patch.size}")
        return self._centered(patch, placement)

    def render_line(self, text: str, font_size: int, color: Tuple[int, int, int], tone: str = "bold") -> Tuple[Image.Image, int]:
        """One line of uncarded text; returns the RGBA image and its baseline row"""
        margin = 2
        face = self.fonts.face(tone)
        if face is not None:
            width = face.advance(text, font_size)
            ascent, descent = face.ascent(font_size), face.descent(font_size)
        else:
            font = ImageFont.load_default(size=font_size)
            width = font.getlength(text)
            ascent, descent = 0.8 * font_size, 0.2 * font_size

        size = (math.ceil(width) + 2 * margin, math.ceil(ascent + descent) + 2 * margin)
        baseline = margin + ascent
        if face is not None:
            mask = self._vector_mask(face, font_size, size, [(text, (margin, baseline))])
        else:
            mask = Image.new("L", size, 0)
            ImageDraw.Draw(mask).text((margin, margin), text, fill=255, font=font)

        line = Image.new("RGBA", size, tuple(color) + (255,))
        line.putalpha(mask)
        return line, int(round(baseline))
