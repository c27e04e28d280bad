"""
Frame composer - owns the final canvas

Paints background, inner panel, title, patches (ascending z) and logo,
then encodes the raster as a high quality JPEG.
"""
import io
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from loguru import logger
from PIL import Image, ImageDraw

from visionboard.errors import EncodingFailure
from visionboard.layout import A4_CANVAS, A4_FRAME, inner_board_rect
from visionboard.models import Canvas, CompositionResult, PlacementKind, RenderedPatch, parse_color
from visionboard.renderer import ElementRenderer
from visionboard.settings import settings

Box = Tuple[int, int, int, int]


class PaintOrder(str, Enum):
    PHOTOS_FIRST = "photos_first"  # background, panel, title, photos, text, logo
    LOGO_FIRST = "logo_first"      # background, panel, logo, photos, text


class LogoAnchor(str, Enum):
    BOTTOM_RIGHT = "bottom_right"
    TOP_LEFT = "top_left"


@dataclass(frozen=True)
class PanelSpec:
    box: Box
    color: str = A4_FRAME["inner_bg"]
    radius: int = A4_FRAME["inner_radius"]


@dataclass(frozen=True)
class TitleSpec:
    text: str
    font_size: int = 72
    color: str = "#FFFFFF"
    x: int = A4_FRAME["outer_pad_x"]
    baseline_y: int = 130


@dataclass(frozen=True)
class LogoSpec:
    data: bytes
    width_ratio: float = 0.10
    anchor: LogoAnchor = LogoAnchor.BOTTOM_RIGHT
    offset_x: int = A4_FRAME["outer_pad_x"]
    offset_y: int = 80


@dataclass(frozen=True)
class FrameFurniture:
    """Non-content decoration of the board"""
    panel: Optional[PanelSpec] = None
    title: Optional[TitleSpec] = None
    logo: Optional[LogoSpec] = None
    paint_order: PaintOrder = PaintOrder.PHOTOS_FIRST
    # Canvas regions that are background by design (frame margins)
    covered_regions: Tuple[Box, ...] = ()


def catalog_furniture(
    canvas_size: Tuple[int, int],
    display_name: Optional[str] = None,
    logo: Optional[bytes] = None,
) -> FrameFurniture:
    """Colored A4 frame: inner panel, title strip, logo bottom-right"""
    width, height = canvas_size
    sx = width / A4_CANVAS[0]
    sy = height / A4_CANVAS[1]
    inner = inner_board_rect(canvas_size)
    x0, y0, x1, y1 = inner.box

    title = None
    if display_name:
        title = TitleSpec(
            text=f"{display_name}'s Vision Board",
            font_size=max(12, round(72 * sy)),
            x=inner.x,
            baseline_y=round(130 * sy),
        )

    return FrameFurniture(
        panel=PanelSpec(box=inner.box, radius=max(1, round(A4_FRAME["inner_radius"] * min(sx, sy)))),
        title=title,
        logo=LogoSpec(data=logo, offset_x=inner.x, offset_y=round(80 * sy)) if logo else None,
        paint_order=PaintOrder.PHOTOS_FIRST,
        covered_regions=(
            (0, 0, width, y0),
            (0, y1, width, height),
            (0, y0, x0, y1),
            (x1, y0, width, y1),
        ),
    )


def masonry_furniture(
    canvas_size: Tuple[int, int],
    logo: Optional[bytes] = None,
    paint_order: PaintOrder = PaintOrder.PHOTOS_FIRST,
) -> FrameFurniture:
    """Full-bleed board: logo top-left, 2% of the width in from the edges"""
    inset = round(canvas_size[0] * 0.02)
    return FrameFurniture(
        logo=LogoSpec(data=logo, anchor=LogoAnchor.TOP_LEFT, offset_x=inset, offset_y=inset) if logo else None,
        paint_order=paint_order,
    )


class FrameComposer:
    """Composites rendered patches onto the canvas and encodes the result"""

    def __init__(self, renderer: Optional[ElementRenderer] = None):
        self.renderer = renderer or ElementRenderer()

    def _paint_panel(self, base: Image.Image, panel: PanelSpec):
        draw = ImageDraw.Draw(base)
        x0, y0, x1, y1 = panel.box
        draw.rounded_rectangle([x0, y0, x1 - 1, y1 - 1], panel.radius, fill=parse_color(panel.color) + (255,))

    def _paint_title(self, base: Image.Image, title: TitleSpec):
        line, baseline = self.renderer.render_line(title.text, title.font_size, parse_color(title.color))
        base.paste(line, (title.x, title.baseline_y - baseline), line)

    def _paint_logo(self, base: Image.Image, spec: LogoSpec):
        try:
            logo = Image.open(io.BytesIO(spec.data))
            logo = logo.convert("RGBA")
        except Exception as e:
            logger.warning(f"Logo could not be decoded, skipping: {e}")
            return

        target_w = max(1, round(base.width * spec.width_ratio))
        # fit inside, never enlarge
        logo.thumbnail((target_w, target_w * 10), Image.Resampling.LANCZOS)

        if spec.anchor is LogoAnchor.BOTTOM_RIGHT:
            pos = (base.width - spec.offset_x - logo.width, base.height - spec.offset_y - logo.height)
        else:
            pos = (spec.offset_x, spec.offset_y)
        base.paste(logo, pos, logo)
        logger.debug(f"Logo {logo.size} placed at {pos}")

    @staticmethod
    def _paint_patches(base: Image.Image, patches: Iterable[RenderedPatch]):
        for patch in patches:
            base.paste(patch.image, (patch.left, patch.top), patch.image)

    def composite(
        self,
        canvas: Canvas,
        patches: List[RenderedPatch],
        furniture: Optional[FrameFurniture] = None,
    ) -> Image.Image:
        """Paint everything and return the RGB raster before encoding"""
        furniture = furniture or FrameFurniture()
        base = Image.new("RGBA", canvas.size, canvas.rgb + (255,))

        # sorted() is stable: equal z keeps input order
        ordered = sorted(patches, key=lambda p: p.placement.z)
        photos = [p for p in ordered if p.placement.kind is PlacementKind.PHOTO]
        texts = [p for p in ordered if p.placement.kind is PlacementKind.TEXT]

        if furniture.panel:
            self._paint_panel(base, furniture.panel)

        if furniture.paint_order is PaintOrder.LOGO_FIRST:
            if furniture.logo:
                self._paint_logo(base, furniture.logo)
            self._paint_patches(base, photos)
            self._paint_patches(base, texts)
        else:
            if furniture.title:
                self._paint_title(base, furniture.title)
            self._paint_patches(base, photos)
            self._paint_patches(base, texts)
            if furniture.logo:
                self._paint_logo(base, furniture.logo)

        return base.convert("RGB")

    @staticmethod
    def encode(raster: Image.Image, quality: Optional[int] = None) -> CompositionResult:
        quality = quality or settings.jpeg_quality
        try:
            buffer = io.BytesIO()
            raster.convert("RGB").save(buffer, "JPEG", quality=quality, optimize=True)
        except Exception as e:
            raise EncodingFailure(f"JPEG encoding failed: {e}") from e
        return CompositionResult(
            image_bytes=buffer.getvalue(),
            width=raster.width,
            height=raster.height,
            format="JPEG",
        )

    def compose(
        self,
        canvas: Canvas,
        patches: List[RenderedPatch],
        furniture: Optional[FrameFurniture] = None,
    ) -> CompositionResult:
        raster = self.composite(canvas, patches, furniture)
        return self.encode(raster)
