"""
Vision board render pipeline

layout -> per-item fetch/decode/render (bounded batches) -> composite ->
coverage validation (at most one corrective pass) -> JPEG.
"""
import asyncio
import uuid
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger
from PIL import Image

from visionboard.composer import FrameComposer, FrameFurniture, catalog_furniture, masonry_furniture
from visionboard.config import load_default_logo
from visionboard.coverage import CoverageValidator
from visionboard.errors import NoRenderableContent, VisionBoardError
from visionboard.fetcher import PhotoFetcher
from visionboard.layout import (
    TEXT_ANCHORS,
    anchored_text_placement,
    generate_layout,
    outer_background,
)
from visionboard.models import (
    BoardRequest,
    Canvas,
    CompositionResult,
    ContentItem,
    ImageAsset,
    LayoutKind,
    Placement,
    PlacementKind,
    RenderedPatch,
    RenderManifest,
    RenderOutcome,
    ShapedText,
)
from visionboard.renderer import ElementRenderer, choose_zoomed
from visionboard.settings import settings
from visionboard.text_shaper import TextShaper

Fetcher = Callable[[ImageAsset, Optional[int]], Awaitable[bytes]]

TEXT_Z_BASE = 10_000


@dataclass
class PreparedItem:
    """Decoded photo and rendered patches for one content item"""
    index: int
    image: Image.Image
    photo_patches: List[RenderedPatch] = field(default_factory=list)
    text_patch: Optional[RenderedPatch] = None
    caption: Optional[ShapedText] = None


@dataclass
class BoardPlan:
    canvas: Canvas
    kind: LayoutKind
    placements: List[Placement]
    furniture: FrameFurniture
    zoomed: Set[int]


class VisionBoardEngine:
    """Renders a BoardRequest into a RenderOutcome; never raises"""

    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        shaper: Optional[TextShaper] = None,
        renderer: Optional[ElementRenderer] = None,
        composer: Optional[FrameComposer] = None,
        validator: Optional[CoverageValidator] = None,
        batch_size: Optional[int] = None,
    ):
        self.fetcher = fetcher or PhotoFetcher()
        self.shaper = shaper or TextShaper()
        self.renderer = renderer or ElementRenderer(self.shaper.fonts)
        self.composer = composer or FrameComposer(self.renderer)
        self.validator = validator or CoverageValidator()
        self.batch_size = batch_size or settings.render_batch_size

    async def render(self, request: BoardRequest, log=logger) -> RenderOutcome:
        log = log.bind(render_id=uuid.uuid4().hex[:8])
        manifest = RenderManifest(layout_kind=request.layout_kind, seed=request.seed)
        try:
            result = await self._render(request, manifest, log)
            return RenderOutcome(success=True, result=result, manifest=manifest)
        except VisionBoardError as e:
            log.error(f"Render failed [{e.code}]: {e.message}")
            return RenderOutcome(success=False, manifest=manifest, error=e)
        except Exception as e:
            log.exception(f"Unexpected render failure: {e}")
            return RenderOutcome(
                success=False,
                manifest=manifest,
                error=VisionBoardError(f"unexpected render failure: {e}"),
            )

    # ---- planning ------------------------------------------------------

    def plan(self, request: BoardRequest) -> BoardPlan:
        count = len(request.items)
        kind = request.layout_kind
        if kind is LayoutKind.MASONRY and count == 0:
            raise NoRenderableContent("board has no items")

        placements = generate_layout(request.canvas.size, count, kind, seed=request.seed)

        if kind is LayoutKind.CATALOG:
            canvas = replace(request.canvas, background_color=outer_background(count))
            logo = request.logo or load_default_logo(light=True)
            furniture = catalog_furniture(canvas.size, request.display_name, logo)
        else:
            canvas = request.canvas
            logo = request.logo or load_default_logo(light=False)
            furniture = masonry_furniture(canvas.size, logo)

        return BoardPlan(
            canvas=canvas,
            kind=kind,
            placements=placements,
            furniture=furniture,
            zoomed=choose_zoomed(count, settings.zoom_fraction, request.seed),
        )

    # ---- per-item work -------------------------------------------------

    def _render_photos(
        self,
        plan: BoardPlan,
        image: Image.Image,
        placements: List[Placement],
        caption: Optional[ShapedText] = None,
    ) -> List[RenderedPatch]:
        return [
            self.renderer.render_image(
                image,
                p,
                zoom=p.item_index in plan.zoomed,
                polaroid=plan.kind is LayoutKind.CATALOG,
                caption=caption,
            )
            for p in placements
        ]

    def _shape_caption(self, item: ContentItem, photos: List[Placement]) -> Optional[ShapedText]:
        """Catalog caption, printed inside the polaroid strip"""
        if item.text is None or not item.text.text.strip() or not photos:
            return None
        return self.shaper.shape(item.text.text, item.text.tone, photos[0].width * 0.85, item.text.role)

    def _render_text(self, plan: BoardPlan, index: int, item: ContentItem) -> Optional[RenderedPatch]:
        if item.text is None or not item.text.text.strip() or index >= len(TEXT_ANCHORS):
            return None
        shaped = self.shaper.shape(item.text.text, item.text.tone, role=item.text.role)
        placement = anchored_text_placement(
            plan.canvas.size, index, shaped.card_width, shaped.card_height,
            z=TEXT_Z_BASE + index, item_index=index,
        )
        return self.renderer.render_text(shaped, placement)

    def _decode_and_render(self, plan: BoardPlan, index: int, item: ContentItem, data: bytes, log) -> PreparedItem:
        image = self.renderer.decode_photo(data, item_index=index)
        photos = [p for p in plan.placements if p.item_index == index]
        prepared = PreparedItem(index=index, image=image)
        try:
            if plan.kind is LayoutKind.CATALOG:
                prepared.caption = self._shape_caption(item, photos)
            else:
                prepared.text_patch = self._render_text(plan, index, item)
        except NoRenderableContent as e:
            log.warning(f"Item {index}: text skipped ({e.message})")
        prepared.photo_patches = self._render_photos(plan, image, photos, prepared.caption)
        return prepared

    async def _prepare_item(self, plan: BoardPlan, index: int, item: ContentItem, log) -> PreparedItem:
        data = await self.fetcher(item.photo, index)
        return await asyncio.to_thread(self._decode_and_render, plan, index, item, data, log)

    # ---- pipeline ------------------------------------------------------

    async def _render(self, request: BoardRequest, manifest: RenderManifest, log) -> CompositionResult:
        plan = self.plan(request)
        items = request.items
        log.info(
            f"Rendering {len(items)} items, layout={plan.kind.value}, "
            f"canvas={plan.canvas.width}x{plan.canvas.height}, placements={len(plan.placements)}"
        )

        prepared: Dict[int, PreparedItem] = {}
        for start in range(0, len(items), self.batch_size):
            indices = list(range(start, min(len(items), start + self.batch_size)))
            results = await asyncio.gather(
                *(self._prepare_item(plan, i, items[i], log) for i in indices),
                return_exceptions=True,
            )
            for i, res in zip(indices, results):
                if isinstance(res, BaseException):
                    reason = res.message if isinstance(res, VisionBoardError) else str(res)
                    manifest.skipped[i] = reason
                    log.warning(f"Item {i} skipped: {reason}")
                else:
                    prepared[i] = res

        if not prepared:
            raise NoRenderableContent("every item failed to render")
        manifest.used = sorted(prepared)

        photo_placements = [p for p in plan.placements if p.item_index in prepared]
        photo_patches = [patch for i in manifest.used for patch in prepared[i].photo_patches]

        if plan.kind is LayoutKind.MASONRY:
            orphans = [p for p in plan.placements if p.item_index not in prepared]
            if orphans:
                rebound = [
                    replace(p, item_index=manifest.used[k % len(manifest.used)])
                    for k, p in enumerate(orphans)
                ]
                log.info(f"Re-binding {len(rebound)} tiles of skipped items")
                images = {i: prepared[i].image for i in manifest.used}
                photo_patches += await asyncio.to_thread(self._render_rebound, plan, images, rebound)
                photo_placements += rebound

        text_patches = [prepared[i].text_patch for i in manifest.used if prepared[i].text_patch]
        return await asyncio.to_thread(
            self._finish, plan, prepared, photo_placements, photo_patches, text_patches, manifest, log
        )

    def _render_rebound(self, plan: BoardPlan, images: Dict[int, Image.Image], rebound: List[Placement]) -> List[RenderedPatch]:
        patches: List[RenderedPatch] = []
        for p in rebound:
            patches += self._render_photos(plan, images[p.item_index], [p])
        return patches

    def _finish(
        self,
        plan: BoardPlan,
        prepared: Dict[int, PreparedItem],
        photo_placements: List[Placement],
        photo_patches: List[RenderedPatch],
        text_patches: List[RenderedPatch],
        manifest: RenderManifest,
        log,
    ) -> CompositionResult:
        furniture = plan.furniture
        text_placements = [patch.placement for patch in text_patches]
        placements = sorted(photo_placements + text_placements, key=lambda p: p.z)

        def recompose(new_placements: List[Placement]) -> Image.Image:
            patches = [
                patch
                for p in new_placements if p.kind is PlacementKind.PHOTO
                for patch in self._render_photos(
                    plan, prepared[p.item_index].image, [p], prepared[p.item_index].caption
                )
            ]
            return self.composer.composite(plan.canvas, patches + text_patches, furniture)

        raster = self.composer.composite(plan.canvas, photo_patches + text_patches, furniture)
        outcome = self.validator.correct(
            raster, plan.canvas, placements, recompose, furniture.covered_regions
        )

        manifest.placements = outcome.placements
        manifest.gaps_found = outcome.final.gaps_found
        manifest.uncovered_pixel_estimate = outcome.final.uncovered_pixel_estimate
        manifest.corrected = outcome.corrected

        result = self.composer.encode(outcome.raster)
        log.info(
            f"Board done: {len(manifest.used)} used, {len(manifest.skipped)} skipped, "
            f"gaps={manifest.gaps_found}, corrected={manifest.corrected}, {len(result.image_bytes)} bytes"
        )
        return result


_vision_board_engine = None


def get_vision_board_engine() -> VisionBoardEngine:
    """Shared engine instance"""
    global _vision_board_engine
    if _vision_board_engine is None:
        _vision_board_engine = VisionBoardEngine()
    return _vision_board_engine
