import io

import pytest
from PIL import Image

from conftest import make_png
from visionboard.composer import (
    FrameComposer,
    FrameFurniture,
    LogoAnchor,
    LogoSpec,
    PaintOrder,
    PanelSpec,
    TitleSpec,
    catalog_furniture,
    masonry_furniture,
)
from visionboard.errors import EncodingFailure
from visionboard.layout import A4_CANVAS
from visionboard.models import Canvas, Placement, PlacementKind, RenderedPatch
from visionboard.renderer import ElementRenderer


def solid_patch(color, z, kind=PlacementKind.PHOTO, box=(10, 10, 50, 50)):
    x, y, w, h = box
    return RenderedPatch(
        image=Image.new("RGBA", (w, h), color + (255,)),
        left=x,
        top=y,
        placement=Placement(x=x, y=y, width=w, height=h, z=z, kind=kind),
    )


@pytest.fixture
def composer(no_fonts):
    return FrameComposer(ElementRenderer(no_fonts))


class TestComposite:
    """Paint order"""

    def test_background_fill(self, composer):
        raster = composer.composite(Canvas(40, 30, "#102030"), [])
        assert raster.mode == "RGB"
        assert raster.getpixel((5, 5)) == (16, 32, 48)

    def test_ascending_z(self, composer):
        red = solid_patch((255, 0, 0), z=2)
        blue = solid_patch((0, 0, 255), z=1)
        raster = composer.composite(Canvas(100, 100), [red, blue])
        assert raster.getpixel((30, 30)) == (255, 0, 0)

    def test_equal_z_keeps_input_order(self, composer):
        red = solid_patch((255, 0, 0), z=1)
        blue = solid_patch((0, 0, 255), z=1)
        raster = composer.composite(Canvas(100, 100), [red, blue])
        assert raster.getpixel((30, 30)) == (0, 0, 255)

    def test_text_over_photos(self, composer):
        text = solid_patch((0, 255, 0), z=0, kind=PlacementKind.TEXT)
        photo = solid_patch((255, 0, 0), z=5)
        raster = composer.composite(Canvas(100, 100), [text, photo])
        assert raster.getpixel((30, 30)) == (0, 255, 0)

    def test_negative_offsets_are_clipped(self, composer):
        patch = solid_patch((255, 0, 0), z=0, box=(-20, -20, 50, 50))
        raster = composer.composite(Canvas(100, 100, "#FFFFFF"), [patch])
        assert raster.getpixel((0, 0)) == (255, 0, 0)
        assert raster.getpixel((40, 40)) == (255, 255, 255)

    def test_panel_painted_under_photos(self, composer):
        furniture = FrameFurniture(panel=PanelSpec(box=(0, 0, 100, 100), color="#00FF00", radius=4))
        photo = solid_patch((255, 0, 0), z=0)
        raster = composer.composite(Canvas(100, 100, "#000000"), [photo], furniture)
        assert raster.getpixel((50, 80)) == (0, 255, 0)
        assert raster.getpixel((30, 30)) == (255, 0, 0)

    def test_logo_painted_last(self, composer):
        logo = LogoSpec(data=make_png((40, 40), (0, 0, 255, 255)), width_ratio=0.4,
                        anchor=LogoAnchor.TOP_LEFT, offset_x=10, offset_y=10)
        photo = solid_patch((255, 0, 0), z=0)
        raster = composer.composite(Canvas(100, 100), [photo], FrameFurniture(logo=logo))
        assert raster.getpixel((30, 30)) == (0, 0, 255)

    def test_logo_first_sits_under_photos(self, composer):
        logo = LogoSpec(data=make_png((40, 40), (0, 0, 255, 255)), width_ratio=0.4,
                        anchor=LogoAnchor.TOP_LEFT, offset_x=10, offset_y=10)
        photo = solid_patch((255, 0, 0), z=0)
        furniture = FrameFurniture(logo=logo, paint_order=PaintOrder.LOGO_FIRST)
        raster = composer.composite(Canvas(100, 100), [photo], furniture)
        assert raster.getpixel((30, 30)) == (255, 0, 0)

    def test_logo_bottom_right_catalog(self, composer):
        furniture = catalog_furniture(A4_CANVAS, logo=make_png((200, 100)))
        raster = composer.composite(Canvas(*A4_CANVAS, "#0F3F3E"), [], furniture)
        logo_w = round(1654 * 0.10)
        left = 1654 - 110 - logo_w
        assert raster.getpixel((left + logo_w // 2, 2339 - 80 - 5))[0] > 200
        assert raster.getpixel((left - 5, 2339 - 80 - 5)) == (15, 63, 62)

    def test_logo_is_never_enlarged(self, composer):
        furniture = masonry_furniture((1000, 1000), logo=make_png((20, 10)))
        raster = composer.composite(Canvas(1000, 1000, "#FFFFFF"), [], furniture)
        assert raster.getpixel((20 + 5, 20 + 5))[1] < 50
        assert raster.getpixel((20 + 30, 20 + 5)) == (255, 255, 255)

    def test_bad_logo_skipped(self, composer):
        furniture = FrameFurniture(logo=LogoSpec(data=b"not an image"))
        raster = composer.composite(Canvas(100, 100, "#FFFFFF"), [], furniture)
        assert raster.getpixel((50, 50)) == (255, 255, 255)

    def test_title_drawn(self, composer):
        furniture = FrameFurniture(title=TitleSpec("Ada's Vision Board", font_size=40, x=10, baseline_y=60))
        raster = composer.composite(Canvas(600, 100, "#000000"), [], furniture)
        assert any(pixel[0] > 200 for pixel in raster.getdata())


class TestFurniture:
    """Board decoration presets"""

    def test_catalog_furniture(self):
        furniture = catalog_furniture(A4_CANVAS, display_name="Ada", logo=b"logo")
        assert furniture.title.text == "Ada's Vision Board"
        assert furniture.title.font_size == 72
        assert (furniture.title.x, furniture.title.baseline_y) == (110, 130)
        assert furniture.panel.box == (110, 210, 1544, 2179)
        assert furniture.panel.radius == 28
        assert furniture.logo.anchor is LogoAnchor.BOTTOM_RIGHT
        assert furniture.paint_order is PaintOrder.PHOTOS_FIRST

    def test_catalog_margins_declared_covered(self):
        regions = catalog_furniture(A4_CANVAS).covered_regions
        assert (0, 0, 1654, 210) in regions
        assert (0, 2179, 1654, 2339) in regions
        assert len(regions) == 4

    def test_no_title_without_name(self):
        assert catalog_furniture(A4_CANVAS).title is None

    def test_masonry_logo_top_left(self):
        furniture = masonry_furniture((1000, 1500), logo=b"logo")
        assert furniture.logo.anchor is LogoAnchor.TOP_LEFT
        assert (furniture.logo.offset_x, furniture.logo.offset_y) == (20, 20)
        assert furniture.title is None
        assert furniture.covered_regions == ()


class TestEncode:
    """JPEG encoding"""

    def test_compose_returns_jpeg(self, composer):
        result = composer.compose(Canvas(120, 80, "#336699"), [solid_patch((255, 0, 0), z=0)])
        assert result.image_bytes[:2] == b"\xff\xd8"
        assert (result.width, result.height, result.format) == (120, 80, "JPEG")
        assert Image.open(io.BytesIO(result.image_bytes)).size == (120, 80)

    def test_encoder_failure_is_typed(self):
        class BrokenRaster:
            width = height = 10

            def convert(self, mode):
                raise OSError("encoder exploded")

        with pytest.raises(EncodingFailure):
            FrameComposer.encode(BrokenRaster())
