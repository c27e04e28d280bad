import pytest
from PIL import Image

from visionboard.coverage import CoverageValidator
from visionboard.models import Canvas, Placement, PlacementKind

WHITE = Canvas(200, 100, "#FFFFFF")
LEFT_HALF = Placement(x=0, y=0, width=100, height=100)


def white_raster():
    return Image.new("RGB", WHITE.size, (255, 255, 255))


class TestValidate:
    """Gap detection from geometry plus background color"""

    def test_full_coverage_no_gaps(self):
        full = Placement(x=0, y=0, width=200, height=100)
        report = CoverageValidator(stride=4).validate(white_raster(), WHITE, [full])
        assert not report.gaps_found
        assert report.uncovered_pixel_estimate == 0

    def test_half_uncovered(self):
        report = CoverageValidator(stride=4).validate(white_raster(), WHITE, [LEFT_HALF])
        assert report.gaps_found
        assert report.uncovered_pixel_estimate == 10000
        assert report.uncovered_fraction == pytest.approx(0.5)
        assert report.samples == 50 * 25

    def test_painted_pixels_are_not_gaps(self):
        raster = Image.new("RGB", WHITE.size, (30, 30, 30))
        report = CoverageValidator(stride=4).validate(raster, WHITE, [])
        assert not report.gaps_found

    def test_tolerance_around_background(self):
        raster = Image.new("RGB", WHITE.size, (250, 248, 252))
        assert CoverageValidator(stride=4, tolerance=12).validate(raster, WHITE, []).gaps_found
        assert not CoverageValidator(stride=4, tolerance=2).validate(raster, WHITE, []).gaps_found

    def test_declared_regions_count_as_covered(self):
        report = CoverageValidator(stride=4).validate(
            white_raster(), WHITE, [LEFT_HALF], covered_regions=[(100, 0, 200, 100)]
        )
        assert not report.gaps_found

    def test_mask_clips_offcanvas_rects(self):
        mask = CoverageValidator.coverage_mask((10, 10), [Placement(x=-5, y=8, width=30, height=30)])
        assert mask.shape == (10, 10)
        assert mask[9].all()
        assert not mask[0].any()


class TestCorrect:
    """Single corrective pass"""

    def test_no_gaps_no_recompose(self):
        calls = []
        full = Placement(x=0, y=0, width=200, height=100)
        outcome = CoverageValidator(stride=4).correct(
            white_raster(), WHITE, [full], lambda ps: calls.append(ps)
        )
        assert not outcome.corrected
        assert calls == []
        assert outcome.placements == [full]

    def test_one_enlargement_pass(self):
        calls = []

        def recompose(placements):
            calls.append(placements)
            # still blank: gaps remain and are accepted
            return white_raster()

        outcome = CoverageValidator(stride=4, correction_scale=1.03).correct(
            white_raster(), WHITE, [LEFT_HALF], recompose
        )
        assert len(calls) == 1
        assert outcome.corrected
        assert outcome.initial.gaps_found
        assert outcome.final.gaps_found

        enlarged = outcome.placements[0]
        assert enlarged.x == 0 and enlarged.y == 0
        assert enlarged.width == pytest.approx(101.5)
        assert enlarged.height == pytest.approx(100)

    def test_recomposed_raster_is_kept(self):
        filled = Image.new("RGB", WHITE.size, (200, 0, 0))
        outcome = CoverageValidator(stride=4).correct(
            white_raster(), WHITE, [LEFT_HALF], lambda ps: filled
        )
        assert outcome.raster is filled
        assert not outcome.final.gaps_found

    def test_text_is_not_enlarged(self):
        text = Placement(x=150, y=10, width=20, height=20, kind=PlacementKind.TEXT)
        outcome = CoverageValidator(stride=4).correct(
            white_raster(), WHITE, [LEFT_HALF, text], lambda ps: white_raster()
        )
        assert outcome.placements[1] == text
