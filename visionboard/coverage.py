"""
Coverage validator and one-shot corrector

The coverage mask is built from placement geometry, never from pixels. A
sample counts as a gap when it lies outside the mask and still shows the
canvas background color.
"""
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger
from PIL import Image

from visionboard.models import Canvas, Placement, PlacementKind
from visionboard.settings import settings

Box = Tuple[int, int, int, int]


@dataclass(frozen=True)
class CoverageReport:
    gaps_found: bool
    uncovered_pixel_estimate: int
    uncovered_fraction: float
    samples: int


@dataclass
class CorrectionOutcome:
    raster: Image.Image
    placements: List[Placement]
    initial: CoverageReport
    final: CoverageReport
    corrected: bool


def _mark(mask: np.ndarray, x0: float, y0: float, x1: float, y1: float):
    height, width = mask.shape
    left = max(0, int(math.floor(x0)))
    top = max(0, int(math.floor(y0)))
    right = min(width, int(math.ceil(x1)))
    bottom = min(height, int(math.ceil(y1)))
    if right > left and bottom > top:
        mask[top:bottom, left:right] = True


class CoverageValidator:
    def __init__(
        self,
        stride: Optional[int] = None,
        tolerance: Optional[int] = None,
        threshold: Optional[float] = None,
        correction_scale: Optional[float] = None,
        log=logger,
    ):
        self.stride = stride or settings.coverage_stride
        self.tolerance = settings.coverage_tolerance if tolerance is None else tolerance
        self.threshold = settings.coverage_threshold if threshold is None else threshold
        self.correction_scale = correction_scale or settings.correction_scale
        self.log = log

    @staticmethod
    def coverage_mask(
        size: Tuple[int, int],
        placements: Sequence[Placement],
        covered_regions: Sequence[Box] = (),
    ) -> np.ndarray:
        """Boolean (height, width) union of placement rects and declared regions"""
        width, height = size
        mask = np.zeros((height, width), dtype=bool)
        for p in placements:
            _mark(mask, p.x, p.y, p.right, p.bottom)
        for x0, y0, x1, y1 in covered_regions:
            _mark(mask, x0, y0, x1, y1)
        return mask

    def validate(
        self,
        raster: Image.Image,
        canvas: Canvas,
        placements: Sequence[Placement],
        covered_regions: Sequence[Box] = (),
    ) -> CoverageReport:
        s = self.stride
        pixels = np.asarray(raster.convert("RGB"), dtype=np.int16)[::s, ::s]
        covered = self.coverage_mask(raster.size, placements, covered_regions)[::s, ::s]

        background = np.array(canvas.rgb, dtype=np.int16)
        near_background = np.all(np.abs(pixels - background) <= self.tolerance, axis=-1)
        uncovered = int(np.count_nonzero(near_background & ~covered))

        estimate = uncovered * s * s
        fraction = estimate / canvas.area
        return CoverageReport(
            gaps_found=fraction > self.threshold,
            uncovered_pixel_estimate=estimate,
            uncovered_fraction=fraction,
            samples=int(covered.size),
        )

    def enlarge(self, canvas: Canvas, placements: Sequence[Placement]) -> List[Placement]:
        """Photo placements scaled about their centers and clamped; text untouched"""
        return [
            p.scaled_about_center(self.correction_scale).clamped(canvas)
            if p.kind is PlacementKind.PHOTO else p
            for p in placements
        ]

    def correct(
        self,
        raster: Image.Image,
        canvas: Canvas,
        placements: Sequence[Placement],
        recompose: Callable[[List[Placement]], Image.Image],
        covered_regions: Sequence[Box] = (),
    ) -> CorrectionOutcome:
        """Validate; on gaps run exactly one enlargement pass and validate again"""
        initial = self.validate(raster, canvas, placements, covered_regions)
        if not initial.gaps_found:
            return CorrectionOutcome(raster, list(placements), initial, initial, corrected=False)

        self.log.info(
            f"Coverage gaps: ~{initial.uncovered_pixel_estimate}px "
            f"({initial.uncovered_fraction:.4%}), enlarging photos x{self.correction_scale}"
        )
        enlarged = self.enlarge(canvas, placements)
        new_raster = recompose(enlarged)
        final = self.validate(new_raster, canvas, enlarged, covered_regions)
        if final.gaps_found:
            self.log.warning(
                f"Gaps remain after correction: ~{final.uncovered_pixel_estimate}px "
                f"({final.uncovered_fraction:.4%}), accepting"
            )
        return CorrectionOutcome(new_raster, enlarged, initial, final, corrected=True)
