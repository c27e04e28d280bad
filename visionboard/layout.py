"""
Layout generator - polaroid catalog and masonry tiling

Catalog: deterministic A4 portrait arrangements for 2-7 goals, expressed in
the inner board area (canvas minus title strip, logo strip and side margins).
Masonry: greedy shortest-column-first packing with hero tiles, hairline
overlaps and an edge-repair pass. Seedable for reproducible boards.
"""
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from loguru import logger

from visionboard.errors import UnsupportedItemCount
from visionboard.models import LayoutKind, Placement, PlacementKind, classify_aspect
from visionboard.settings import settings

# A4 portrait at 200 DPI
A4_CANVAS = (1654, 2339)

A4_FRAME = {
    "outer_pad_x": 110,
    "outer_pad_top": 210,     # title strip
    "outer_pad_bottom": 160,  # logo strip
    "inner_bg": "#F6F4F0",
    "inner_radius": 28,
}

# Outer frame color per goal count
A4_OUTER_BG: Dict[int, str] = {
    2: "#0F3F3E",  # teal
    3: "#6B3B06",  # brown
    4: "#2B1611",  # deep brown
    5: "#0F3F3E",  # teal
    6: "#F57C00",  # orange
    7: "#4A0A0A",  # maroon
}

# (goal_index, x, y, w, h, rotation, z) inside the 1434x1969 inner board
A4_LAYOUTS: Dict[int, List[Tuple[int, int, int, int, int, float, int]]] = {
    2: [
        (0, 100, 380, 620, 780, -6, 2),
        (1, 640, 640, 620, 780, 6, 3),
    ],
    3: [
        (0, 80, 200, 520, 660, -5, 2),
        (1, 780, 200, 520, 660, 5, 2),
        (2, 420, 880, 520, 660, 0, 3),
    ],
    4: [
        (0, 100, 180, 520, 660, -4, 2),
        (1, 780, 180, 520, 660, 4, 2),
        (2, 100, 900, 520, 660, 3, 3),
        (3, 780, 900, 520, 660, -3, 3),
    ],
    5: [
        (0, 60, 180, 430, 560, -4, 2),
        (1, 500, 100, 430, 560, 0, 3),
        (2, 940, 180, 430, 560, 4, 2),
        (3, 260, 800, 430, 560, 3, 3),
        (4, 720, 800, 430, 560, -3, 3),
    ],
    6: [
        (0, 60, 200, 420, 540, -4, 2),
        (1, 500, 120, 420, 540, 1, 3),
        (2, 940, 200, 420, 540, 4, 2),
        (3, 60, 820, 420, 540, 3, 3),
        (4, 500, 900, 420, 540, -1, 4),
        (5, 940, 820, 420, 540, -3, 3),
    ],
    7: [
        (0, 420, 140, 520, 660, 0, 4),  # hero center
        (1, 50, 160, 380, 500, -5, 2),
        (2, 960, 160, 380, 500, 5, 2),
        (3, 80, 720, 380, 500, 4, 3),
        (4, 960, 720, 380, 500, -4, 3),
        (5, 260, 1280, 380, 500, -3, 2),
        (6, 720, 1280, 380, 500, 3, 2),
    ],
}

CATALOG_COUNTS = range(2, 8)

# Fractional anchors for affirmation cards on a masonry board
TEXT_ANCHORS: List[Tuple[float, float]] = [
    (0.08, 0.12),
    (0.58, 0.18),
    (0.10, 0.46),
    (0.34, 0.72),
    (0.60, 0.56),
    (0.14, 0.86),
]

MASONRY_RATIO_RANGE = (0.6, 1.6)
MIN_COLUMN_WIDTH = 40


@dataclass(frozen=True)
class InnerRect:
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)


def _frame_scale(canvas_size: Tuple[int, int]) -> Tuple[float, float]:
    return (canvas_size[0] / A4_CANVAS[0], canvas_size[1] / A4_CANVAS[1])


def inner_board_rect(canvas_size: Tuple[int, int] = A4_CANVAS) -> InnerRect:
    """Inner board rectangle after the outer frame padding"""
    sx, sy = _frame_scale(canvas_size)
    pad_x = round(A4_FRAME["outer_pad_x"] * sx)
    pad_top = round(A4_FRAME["outer_pad_top"] * sy)
    pad_bottom = round(A4_FRAME["outer_pad_bottom"] * sy)
    return InnerRect(
        x=pad_x,
        y=pad_top,
        width=canvas_size[0] - 2 * pad_x,
        height=canvas_size[1] - pad_top - pad_bottom,
    )


def outer_background(item_count: int) -> str:
    if item_count not in A4_OUTER_BG:
        raise UnsupportedItemCount(item_count)
    return A4_OUTER_BG[item_count]


def catalog_layout(canvas_size: Tuple[int, int], item_count: int) -> List[Placement]:
    """Polaroid placements for 2-7 goals in absolute canvas coordinates"""
    if item_count not in A4_LAYOUTS:
        raise UnsupportedItemCount(item_count)

    inner = inner_board_rect(canvas_size)
    reference = inner_board_rect(A4_CANVAS)
    sx = inner.width / reference.width
    sy = inner.height / reference.height

    placements = [
        Placement(
            x=inner.x + x * sx,
            y=inner.y + y * sy,
            width=w * sx,
            height=h * sy,
            rotation=float(rot),
            z=z,
            item_index=goal_index,
            kind=PlacementKind.PHOTO,
            aspect=classify_aspect(w, h),
        )
        for goal_index, x, y, w, h, rot, z in A4_LAYOUTS[item_count]
    ]
    # stable sort keeps goal order among equal z
    return sorted(placements, key=lambda p: p.z)


def _hero_cap(item_count: int, hero_ratio: float) -> int:
    cap = int(item_count * hero_ratio)
    if item_count >= 7:
        cap = max(1, cap)
    return cap


def masonry_layout(
    canvas_size: Tuple[int, int],
    item_count: int,
    seed: Optional[int] = None,
    columns: Optional[int] = None,
    fill_ratio: Optional[float] = None,
    hero_ratio: Optional[float] = None,
    overlap_max: Optional[int] = None,
) -> List[Placement]:
    """Dense shortest-column-first tiling followed by edge repair.

    Tiles beyond ``item_count`` are fillers bound round-robin to the items.
    """
    if item_count < 1:
        raise ValueError("masonry layout needs at least one item")

    columns = columns or settings.masonry_columns
    fill_ratio = settings.masonry_fill_ratio if fill_ratio is None else fill_ratio
    hero_ratio = settings.masonry_hero_ratio if hero_ratio is None else hero_ratio
    overlap_max = max(1, overlap_max or settings.masonry_overlap_max)

    width, height = canvas_size
    rng = random.Random(seed)

    # narrow canvases get fewer, wider columns
    columns = max(1, min(columns, width // MIN_COLUMN_WIDTH))
    col_w = width // columns
    col_x = [c * col_w for c in range(columns)]
    # last column absorbs the integer remainder
    col_widths = [col_w] * (columns - 1) + [width - col_w * (columns - 1)]
    heights = [0] * columns

    hero_cap = _hero_cap(item_count, hero_ratio)
    heroes = 0
    tiles: List[Placement] = []

    def nominal_height(y: int, wanted: float) -> int:
        remaining = height - y
        h = min(int(round(wanted)), remaining)
        # never leave a sliver below the tile
        if remaining - h < 0.35 * col_w:
            h = remaining
        return max(1, h)

    def emit(x: int, y: int, w: int, h: int) -> None:
        overlap = rng.randint(1, overlap_max)
        z = len(tiles)
        tiles.append(Placement(
            x=x,
            y=y,
            width=min(w + overlap, width - x),
            height=min(h + overlap, height - y),
            z=z,
            item_index=z % item_count,
            kind=PlacementKind.PHOTO,
            aspect=classify_aspect(w, h),
        ))

    while len(tiles) < item_count and min(heights) < fill_ratio * height:
        col = heights.index(min(heights))
        y = heights[col]
        ratio = rng.uniform(*MASONRY_RATIO_RANGE)

        if columns > 1 and heroes < hero_cap and rng.random() < hero_ratio * 2:
            anchor = col if col + 1 < columns else col - 1
            span = [anchor, anchor + 1]
            x = col_x[anchor]
            w = col_widths[anchor] + col_widths[anchor + 1]
            h = nominal_height(y, ratio * col_w * 1.5)
            heroes += 1
        else:
            span = [col]
            x = col_x[col]
            w = col_widths[col]
            h = nominal_height(y, ratio * col_w)

        emit(x, y, w, h)
        for c in span:
            heights[c] = y + h

    placed = len(tiles)

    # Edge repair: extend every column to the bottom edge
    max_filler = MASONRY_RATIO_RANGE[1] * col_w
    for c in range(columns):
        while heights[c] < height:
            y = heights[c]
            h = nominal_height(y, rng.uniform(0.8, 1.0) * max_filler)
            emit(col_x[c], y, col_widths[c], h)
            heights[c] = y + h

    logger.debug(
        f"masonry layout: {placed} tiles, {len(tiles) - placed} fillers, "
        f"{heroes} heroes, seed={seed}"
    )
    return tiles


def generate_layout(
    canvas_size: Tuple[int, int],
    item_count: int,
    kind: LayoutKind,
    seed: Optional[int] = None,
) -> List[Placement]:
    """Placements for ``item_count`` items, sorted by ascending z"""
    if kind is LayoutKind.CATALOG:
        return catalog_layout(canvas_size, item_count)
    return masonry_layout(canvas_size, item_count, seed=seed)


def anchored_text_placement(
    canvas_size: Tuple[int, int],
    anchor_index: int,
    card_width: int,
    card_height: int,
    z: int,
    item_index: Optional[int] = None,
) -> Placement:
    """Affirmation card at a fractional anchor, clamped inside the canvas"""
    width, height = canvas_size
    ax, ay = TEXT_ANCHORS[anchor_index % len(TEXT_ANCHORS)]
    x = min(max(0, width * ax), max(0, width - card_width))
    y = min(max(0, height * ay), max(0, height - card_height))
    return Placement(
        x=x,
        y=y,
        width=card_width,
        height=card_height,
        z=z,
        item_index=item_index,
        kind=PlacementKind.TEXT,
        aspect=classify_aspect(card_width, card_height),
    )
