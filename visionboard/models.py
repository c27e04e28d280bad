"""
Vision board data model

Every stage hands an immutable value to the next; nothing here is shared
mutable state between stages.
"""
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image

from visionboard.errors import InvalidCanvasConfig


def parse_color(value: str) -> Tuple[int, int, int]:
    """Parse ``#RRGGBB`` / ``#RGB`` into an RGB tuple"""
    if not isinstance(value, str):
        raise InvalidCanvasConfig(f"color must be a hex string, got {value!r}")
    hex_str = value.strip().lstrip("#")
    if len(hex_str) == 3:
        hex_str = "".join(ch * 2 for ch in hex_str)
    if len(hex_str) != 6:
        raise InvalidCanvasConfig(f"invalid hex color: {value!r}")
    try:
        return tuple(int(hex_str[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        raise InvalidCanvasConfig(f"invalid hex color: {value!r}")


class LayoutKind(str, Enum):
    CATALOG = "catalog"
    MASONRY = "masonry"


class PlacementKind(str, Enum):
    PHOTO = "photo"
    TEXT = "text"


@dataclass(frozen=True)
class Canvas:
    width: int
    height: int
    background_color: str = "#F6F4F0"

    def __post_init__(self):
        if not isinstance(self.width, int) or not isinstance(self.height, int):
            raise InvalidCanvasConfig("canvas dimensions must be integers")
        if self.width <= 0 or self.height <= 0:
            raise InvalidCanvasConfig(f"canvas must be positive, got {self.width}x{self.height}")
        parse_color(self.background_color)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return parse_color(self.background_color)


def classify_aspect(width: float, height: float) -> str:
    aspect = height / width
    if aspect > 1.3:
        return "portrait"
    if aspect < 0.8:
        return "landscape"
    return "square"


@dataclass(frozen=True)
class Placement:
    """A positioned, sized, rotated, z-ordered rectangle for one content item"""
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    z: int = 0
    item_index: Optional[int] = None
    kind: PlacementKind = PlacementKind.PHOTO
    aspect: str = "square"

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"placement must have positive size, got {self.width}x{self.height}")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def snapped(self) -> Tuple[int, int, int, int]:
        """Integer box: floor origin, ceil size"""
        return (math.floor(self.x), math.floor(self.y), math.ceil(self.width), math.ceil(self.height))

    def clamped(self, canvas: Canvas) -> "Placement":
        x0 = max(0.0, self.x)
        y0 = max(0.0, self.y)
        x1 = min(float(canvas.width), self.right)
        y1 = min(float(canvas.height), self.bottom)
        if x1 <= x0 or y1 <= y0:
            return self
        return replace(self, x=x0, y=y0, width=x1 - x0, height=y1 - y0)

    def scaled_about_center(self, factor: float) -> "Placement":
        cx, cy = self.center
        w = self.width * factor
        h = self.height * factor
        return replace(self, x=cx - w / 2, y=cy - h / 2, width=w, height=h)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "width": round(self.width, 2),
            "height": round(self.height, 2),
            "rotation": self.rotation,
            "z": self.z,
            "item_index": self.item_index,
            "kind": self.kind.value,
            "aspect": self.aspect,
        }


@dataclass(frozen=True)
class ImageAsset:
    id: str
    url: str = ""
    download_url: Optional[str] = None
    width: int = 0
    height: int = 0
    source: str = "custom"
    data: Optional[bytes] = field(default=None, repr=False)

    def source_url(self, export: bool = True) -> str:
        if export and self.download_url:
            return self.download_url
        return self.url


@dataclass(frozen=True)
class TextBlock:
    text: str
    tone: str = "soft"  # soft | bold
    role: Optional[str] = None  # primary | secondary


@dataclass(frozen=True)
class ContentItem:
    """One goal with its resolved photograph and short text"""
    goal: str
    photo: ImageAsset
    text: Optional[TextBlock] = None


@dataclass(frozen=True)
class ShapedText:
    lines: Tuple[str, ...]
    font_size: int
    content_width: float
    content_height: float
    card_width: int
    card_height: int
    ascent: float
    descent: float
    line_height: float
    padding_x: int
    padding_y: int
    tone: str = "soft"
    is_short: bool = False


@dataclass
class RenderedPatch:
    image: Image.Image
    left: int
    top: int
    placement: Placement


@dataclass(frozen=True)
class CompositionResult:
    image_bytes: bytes = field(repr=False)
    width: int
    height: int
    format: str = "JPEG"


@dataclass
class RenderManifest:
    layout_kind: LayoutKind
    used: List[int] = field(default_factory=list)
    skipped: Dict[int, str] = field(default_factory=dict)
    placements: List[Placement] = field(default_factory=list)
    gaps_found: bool = False
    uncovered_pixel_estimate: int = 0
    corrected: bool = False
    seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layout_kind": self.layout_kind.value,
            "used": list(self.used),
            "skipped": {str(k): v for k, v in self.skipped.items()},
            "used_count": len(self.used),
            "skipped_count": len(self.skipped),
            "gaps_found": self.gaps_found,
            "uncovered_pixel_estimate": self.uncovered_pixel_estimate,
            "corrected": self.corrected,
            "seed": self.seed,
            "placements": [p.to_dict() for p in self.placements],
        }


@dataclass(frozen=True)
class BoardRequest:
    canvas: Canvas
    items: Tuple[ContentItem, ...]
    layout_kind: LayoutKind = LayoutKind.CATALOG
    display_name: Optional[str] = None
    logo: Optional[bytes] = field(default=None, repr=False)
    seed: Optional[int] = None


@dataclass
class RenderOutcome:
    success: bool
    result: Optional[CompositionResult] = None
    manifest: Optional[RenderManifest] = None
    error: Optional[Exception] = None
