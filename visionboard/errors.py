"""
Vision board engine error taxonomy
"""
from typing import Optional


class VisionBoardError(Exception):
    """Base class for every typed failure the engine reports"""

    code = "vision_board_error"

    def __init__(self, message: str, item_index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.item_index = item_index

    def to_dict(self) -> dict:
        data = {"code": self.code, "message": self.message}
        if self.item_index is not None:
            data["item_index"] = self.item_index
        return data


class UnsupportedItemCount(VisionBoardError):
    """Catalog layout asked for a count outside 2..7"""

    code = "unsupported_item_count"

    def __init__(self, count: int, supported: range = range(2, 8)):
        super().__init__(
            f"catalog layout supports {supported.start}-{supported.stop - 1} items, got {count}"
        )
        self.count = count


class AssetFetchFailure(VisionBoardError):
    """One photo could not be downloaded or decoded; the item is skipped"""

    code = "asset_fetch_failure"


class FontLoadFailure(VisionBoardError):
    """No vector font could be loaded; metric estimates are used instead"""

    code = "font_load_failure"


class NoRenderableContent(VisionBoardError):
    """Shaping produced an empty line for non-empty text"""

    code = "no_renderable_content"


class EncodingFailure(VisionBoardError):
    """The final raster could not be encoded"""

    code = "encoding_failure"


class InvalidCanvasConfig(VisionBoardError):
    """Canvas dimensions or background color are unusable"""

    code = "invalid_canvas_config"
