from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Canvas (A4 portrait at 200 DPI)
    canvas_width: int = Field(1654, gt=0)
    canvas_height: int = Field(2339, gt=0)
    board_background: str = "#F6F4F0"

    # Fonts
    font_path: Optional[str] = None
    bold_font_path: Optional[str] = None

    # Layout
    masonry_columns: int = Field(5, ge=2)
    masonry_fill_ratio: float = 0.98
    masonry_hero_ratio: float = 0.15
    masonry_overlap_max: int = 12

    # Rendering
    render_batch_size: int = Field(6, ge=1, le=16)
    zoom_fraction: float = Field(0.25, ge=0.0, le=1.0)
    zoom_factor: float = 1.2
    use_export_resolution: bool = True
    jpeg_quality: int = Field(92, ge=90, le=100)

    # Text cards
    short_font_size: int = 46
    long_font_size: int = 34
    min_font_size: int = 20
    max_card_height: int = 320
    long_card_min_width: int = 260
    long_card_max_width: int = 420

    # Coverage validation
    coverage_stride: int = Field(4, ge=1)
    coverage_tolerance: int = 12
    coverage_threshold: float = 0.001
    correction_scale: float = 1.03

    # Photo fetching
    fetch_timeout: float = 20.0
    min_photo_resolution: int = 800
    # local paths, file:// urls and private hosts (CLI and tests only)
    allow_local_photos: bool = False

    model_config = {
        "env_file": ".env",
        "env_prefix": "VB_",
        "case_sensitive": False,
        "extra": "ignore"
    }


settings = Settings()
