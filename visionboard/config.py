import os
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 8000))
API_RELOAD = os.getenv("API_RELOAD", "false").lower() in ("1", "true", "yes")
LOG_DIR = os.getenv("LOG_DIR", "logs")

# Board limits
MAX_BOARD_ITEMS = int(os.getenv("MAX_BOARD_ITEMS", 40))
MAX_LOGO_BYTES = int(os.getenv("MAX_LOGO_BYTES", 5 * 1024 * 1024))  # 5MB
MAX_CANVAS_SIDE = int(os.getenv("MAX_CANVAS_SIDE", 6000))

# Logos: white for colored catalog frames, black for the light masonry board
LOGO_LIGHT_PATHS = os.getenv("LOGO_LIGHT_PATHS", "assets/logo-white.png,public/logo-white.png").split(",")
LOGO_DARK_PATHS = os.getenv("LOGO_DARK_PATHS", "assets/logo-black.png,public/logo-black.png").split(",")


def validate_item_count(count: int) -> bool:
    """Validate the number of goal items a single board accepts"""
    return 0 < count <= MAX_BOARD_ITEMS


def validate_canvas_side(side: int) -> bool:
    """Validate one canvas dimension against the allocation limit"""
    return 0 < side <= MAX_CANVAS_SIDE


def validate_logo_size(size: int) -> bool:
    """Validate if logo payload is within limits"""
    return size <= MAX_LOGO_BYTES


def load_default_logo(light: bool) -> Optional[bytes]:
    """Read the first logo file that exists; None when no logo is installed"""
    candidates: List[str] = LOGO_LIGHT_PATHS if light else LOGO_DARK_PATHS
    for path in candidates:
        p = Path(path.strip())
        if p.is_file():
            return p.read_bytes()
    return None
