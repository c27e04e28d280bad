"""
Boundary helpers for upstream collaborators

Photo search and affirmation writing happen elsewhere; this module only
normalizes what they hand over and supplies fallbacks.
"""
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from visionboard.models import ImageAsset, TextBlock
from visionboard.settings import settings

TONES = ("soft", "bold")
ROLES = ("primary", "secondary")

# Used when the affirmation writer is unavailable
FALLBACK_AFFIRMATIONS: List[TextBlock] = [
    TextBlock("Everything I want, wants me more", tone="bold", role="primary"),
    TextBlock("God guides my steps", tone="soft", role="primary"),
    TextBlock("I'm living in my answered prayers", tone="bold", role="primary"),
    TextBlock("Time is not refundable, use it with intention", tone="soft", role="secondary"),
    TextBlock("Make yours a priority", tone="bold", role="primary"),
]


def fallback_affirmation(index: int) -> TextBlock:
    return FALLBACK_AFFIRMATIONS[index % len(FALLBACK_AFFIRMATIONS)]


def affirmation_from_payload(payload: Dict[str, Any]) -> Optional[TextBlock]:
    """Validate a writer payload; unknown tone/role tags fall back to soft/primary"""
    text = str(payload.get("text") or "").strip()
    if not text:
        return None

    tone = str(payload.get("tone") or "").lower()
    if tone not in TONES:
        tone = "soft"
    role = str(payload.get("role") or "").lower()
    if role not in ROLES:
        role = "primary"
    return TextBlock(text=text, tone=tone, role=role)


def asset_from_payload(payload: Dict[str, Any]) -> ImageAsset:
    """Build an ImageAsset from a stock-photo style record.

    Accepts either flat ``url``/``download_url`` keys or a ``src`` dict with
    display and original renditions.
    """
    src = payload.get("src") or {}
    url = payload.get("url") or src.get("large2x") or src.get("large") or ""
    download_url = payload.get("download_url") or src.get("original")
    return ImageAsset(
        id=str(payload.get("id", "")),
        url=url,
        download_url=download_url,
        width=int(payload.get("width") or 0),
        height=int(payload.get("height") or 0),
        source=str(payload.get("source") or "custom"),
    )


def filter_candidates(
    candidates: Iterable[ImageAsset],
    min_resolution: Optional[int] = None,
) -> List[ImageAsset]:
    """De-duplicate by id (first wins) and drop photos below the resolution floor.

    Photos with unknown dimensions (0) are kept; the renderer upscales.
    """
    min_resolution = settings.min_photo_resolution if min_resolution is None else min_resolution
    seen = set()
    kept: List[ImageAsset] = []
    total = 0
    for asset in candidates:
        total += 1
        if asset.id in seen:
            continue
        seen.add(asset.id)
        if asset.width and asset.height and min(asset.width, asset.height) < min_resolution:
            continue
        kept.append(asset)
    logger.debug(f"Candidate photos: {total} in, {len(kept)} kept (min side {min_resolution}px)")
    return kept
