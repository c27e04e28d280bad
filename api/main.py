import base64
import binascii
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, field_validator
from starlette.middleware.base import BaseHTTPMiddleware

from visionboard.collaborators import (
    affirmation_from_payload,
    asset_from_payload,
    fallback_affirmation,
    filter_candidates,
)
from visionboard.config import (
    LOG_DIR,
    MAX_BOARD_ITEMS,
    MAX_CANVAS_SIDE,
    validate_canvas_side,
    validate_item_count,
    validate_logo_size,
)
from visionboard.errors import InvalidCanvasConfig, UnsupportedItemCount, VisionBoardError
from visionboard.fetcher import check_remote_url
from visionboard.layout import A4_CANVAS, CATALOG_COUNTS, TEXT_ANCHORS
from visionboard.models import BoardRequest, Canvas, ContentItem, ImageAsset, LayoutKind
from visionboard.orchestrator import get_vision_board_engine
from visionboard.settings import settings

VERSION = "1.0.0"

# Create logs directory if it doesn't exist
Path(LOG_DIR).mkdir(exist_ok=True)

# Setup logging
logger.add(f"{LOG_DIR}/api.log", rotation="10 MB", level="INFO")
logger.add(f"{LOG_DIR}/api.jsonl", rotation="10 MB", level="INFO", serialize=True)

app = FastAPI(
    title="Vision Board Engine API",
    description="Layout and compositing engine for goal vision boards",
    version=VERSION
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request ID middleware for tracing
class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        req_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = req_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        return response


app.add_middleware(RequestIDMiddleware)


# Exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc), "message": "Request validation failed"},
    )


def jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    # ctx may hold the raw exception object
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg", "input")}
        for error in exc.errors()
    ]


# --- Pydantic Models with Validation ---
class PhotoReq(BaseModel):
    id: str
    url: str = ""
    download_url: Optional[str] = None
    width: int = 0
    height: int = 0
    source: str = "custom"
    data_base64: Optional[str] = None

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        if not v.strip():
            raise ValueError('photo id cannot be empty')
        return v.strip()

    @field_validator('url', 'download_url')
    @classmethod
    def validate_url(cls, v):
        # clients may only point at public http(s) or inline data: photos
        if v:
            check_remote_url(v)
        return v


class TextReq(BaseModel):
    text: str
    tone: Optional[str] = None
    role: Optional[str] = None


class BoardItemReq(BaseModel):
    goal: str
    photo: Optional[PhotoReq] = None
    candidates: List[PhotoReq] = []
    text: Optional[TextReq] = None

    @field_validator('goal')
    @classmethod
    def validate_goal(cls, v):
        if not v.strip():
            raise ValueError('goal cannot be empty')
        return v.strip()


class RenderBoardReq(BaseModel):
    items: List[BoardItemReq]
    layout: str = LayoutKind.CATALOG.value
    width: int = settings.canvas_width
    height: int = settings.canvas_height
    background_color: str = settings.board_background
    display_name: Optional[str] = None
    logo_base64: Optional[str] = None
    seed: Optional[int] = None

    @field_validator('items')
    @classmethod
    def validate_items(cls, v):
        if not validate_item_count(len(v)):
            raise ValueError(f'a board takes 1-{MAX_BOARD_ITEMS} items')
        return v

    @field_validator('layout')
    @classmethod
    def validate_layout(cls, v):
        allowed = [kind.value for kind in LayoutKind]
        if v not in allowed:
            raise ValueError(f'layout must be one of {allowed}')
        return v

    @field_validator('width', 'height')
    @classmethod
    def validate_dimension(cls, v):
        if not validate_canvas_side(v):
            raise ValueError(f'canvas dimensions must be between 1 and {MAX_CANVAS_SIDE}')
        return v


def _decode_base64(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail=f"{what} is not valid base64")


def _to_asset(photo: PhotoReq) -> ImageAsset:
    asset = asset_from_payload(photo.model_dump(exclude={"data_base64"}))
    if photo.data_base64:
        data = _decode_base64(photo.data_base64, f"photo {photo.id}")
        asset = ImageAsset(
            id=asset.id, url=asset.url, download_url=asset.download_url,
            width=asset.width, height=asset.height, source=asset.source, data=data,
        )
    return asset


def build_board_request(req: RenderBoardReq) -> BoardRequest:
    items = []
    for index, item in enumerate(req.items):
        if item.photo is not None:
            photo = _to_asset(item.photo)
        else:
            candidates = filter_candidates(_to_asset(c) for c in item.candidates)
            if not candidates:
                raise HTTPException(status_code=422, detail=f"item {index} has no usable photo")
            photo = candidates[0]

        text = affirmation_from_payload(item.text.model_dump()) if item.text else None
        items.append(ContentItem(goal=item.goal, photo=photo, text=text or fallback_affirmation(index)))

    logo = None
    if req.logo_base64:
        logo = _decode_base64(req.logo_base64, "logo")
        if not validate_logo_size(len(logo)):
            raise HTTPException(status_code=422, detail="logo is too large")

    return BoardRequest(
        canvas=Canvas(req.width, req.height, req.background_color),
        items=tuple(items),
        layout_kind=LayoutKind(req.layout),
        display_name=req.display_name,
        logo=logo,
        seed=req.seed,
    )


@app.get("/")
async def root():
    return {"message": "Vision Board Engine API is running", "version": VERSION}


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": int(time.time()),
        "version": VERSION,
    }


@app.get("/vision-board/layouts")
async def get_board_layouts():
    """Layout kinds the engine can render"""
    return {
        "layouts": [
            {
                "id": LayoutKind.CATALOG.value,
                "name": "Polaroid catalog",
                "description": "Hand-tuned polaroid arrangements on a colored A4 frame",
                "item_counts": list(CATALOG_COUNTS),
            },
            {
                "id": LayoutKind.MASONRY.value,
                "name": "Masonry",
                "description": "Dense gap-free photo tiling with affirmation cards",
                "item_counts": [1, MAX_BOARD_ITEMS],
                "text_cards": len(TEXT_ANCHORS),
            },
        ],
        "default_canvas": {"width": A4_CANVAS[0], "height": A4_CANVAS[1]},
    }


@app.post("/vision-board/render")
async def render_vision_board(req: RenderBoardReq):
    """Render one vision board synchronously"""
    try:
        board_request = build_board_request(req)
    except InvalidCanvasConfig as e:
        raise HTTPException(status_code=422, detail=e.to_dict())

    logger.info(f"Rendering {req.layout} board with {len(board_request.items)} items")
    outcome = await get_vision_board_engine().render(board_request)

    if not outcome.success:
        error = outcome.error or VisionBoardError("render failed")
        status = 422 if isinstance(error, (UnsupportedItemCount, InvalidCanvasConfig)) else 500
        logger.error(f"Board render failed: {error}")
        raise HTTPException(status_code=status, detail=error.to_dict())

    result = outcome.result
    return {
        "status": "success",
        "image_base64": base64.b64encode(result.image_bytes).decode(),
        "width": result.width,
        "height": result.height,
        "format": result.format,
        "manifest": outcome.manifest.to_dict(),
    }
