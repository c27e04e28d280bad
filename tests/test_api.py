import base64
import io
import os
import sys
from unittest.mock import AsyncMock, Mock, patch

from fastapi.testclient import TestClient
from PIL import Image

# Add parent directory to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.main import app
from conftest import make_jpeg, make_png
from visionboard.errors import AssetFetchFailure, NoRenderableContent
from visionboard.models import CompositionResult, LayoutKind, RenderManifest, RenderOutcome

client = TestClient(app)


def inline_item(goal, color=(200, 40, 40), text=None):
    item = {
        "goal": goal,
        "photo": {
            "id": goal.replace(" ", "-"),
            "data_base64": base64.b64encode(make_jpeg((320, 240), color)).decode(),
        },
    }
    if text is not None:
        item["text"] = text
    return item


def url_item(goal, width=1600, height=1200):
    return {
        "goal": goal,
        "photo": {"id": goal, "url": f"https://example.com/{goal}.jpg", "width": width, "height": height},
    }


class TestAPIEndpoints:
    """API endpoint tests"""

    def test_root_endpoint(self):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert data["version"] == "1.0.0"

    def test_health_check(self):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"] == "1.0.0"

    def test_layouts(self):
        response = client.get("/vision-board/layouts")
        assert response.status_code == 200
        data = response.json()
        ids = [layout["id"] for layout in data["layouts"]]
        assert ids == ["catalog", "masonry"]
        assert data["layouts"][0]["item_counts"] == [2, 3, 4, 5, 6, 7]
        assert data["default_canvas"] == {"width": 1654, "height": 2339}

    def test_request_id_echoed(self):
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestRenderValidation:
    """Request validation for board rendering"""

    def test_empty_items(self):
        response = client.post("/vision-board/render", json={"items": []})
        assert response.status_code == 422

    def test_too_many_items(self):
        payload = {"items": [url_item(f"g{i}") for i in range(41)], "layout": "masonry"}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_unknown_layout(self):
        payload = {"items": [url_item("travel")], "layout": "spiral"}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_zero_width(self):
        payload = {"items": [url_item("travel")], "layout": "masonry", "width": 0}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_oversized_canvas(self):
        payload = {"items": [url_item("travel")], "layout": "masonry", "width": 100000, "height": 100000}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_server_local_photo_rejected(self, tmp_path):
        private = tmp_path / "server_private.png"
        private.write_bytes(make_png((64, 64), (10, 200, 10, 255)))
        for url in (str(private), private.as_uri()):
            payload = {
                "items": [{"goal": "travel", "photo": {"id": "p", "url": url}}],
                "layout": "masonry",
                "width": 200,
                "height": 300,
            }
            response = client.post("/vision-board/render", json=payload)
            assert response.status_code == 422

    def test_private_host_rejected(self):
        payload = {
            "items": [{"goal": "travel", "photo": {
                "id": "p",
                "url": "https://example.com/a.jpg",
                "download_url": "http://169.254.169.254/latest/meta-data",
            }}],
            "layout": "masonry",
        }
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_blank_goal(self):
        payload = {"items": [url_item("   ")], "layout": "masonry"}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_bad_background_color(self):
        payload = {"items": [url_item("travel")], "layout": "masonry", "background_color": "teal"}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_canvas_config"

    def test_bad_logo_base64(self):
        payload = {"items": [url_item("travel")], "layout": "masonry", "logo_base64": "%%%not base64"}
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422

    def test_no_usable_candidate(self):
        payload = {
            "items": [{"goal": "travel", "candidates": [url_item("tiny", 300, 200)["photo"]]}],
            "layout": "masonry",
        }
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422
        assert "no usable photo" in response.json()["detail"]

    def test_catalog_count_out_of_range(self):
        payload = {"items": [url_item(f"g{i}") for i in range(8)], "layout": "catalog"}
        with patch("visionboard.fetcher.PhotoFetcher.fetch", new=AsyncMock(return_value=make_jpeg())):
            response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "unsupported_item_count"


class TestRenderBoard:
    """Board rendering"""

    def test_masonry_render_inline_photos(self):
        payload = {
            "items": [
                inline_item("travel", (200, 40, 40), {"text": "see the world", "tone": "bold"}),
                inline_item("health", (40, 160, 60)),
                inline_item("home", (30, 60, 200), {"text": "buy a house"}),
            ],
            "layout": "masonry",
            "width": 400,
            "height": 600,
            "seed": 5,
            "logo_base64": base64.b64encode(make_png((60, 30))).decode(),
        }
        response = client.post("/vision-board/render", json=payload)
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "success"
        assert (data["width"], data["height"], data["format"]) == (400, 600, "JPEG")
        image = Image.open(io.BytesIO(base64.b64decode(data["image_base64"])))
        assert image.size == (400, 600)

        manifest = data["manifest"]
        assert manifest["layout_kind"] == "masonry"
        assert manifest["used"] == [0, 1, 2]
        assert manifest["seed"] == 5
        assert any(p["kind"] == "text" for p in manifest["placements"])

    def test_candidates_are_filtered(self):
        captured = {}

        async def fake_render(request, log=None):
            captured["request"] = request
            return RenderOutcome(
                success=True,
                result=CompositionResult(image_bytes=b"\xff\xd8jpeg", width=10, height=10),
                manifest=RenderManifest(layout_kind=LayoutKind.CATALOG, used=[0, 1]),
            )

        engine = Mock()
        engine.render = fake_render
        payload = {
            "items": [
                {"goal": "travel", "candidates": [
                    url_item("small", 640, 480)["photo"],
                    url_item("big", 2400, 1600)["photo"],
                ]},
                url_item("health"),
            ],
            "layout": "catalog",
        }
        with patch("api.main.get_vision_board_engine", return_value=engine):
            response = client.post("/vision-board/render", json=payload)

        assert response.status_code == 200
        request = captured["request"]
        assert request.items[0].photo.id == "big"
        # items without text receive a fallback affirmation
        assert request.items[1].text is not None
        assert base64.b64decode(response.json()["image_base64"]) == b"\xff\xd8jpeg"

    def test_render_failure_is_500(self):
        engine = Mock()
        engine.render = AsyncMock(return_value=RenderOutcome(
            success=False,
            manifest=RenderManifest(layout_kind=LayoutKind.MASONRY),
            error=NoRenderableContent("every item failed to render"),
        ))
        with patch("api.main.get_vision_board_engine", return_value=engine):
            response = client.post("/vision-board/render", json={"items": [url_item("a")], "layout": "masonry"})
        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "no_renderable_content"

    def test_failed_photo_is_skipped(self):
        def fetch_side_effect(asset, item_index=None):
            if item_index == 1:
                raise AssetFetchFailure("HTTP 404", item_index=item_index)
            return make_jpeg((320, 240))

        payload = {
            "items": [url_item("a"), url_item("b"), url_item("c")],
            "layout": "masonry",
            "width": 300,
            "height": 400,
        }
        with patch("visionboard.fetcher.PhotoFetcher.fetch", new=AsyncMock(side_effect=fetch_side_effect)):
            response = client.post("/vision-board/render", json=payload)

        assert response.status_code == 200
        manifest = response.json()["manifest"]
        assert manifest["used"] == [0, 2]
        assert manifest["skipped"] == {"1": "HTTP 404"}


class TestServerLauncher:
    """start_server entry point"""

    def test_reload_off_by_default(self):
        import start_server

        with patch("start_server.uvicorn.run") as mock_run:
            start_server.main()

        _, kwargs = mock_run.call_args
        assert mock_run.call_args[0][0] == "api.main:app"
        assert kwargs["reload"] is False

    def test_reload_opt_in(self):
        import start_server

        with patch("start_server.API_RELOAD", True), patch("start_server.uvicorn.run") as mock_run:
            start_server.main()
        assert mock_run.call_args[1]["reload"] is True
