"""
Tests for the grid endpoints.

Tests the /grid/slice, /grid/assemble, /grid/resize, /grid/validate and
/grid/local-variants endpoints, including error status mapping.
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from PIL import Image

from conftest import NINE_COLORS, from_b64, solid_b64
from routers.grid import router

# Create test app
app = FastAPI()
app.include_router(router, prefix="/api")

SPEC = {"columns": 3, "rows": 3, "cell_width": 40, "cell_height": 60}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


class TestSliceEndpoint:
    def test_slice_returns_row_major_cells(self, client, nine_color_grid_b64):
        response = client.post("/api/grid/slice", json={"image": nine_color_grid_b64, "spec": SPEC})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 9
        assert [c["index"] for c in data["cells"]] == list(range(9))
        assert data["cells"][5]["row"] == 1 and data["cells"][5]["col"] == 2
        assert from_b64(data["cells"][5]["image"]).convert("RGB").getpixel((0, 0)) == NINE_COLORS[5]

    def test_spec_larger_than_image_is_400(self, client):
        response = client.post("/api/grid/slice", json={"image": solid_b64(100, 100), "spec": SPEC})

        assert response.status_code == 400
        assert "exceeds" in response.json()["detail"]

    def test_undecodable_image_is_400(self, client):
        response = client.post("/api/grid/slice", json={"image": "aGVsbG8gd29ybGQ=", "spec": SPEC})
        assert response.status_code == 400

    def test_decompression_bomb_is_400(self, client, monkeypatch):
        image = solid_b64(100, 100)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        response = client.post("/api/grid/slice", json={"image": image, "spec": {**SPEC, "cell_width": 10, "cell_height": 10}})

        assert response.status_code == 400
        assert "too large" in response.json()["detail"]

    @pytest.mark.parametrize(
        "override", [{"columns": 4}, {"rows": 10}, {"cell_width": 50_000}, {"cell_height": 50_000}]
    )
    def test_oversized_spec_is_422(self, client, override):
        response = client.post("/api/grid/slice", json={"image": solid_b64(10, 10), "spec": {**SPEC, **override}})
        assert response.status_code == 422

    def test_non_positive_spec_is_422(self, client):
        response = client.post(
            "/api/grid/slice", json={"image": solid_b64(10, 10), "spec": {**SPEC, "cell_width": 0}}
        )
        assert response.status_code == 422


class TestAssembleEndpoint:
    def test_assemble(self, client):
        cells = [solid_b64(40, 60, color) for color in NINE_COLORS]

        response = client.post("/api/grid/assemble", json={"cells": cells, "spec": SPEC})

        assert response.status_code == 200
        data = response.json()
        assert (data["width"], data["height"]) == (120, 180)
        grid = from_b64(data["image_b64"]).convert("RGB")
        assert grid.getpixel((100, 150)) == NINE_COLORS[8]

    def test_wrong_count_is_400(self, client):
        response = client.post("/api/grid/assemble", json={"cells": [solid_b64(40, 60)] * 8, "spec": SPEC})

        assert response.status_code == 400
        assert "Expected 9 cells, got 8" in response.json()["detail"]


class TestResizeEndpoint:
    @pytest.mark.parametrize("fit", ["cover", "contain"])
    def test_exact_size(self, client, fit):
        response = client.post(
            "/api/grid/resize", json={"image": solid_b64(1024, 1024), "width": 300, "height": 400, "fit": fit}
        )

        assert response.status_code == 200
        assert from_b64(response.json()["image_b64"]).size == (300, 400)

    @pytest.mark.parametrize("width, height", [(50_000, 100), (100, 50_000)])
    def test_oversized_target_is_422(self, client, width, height):
        response = client.post(
            "/api/grid/resize", json={"image": solid_b64(10, 10), "width": width, "height": height}
        )
        assert response.status_code == 422

    def test_unknown_fit_is_422(self, client):
        response = client.post(
            "/api/grid/resize", json={"image": solid_b64(10, 10), "width": 3, "height": 4, "fit": "stretch"}
        )
        assert response.status_code == 422


class TestValidateEndpoint:
    def test_matching_image(self, client, nine_color_grid_b64):
        response = client.post("/api/grid/validate", json={"image": nine_color_grid_b64, "spec": SPEC})

        assert response.status_code == 200
        assert response.json()["ok"] is True

    def test_mismatch_reported(self, client):
        response = client.post("/api/grid/validate", json={"width": 1024, "height": 1024, "spec": SPEC})

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is False
        assert data["actual_width"] == 1024

    def test_mismatch_strict_is_422(self, client):
        response = client.post(
            "/api/grid/validate", json={"image": solid_b64(100, 100), "spec": SPEC, "strict": True}
        )
        assert response.status_code == 422

    def test_size_only_strict_is_422(self, client):
        response = client.post(
            "/api/grid/validate", json={"width": 121, "height": 180, "spec": SPEC, "tolerance": 0, "strict": True}
        )
        assert response.status_code == 422

    def test_missing_input_is_400(self, client):
        response = client.post("/api/grid/validate", json={"spec": SPEC})
        assert response.status_code == 400


class TestLocalVariantsEndpoint:
    def test_default_palette_grid(self, client, garment_mask_b64):
        response = client.post(
            "/api/grid/local-variants",
            json={"base": solid_b64(40, 60), "mask": garment_mask_b64, "cell_width": 40, "cell_height": 60, "gap": 2},
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["variants"]) == 9
        assert data["colors"][0] == "black"
        assert from_b64(data["grid_b64"]).size == (128, 188)

    def test_variants_only(self, client, garment_mask_b64):
        response = client.post(
            "/api/grid/local-variants",
            json={
                "base": solid_b64(40, 60),
                "mask": garment_mask_b64,
                "colors": ["#ff0000", "#00ff00"],
                "cell_width": 20,
                "cell_height": 30,
                "assemble": False,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["variants"]) == 2
        assert data["grid_b64"] is None

    def test_unknown_color_is_400(self, client, garment_mask_b64):
        response = client.post(
            "/api/grid/local-variants",
            json={"base": solid_b64(40, 60), "mask": garment_mask_b64, "colors": ["ultra-octarine"], "cell_width": 40, "cell_height": 60},
        )
        assert response.status_code == 400

    def test_unknown_palette_is_400(self, client):
        response = client.post(
            "/api/grid/local-variants",
            json={"base": solid_b64(40, 60), "palette_id": "neon", "cell_width": 40, "cell_height": 60},
        )
        assert response.status_code == 400
