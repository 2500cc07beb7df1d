"""
Tests for the GenAI proxy endpoint and preset listing.
"""
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import solid_b64
from core.config import settings
from core.exceptions import GenerationError
from routers.genai import router

app = FastAPI()
app.include_router(router, prefix="/api")


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def mock_generate():
    with patch("routers.genai.google_ai_service.generate_image", new_callable=AsyncMock) as mock:
        mock.return_value = solid_b64(8, 8)
        yield mock


def test_generate_forwards_prompt_and_images(client, mock_generate):
    image = solid_b64(16, 16)
    response = client.post(
        "/api/genai",
        json={"prompt": "make it blue", "images": [{"data": f"data:image/png;base64,{image}", "mime_type": "image/png"}]},
    )

    assert response.status_code == 200
    assert response.json()["image_b64"] == mock_generate.return_value
    prompt, parts = mock_generate.call_args.args
    assert prompt == "make it blue"
    assert parts[0].data.endswith(image)


def test_empty_prompt_is_400(client, mock_generate):
    response = client.post("/api/genai", json={"prompt": "   "})

    assert response.status_code == 400
    mock_generate.assert_not_awaited()


def test_undecodable_image_is_400(client, mock_generate):
    response = client.post("/api/genai", json={"prompt": "p", "images": [{"data": "abc"}]})

    assert response.status_code == 400
    mock_generate.assert_not_awaited()


def test_non_image_payload_is_400(client, mock_generate):
    response = client.post("/api/genai", json={"prompt": "p", "images": [{"data": "aGVsbG8gd29ybGQ="}]})

    assert response.status_code == 400
    mock_generate.assert_not_awaited()


def test_preset_is_rendered_before_prompt(client, mock_generate):
    response = client.post(
        "/api/genai",
        json={"preset_id": "add_item_hat", "variables": {"item": "a red beret"}, "prompt": "keep it subtle"},
    )

    assert response.status_code == 200
    prompt = mock_generate.call_args.args[0]
    assert "a red beret" in prompt
    assert prompt.endswith("keep it subtle")


def test_unknown_preset_is_400(client, mock_generate):
    response = client.post("/api/genai", json={"preset_id": "nope"})
    assert response.status_code == 400


def test_generation_error_is_502(client, mock_generate):
    mock_generate.side_effect = GenerationError("no image returned")

    response = client.post("/api/genai", json={"prompt": "anything"})

    assert response.status_code == 502
    assert "no image returned" in response.json()["detail"]


def test_oversized_payload_is_413(client, mock_generate, monkeypatch):
    monkeypatch.setattr(settings, "max_payload_bytes", 10)

    response = client.post("/api/genai", json={"prompt": "p", "images": [{"data": solid_b64(64, 64)}]})

    assert response.status_code == 413
    mock_generate.assert_not_awaited()


def test_list_presets(client):
    response = client.get("/api/genai/presets")

    assert response.status_code == 200
    ids = [p["id"] for p in response.json()["presets"]]
    assert "add_item_hat" in ids
    assert len(ids) == 5
