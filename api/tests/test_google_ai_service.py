"""
Tests for the Google AI Studio image client.

The genai client is mocked; responses are built from SimpleNamespace parts
shaped like the SDK's.
"""
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import solid_b64
from core.exceptions import DecodeError, GenerationError
from services.google_ai_service import (
    GoogleAIStudioService,
    InlineImagePart,
    extract_image_b64,
    is_overloaded_error,
)

PNG_B64 = solid_b64(8, 8)
PNG_BYTES = base64.b64decode(PNG_B64)


def image_part(data):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type="image/png"))


def text_part(text):
    return SimpleNamespace(text=text, inline_data=None)


@pytest.fixture
def service():
    """Service with a mocked genai client."""
    service = GoogleAIStudioService()
    service.genai_client = MagicMock()
    service.genai_configured = True
    return service


# =============================================================================
# Response parsing
# =============================================================================


class TestExtractImage:
    def test_raw_png_bytes(self):
        response = SimpleNamespace(parts=[text_part("here you go"), image_part(PNG_BYTES)])
        assert extract_image_b64(response) == PNG_B64

    def test_base64_encoded_bytes(self):
        response = SimpleNamespace(parts=[image_part(PNG_B64.encode())])
        assert extract_image_b64(response) == PNG_B64

    def test_data_url_string(self):
        response = SimpleNamespace(parts=[image_part(f"data:image/png;base64,{PNG_B64}")])
        assert extract_image_b64(response) == PNG_B64

    def test_parts_nested_in_candidates(self):
        candidate = SimpleNamespace(content=SimpleNamespace(parts=[image_part(PNG_BYTES)]))
        response = SimpleNamespace(parts=None, candidates=[candidate])
        assert extract_image_b64(response) == PNG_B64

    def test_text_only_response(self):
        response = SimpleNamespace(parts=[text_part("I cannot do that")])
        assert extract_image_b64(response) is None

    def test_empty_response(self):
        assert extract_image_b64(SimpleNamespace(parts=None, candidates=None)) is None


@pytest.mark.parametrize(
    "message, expected",
    [("503 Service Unavailable", True), ("The model is overloaded", True), ("UNAVAILABLE", True), ("400 bad", False)],
)
def test_is_overloaded_error(message, expected):
    assert is_overloaded_error(Exception(message)) is expected


# =============================================================================
# generate_image
# =============================================================================


class TestGenerateImage:
    @pytest.mark.asyncio
    async def test_unconfigured_service_raises(self):
        service = GoogleAIStudioService()
        service.genai_configured = False

        with pytest.raises(GenerationError):
            await service.generate_image("prompt")

    @pytest.mark.asyncio
    async def test_prompt_and_images_are_sent_in_order(self, service):
        service.genai_client.models.generate_content.return_value = SimpleNamespace(parts=[image_part(PNG_BYTES)])

        result = await service.generate_image(
            "compose these", [InlineImagePart(PNG_B64), InlineImagePart(f"data:image/png;base64,{PNG_B64}")]
        )

        assert result == PNG_B64
        kwargs = service.genai_client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == service.model
        assert kwargs["contents"][0] == "compose these"
        assert len(kwargs["contents"]) == 3
        assert kwargs["config"].response_modalities == ["IMAGE", "TEXT"]
        assert service.usage_stats["successful_requests"] == 1

    @pytest.mark.asyncio
    async def test_invalid_base64_image_raises_decode_error(self, service):
        with pytest.raises(DecodeError):
            await service.generate_image("compose these", [InlineImagePart("abc")])

        service.genai_client.models.generate_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_overloaded_error_backs_off_then_succeeds(self, service):
        service.genai_client.models.generate_content.side_effect = [
            Exception("503 UNAVAILABLE"),
            SimpleNamespace(parts=[image_part(PNG_BYTES)]),
        ]

        with patch("services.google_ai_service.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            result = await service.generate_image("prompt", max_retries=3)

        assert result == PNG_B64
        mock_sleep.assert_awaited_once_with(4)

    @pytest.mark.asyncio
    async def test_other_errors_use_shorter_backoff(self, service):
        service.genai_client.models.generate_content.side_effect = [
            Exception("500 internal"),
            SimpleNamespace(parts=[image_part(PNG_BYTES)]),
        ]

        with patch("services.google_ai_service.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await service.generate_image("prompt", max_retries=3)

        mock_sleep.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_no_image_after_all_attempts(self, service):
        service.genai_client.models.generate_content.return_value = SimpleNamespace(parts=[text_part("no")])

        with pytest.raises(GenerationError, match="no image returned after 2 attempts"):
            await service.generate_image("prompt", max_retries=2)

        assert service.genai_client.models.generate_content.call_count == 2
        assert service.usage_stats["failed_requests"] == 2

    @pytest.mark.asyncio
    async def test_persistent_errors_raise_generation_error(self, service):
        service.genai_client.models.generate_content.side_effect = Exception("400 invalid argument")

        with patch("services.google_ai_service.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(GenerationError, match="400 invalid argument"):
                await service.generate_image("prompt", max_retries=2)


# =============================================================================
# Health and usage
# =============================================================================


@pytest.mark.asyncio
async def test_health_check_unconfigured():
    service = GoogleAIStudioService()
    service.genai_configured = False

    health = await service.health_check()
    assert health["status"] == "unconfigured"


@pytest.mark.asyncio
async def test_health_check_healthy(service):
    health = await service.health_check()

    assert health["status"] == "healthy"
    service.genai_client.models.get.assert_called_once_with(model=service.model)


@pytest.mark.asyncio
async def test_health_check_unhealthy(service):
    service.genai_client.models.get.side_effect = Exception("403 permission denied")

    health = await service.health_check()
    assert health["status"] == "unhealthy"
    assert "403" in health["error"]


@pytest.mark.asyncio
async def test_usage_statistics(service):
    stats = await service.get_usage_statistics()
    assert stats["success_rate"] == 0
    assert stats["total_requests"] == 0
